"""Session capability: the page-interaction seam between lookup flows and the browser."""

from .interfaces import MISSING_FIELD, ChallengeLocator, FieldSchema, ISession

__all__ = ["MISSING_FIELD", "ChallengeLocator", "FieldSchema", "ISession"]
