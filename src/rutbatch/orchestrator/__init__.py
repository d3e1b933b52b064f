"""Orchestration core: scheduler, retry controller and result collector."""

from .collector import IncompleteResultsError, ResultCollector
from .retry import LookupFlow, RetryController
from .scheduler import Scheduler, SessionFactory, contiguous_shards

__all__ = [
    "IncompleteResultsError",
    "LookupFlow",
    "ResultCollector",
    "RetryController",
    "Scheduler",
    "SessionFactory",
    "contiguous_shards",
]
