"""Registry-specific lookup flows."""
