"""Configuration: run parameters, settings loading and logging."""
