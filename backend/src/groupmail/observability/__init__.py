"""Observability: structured logging, request correlation, metrics and health checks."""
