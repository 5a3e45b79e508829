"""Observability layer - logging and metrics."""
