"""
Core app for the vendor discovery service.

Provides shared models, error handling, permissions, request tracing,
metrics and health checks.
"""
