"""API package exports."""

from marketplace.api.middleware import CorrelationIdMiddleware

__all__ = ["CorrelationIdMiddleware"]
