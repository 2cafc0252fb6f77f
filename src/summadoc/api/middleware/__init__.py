"""Middleware for the Summadoc API."""

from summadoc.api.middleware.correlation import CorrelationMiddleware

__all__ = ["CorrelationMiddleware"]
