"""API routers for Summadoc."""

from summadoc.api.routers import documents, health, metrics, users

__all__ = ["documents", "health", "metrics", "users"]
