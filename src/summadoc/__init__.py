"""Summadoc: document summarization service with a cache-aside document store."""

__version__ = "0.1.0"
