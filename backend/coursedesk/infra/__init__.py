"""Remote service implementations for the collection engine."""

from .http import HttpRemoteService, build_http_client
from .memory import InMemoryRemoteService

__all__ = ["HttpRemoteService", "InMemoryRemoteService", "build_http_client"]
