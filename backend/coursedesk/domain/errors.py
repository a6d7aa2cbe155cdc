"""Error taxonomy shared by the collection engine."""

from __future__ import annotations


class CollectionError(Exception):
    """Base class for collection engine failures.

    ``code`` is a dotted identifier (``bulk.action_required``) that the
    console layer can map to copy; ``detail`` is an operator-facing message.
    """

    def __init__(self, code: str, detail: str | None = None) -> None:
        super().__init__(detail or code)
        self.code = code
        self.detail = detail or code


class ValidationError(CollectionError):
    """Rejected locally before anything is sent to the remote service."""


class TransitionInFlightError(ValidationError):
    """A mutation is already pending for one of the targeted records."""

    def __init__(self, record_ids: frozenset[str] | set[str], detail: str | None = None) -> None:
        super().__init__("transition.in_flight", detail or "Another change is still in progress for this record")
        self.record_ids = frozenset(record_ids)


class RemoteError(CollectionError):
    """Any failed remote call: transport, timeout, HTTP or envelope failure."""

    def __init__(
        self,
        operation: str,
        detail: str | None = None,
        *,
        status_code: int | None = None,
    ) -> None:
        super().__init__(f"remote.{operation}_failed", detail)
        self.operation = operation
        self.status_code = status_code


class StaleResponseError(CollectionError):
    """A response arrived for a console context that no longer exists."""

    def __init__(self, operation: str) -> None:
        super().__init__("response.stale", f"discarded stale {operation} response")
        self.operation = operation


__all__ = [
    "CollectionError",
    "RemoteError",
    "StaleResponseError",
    "TransitionInFlightError",
    "ValidationError",
]
