"""vps_shared.errors — Error taxonomy for callback ingest and status queries.

Core operations raise these; the Lambda handlers turn them into HTTP error
responses using ``status_code``.
"""

from __future__ import annotations


class StatusError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class BadRequest(StatusError):
    """Malformed or missing input. Surfaced verbatim to the caller."""

    status_code = 400


class Forbidden(StatusError):
    """Callback authentication failed. Carries no detail about the cause."""

    status_code = 403


class NotFound(StatusError):
    status_code = 404


class StoreUnavailable(StatusError):
    """Record store could not be read or written.

    Raised by store backends only; ``RecordStore.load``/``save`` absorb it.
    """

    status_code = 503
