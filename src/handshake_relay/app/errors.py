"""Failure taxonomy for the handshake phases.

Every error carries a stable `error` code and the HTTP status the API answers
with, so route handlers never need their own mapping.
"""

from __future__ import annotations

from typing import Any


class HandshakeError(Exception):
    error = "handshake_error"
    status_code = 500

    def __init__(self, message: str, *, request_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.request_id = request_id


class StorageUnavailable(HandshakeError):
    error = "storage_unavailable"
    status_code = 500


class NotFound(HandshakeError):
    error = "not_found"
    status_code = 404

    def __init__(self, request_id: str) -> None:
        super().__init__("Request ID not found", request_id=request_id)


class IncompleteState(HandshakeError):
    error = "incomplete"
    status_code = 400

    def __init__(self, request_id: str, *, missing: list[str]) -> None:
        super().__init__(
            "Both part1 and part2 must be available to check",
            request_id=request_id,
        )
        self.missing = missing


class ExtractionFailed(HandshakeError):
    error = "extraction_failed"
    status_code = 400

    def __init__(self, request_id: str, *, empty_parts: list[str]) -> None:
        super().__init__(
            "Could not extract valid codes from part1 and part2",
            request_id=request_id,
        )
        self.empty_parts = empty_parts


class CallbackRejected(HandshakeError):
    error = "callback_rejected"
    status_code = 403


class UpstreamError(HandshakeError):
    error = "upstream_error"
    status_code = 502

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        body: Any = None,
        request_id: str | None = None,
    ) -> None:
        super().__init__(message, request_id=request_id)
        self.status = status
        self.body = body


class UpstreamTimeout(UpstreamError):
    error = "upstream_timeout"
    status_code = 504
