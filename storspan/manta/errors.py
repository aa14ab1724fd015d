"""Errors raised by the Manta client."""

from __future__ import annotations

import httpx


class MantaError(Exception):
    """A Manta request failed.

    Attributes:
        status: HTTP status code, or None for transport failures
        code: Manta error code from the response body (e.g. ``ResourceNotFound``)
        message: Human-readable message
    """

    def __init__(
        self, message: str, *, status: int | None = None, code: str | None = None
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code

    def __str__(self) -> str:
        if self.code:
            return f"{self.message} ({self.code})"
        return self.message


class MantaNotFoundError(MantaError):
    """The requested path does not exist."""


class MantaAuthError(MantaError):
    """Signing key could not be loaded or the request was rejected."""


def error_from_response(response: httpx.Response, context: str) -> MantaError:
    """Build a MantaError from a failed response.

    Manta reports errors as ``{"code": ..., "message": ...}``; HEAD responses
    carry no body, so the status code alone decides the error type.
    """
    code = None
    detail = response.reason_phrase
    if response.content:
        try:
            body = response.json()
        except ValueError:
            detail = response.text.strip() or detail
        else:
            if isinstance(body, dict):
                code = body.get("code")
                detail = body.get("message") or detail

    message = f"{context}: {response.status_code} {detail}"
    if response.status_code == 404:
        return MantaNotFoundError(message, status=404, code=code)
    if response.status_code in (401, 403):
        return MantaAuthError(message, status=response.status_code, code=code)
    return MantaError(message, status=response.status_code, code=code)
