"""Custom exception hierarchy for AniPilot.

All application-specific exceptions inherit from AniPilotError,
which carries an error code for HTTP error body mapping.
"""

from __future__ import annotations


class AniPilotError(Exception):
    """Base exception for all AniPilot errors."""

    status_code: int = 500

    def __init__(self, message: str, *, code: str = "INTERNAL_ERROR") -> None:
        super().__init__(message)
        self.code = code


class ValidationError(AniPilotError):
    """Malformed or missing request fields. Raised before any mutation."""

    status_code = 400

    def __init__(self, message: str, *, code: str = "VALIDATION_ERROR") -> None:
        super().__init__(message, code=code)


class AuthError(AniPilotError):
    """Missing, malformed or revoked credential."""

    status_code = 401

    def __init__(self, message: str, *, code: str = "AUTH_ERROR") -> None:
        super().__init__(message, code=code)


class NotFoundError(AniPilotError):
    """Unknown user, pairing code or other directly looked-up entity."""

    status_code = 404

    def __init__(self, message: str, *, code: str = "NOT_FOUND") -> None:
        super().__init__(message, code=code)


class UpstreamError(AniPilotError):
    """Store or notification sink failure."""

    status_code = 502

    def __init__(self, message: str, *, code: str = "UPSTREAM_ERROR") -> None:
        super().__init__(message, code=code)


class ChannelError(UpstreamError):
    """Errors in Channel adapters (Telegram, etc.)."""

    def __init__(self, message: str, *, code: str = "CHANNEL_ERROR") -> None:
        super().__init__(message, code=code)
