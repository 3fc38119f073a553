from __future__ import annotations


class DirectoryError(Exception):
    """Base class for everything raised by the directory client."""


class ConfigurationError(DirectoryError):
    """Broken deployment: bad URL, unreadable or invalid trust certificate."""


class TrustConfigurationError(ConfigurationError):
    """Trust material produced an unexpected verification setup."""


class AccessDeniedError(DirectoryError):
    """The directory rejected the bind credentials.

    The message is always generic; the directory's own diagnostic text is
    never attached.
    """

    def __init__(self, message: str = "Invalid credentials") -> None:
        super().__init__(message)


class DirectoryUnavailableError(DirectoryError):
    """Transport level failure: connection refused, timeout, TLS handshake."""


class DirectoryProtocolError(DirectoryError):
    """The directory answered with a non-success result."""

    def __init__(self, message: str, result_code: int | None = None, description: str = "") -> None:
        super().__init__(message)
        self.result_code = result_code
        self.description = description


class DirectoryReferralError(DirectoryProtocolError):
    """Referral could not be followed (loop, limit exceeded, bad URL)."""
