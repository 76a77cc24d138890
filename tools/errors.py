from __future__ import annotations


class GmailToolError(Exception):
    """Base for every failure the request router turns into an error result."""


class ConfigurationError(GmailToolError):
    """Something the user has to fix in Setup (client id/secret, sender)."""


class InvalidRequestError(GmailToolError):
    pass


class AuthorizationError(GmailToolError):
    """Bad callback, denied consent, rejected code or revoked token."""


class ConnectInProgressError(GmailToolError):
    pass


class CallbackTimeoutError(GmailToolError, TimeoutError):
    pass


class QuotaExceededError(GmailToolError):
    def __init__(self, used: int, cap: int) -> None:
        super().__init__(f"Daily cap reached ({used}/{cap}). Try again tomorrow.")
        self.used = used
        self.cap = cap


class ProviderError(GmailToolError):
    """Network or API failure reported by Google."""
