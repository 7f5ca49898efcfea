from __future__ import annotations


class WalletTrackerError(Exception):
    """Base error. `user_message` is safe to show in chat."""
    user_message = "An error occurred. Please try again later."

    def __init__(self, message: str = "", user_message: str = ""):
        super().__init__(message or user_message or self.user_message)
        if user_message:
            self.user_message = user_message


class InvalidFormat(WalletTrackerError):
    user_message = "Invalid address format."


class UnsupportedChain(WalletTrackerError):
    user_message = "Unsupported chain."


class InvalidAlias(WalletTrackerError):
    user_message = "Alias can only contain letters, numbers, spaces, hyphens, and underscores (max 32)."


class StreamProvisionFailed(WalletTrackerError):
    """Provider refused or timed out; safe to retry."""
    user_message = "Failed to set up tracking. Please try again later."


class StreamProviderError(WalletTrackerError):
    """HTTP-level failure talking to the stream provider."""

    def __init__(self, message: str = "", status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code


class BadSignature(WalletTrackerError):
    user_message = "Invalid signature"


class StorageUnavailable(WalletTrackerError):
    user_message = "Storage is unavailable right now. Please try again later."
