"""Custom exceptions for PostVault."""

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """Classification reported to callers alongside an error message."""
    RATE_LIMIT = "rate_limit"
    AUTH = "auth"
    TIMEOUT = "timeout"
    NETWORK = "network"
    NOT_FOUND = "not_found"
    UNKNOWN = "unknown"


class PostVaultError(Exception):
    """Base exception for PostVault."""
    kind = ErrorKind.UNKNOWN
    retryable = False
    guidance = "Try refreshing the page. If the problem persists, check the log file."

    def __init__(self, message: str = "", guidance: Optional[str] = None):
        super().__init__(message)
        if guidance is not None:
            self.guidance = guidance


class FetchError(PostVaultError):
    """A request to Instagram did not produce a usable JSON payload."""

    def __init__(self, message: str = "", status_code: Optional[int] = None, guidance: Optional[str] = None):
        super().__init__(message, guidance)
        self.status_code = status_code


class RateLimitedError(FetchError):
    """Rate limited by Instagram (HTTP 429 or an HTML challenge page)."""
    kind = ErrorKind.RATE_LIMIT
    retryable = True
    guidance = "Instagram has rate limited you. Please wait 5-10 minutes before trying again."


class AuthExpiredError(FetchError):
    """Session cookies were rejected."""
    kind = ErrorKind.AUTH
    guidance = "Your Instagram session has expired. Run scripts/login.py and log back in."


class FetchTimeoutError(FetchError):
    """Request exceeded the absolute timeout."""
    kind = ErrorKind.TIMEOUT
    retryable = True
    guidance = "The request timed out. Check your connection and try again."


class NetworkError(FetchError):
    """Connection-level failure."""
    kind = ErrorKind.NETWORK
    retryable = True
    guidance = "Network error occurred. Please check your connection and try again."


class ServerError(FetchError):
    """Instagram answered with a 5xx status."""
    kind = ErrorKind.NETWORK
    retryable = True
    guidance = "Instagram is having trouble right now. Try again in a few minutes."


class RequestRejectedError(FetchError):
    """Instagram answered with a non-retryable 4xx status."""
    kind = ErrorKind.UNKNOWN


class ParsingError(FetchError):
    """Failed to parse data."""
    kind = ErrorKind.UNKNOWN


class PostNotFoundError(PostVaultError):
    """Embedded post data could not be found in the page."""
    kind = ErrorKind.NOT_FOUND
    guidance = "Please navigate to an Instagram post or reel page and let it load fully."


class ScrapingFailedError(PostVaultError):
    """Failed to scrape data from Instagram."""
    pass


class DownloadError(PostVaultError):
    """Failed to download media."""
    kind = ErrorKind.NETWORK
    retryable = True


class BatchSizeError(PostVaultError):
    """Batch queue is empty or larger than the allowed maximum."""
    guidance = "Maximum batch size is 100 URLs. Please reduce the number of URLs."


def describe_error(exc: BaseException, context: str = "Extraction failed") -> dict:
    """
    Build the error fields returned to callers for a failed operation.

    Args:
        exc: The exception that ended the operation
        context: Prefix used for exceptions outside the PostVault hierarchy

    Returns:
        Dictionary with error, errorType and guidance keys
    """
    if isinstance(exc, PostVaultError):
        message = str(exc) or exc.__class__.__doc__ or context
        return {
            "error": message,
            "errorType": exc.kind.value,
            "guidance": exc.guidance,
        }
    return {
        "error": f"{context}: {exc}",
        "errorType": ErrorKind.UNKNOWN.value,
        "guidance": PostVaultError.guidance,
    }
