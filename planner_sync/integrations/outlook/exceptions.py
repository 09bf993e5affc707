"""
Custom exceptions for Outlook (Microsoft Graph) calendar operations.

Provides structured error handling with retryable flags.
"""

from typing import Optional


class OutlookCalendarError(Exception):
    """Base exception for Outlook calendar operations."""

    retryable: bool = False

    def __init__(
        self,
        message: str,
        original_error: Exception | None = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.original_error = original_error
        self.status_code = status_code


class OutlookTransportError(OutlookCalendarError):
    """
    The request never produced a response.

    Causes:
    - DNS or connection failure
    - Read/connect timeout
    """

    retryable = True


class OutlookAuthError(OutlookCalendarError):
    """
    Authentication or authorization failure (401/403).

    Causes:
    - Expired or revoked access token
    - Missing Calendars.ReadWrite / MailboxSettings.ReadWrite consent
    """

    retryable = False


class OutlookNotFoundError(OutlookCalendarError):
    """
    Event or calendar not found (404).

    Expected during sync: the event was deleted in Outlook, or the
    dedicated calendar was removed by the user.
    """

    retryable = False


class OutlookCalendarNotFoundError(OutlookNotFoundError):
    """The dedicated calendar itself is gone, not just one event."""


class OutlookConflictError(OutlookCalendarError):
    """
    Resource already exists (409).

    Raised when a calendar or master category with the same name was
    created concurrently.
    """

    retryable = False


class OutlookRateLimitError(OutlookCalendarError):
    """
    Throttled by Graph (429).

    Graph returns a Retry-After header (seconds) with throttled responses.
    """

    retryable = True

    def __init__(
        self,
        message: str,
        original_error: Exception | None = None,
        status_code: Optional[int] = 429,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message, original_error=original_error, status_code=status_code)
        self.retry_after = retry_after


class OutlookServerError(OutlookCalendarError):
    """Graph returned a 5xx response."""

    retryable = True


class OutlookValidationError(OutlookCalendarError):
    """
    Invalid request (400).

    Causes:
    - Malformed event payload
    - Unknown category or calendar id format
    """

    retryable = False


class OutlookBatchError(OutlookCalendarError):
    """
    A $batch request failed as a whole.

    Individual failures inside a successful batch are reported per item,
    not through this exception.
    """

    retryable = False
