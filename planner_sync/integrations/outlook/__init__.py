"""
Outlook calendar integration for Planner Outlook Sync.

Provides the Microsoft Graph client used to mirror planner tasks.
"""

from planner_sync.integrations.outlook.client import (
    BatchRequest,
    BatchResponse,
    OutlookCalendarClient,
    event_path,
)
from planner_sync.integrations.outlook.exceptions import (
    OutlookAuthError,
    OutlookBatchError,
    OutlookCalendarError,
    OutlookCalendarNotFoundError,
    OutlookConflictError,
    OutlookNotFoundError,
    OutlookRateLimitError,
    OutlookServerError,
    OutlookTransportError,
    OutlookValidationError,
)

__all__ = [
    "BatchRequest",
    "BatchResponse",
    "OutlookCalendarClient",
    "event_path",
    "OutlookCalendarError",
    "OutlookAuthError",
    "OutlookBatchError",
    "OutlookCalendarNotFoundError",
    "OutlookConflictError",
    "OutlookNotFoundError",
    "OutlookRateLimitError",
    "OutlookServerError",
    "OutlookTransportError",
    "OutlookValidationError",
]
