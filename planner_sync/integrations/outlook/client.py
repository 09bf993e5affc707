"""
Microsoft Graph calendar client with error translation and optional retry.

Provides a small async interface over the Graph v1.0 endpoints the sync
engine needs: calendars, master categories, events and JSON batching.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from planner_sync.config import get_settings
from planner_sync.integrations.outlook.exceptions import (
    OutlookAuthError,
    OutlookBatchError,
    OutlookCalendarError,
    OutlookConflictError,
    OutlookNotFoundError,
    OutlookRateLimitError,
    OutlookServerError,
    OutlookTransportError,
    OutlookValidationError,
)

logger = logging.getLogger(__name__)

# Graph rejects JSON batches with more than 20 requests
MAX_BATCH_SIZE = 20

EVENT_LIST_FIELDS = "id,subject,categories"

_exponential_wait = wait_exponential(multiplier=1, min=1, max=10)


def _is_retryable_error(exception: BaseException) -> bool:
    """Check if an exception should trigger a retry."""
    if isinstance(exception, OutlookCalendarError):
        return exception.retryable
    return False


def _retry_wait(retry_state) -> float:
    """Honour Retry-After on throttled responses, otherwise back off exponentially."""
    exception = retry_state.outcome.exception() if retry_state.outcome else None
    if isinstance(exception, OutlookRateLimitError) and exception.retry_after:
        return min(exception.retry_after, 30.0)
    return _exponential_wait(retry_state)


def _parse_retry_after(headers: Optional[dict]) -> Optional[float]:
    if not headers:
        return None
    for key, value in headers.items():
        if key.lower() == "retry-after":
            try:
                return float(value)
            except (TypeError, ValueError):
                return None
    return None


def _graph_error_message(body: Any) -> str:
    """Extract the Graph error message from a response body."""
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            code = error.get("code", "")
            message = error.get("message", "")
            return f"{code}: {message}" if code else message
    if body:
        return str(body)[:200]
    return ""


def error_for_status(
    status: int,
    body: Any = None,
    headers: Optional[dict] = None,
    original_error: Exception | None = None,
) -> OutlookCalendarError:
    """Build the OutlookCalendarError matching a Graph status code."""
    detail = _graph_error_message(body)

    if status in (401, 403):
        return OutlookAuthError(
            f"Access to Outlook was denied ({status}): {detail}",
            original_error=original_error,
            status_code=status,
        )
    elif status == 404:
        return OutlookNotFoundError(
            "Event or calendar not found",
            original_error=original_error,
            status_code=status,
        )
    elif status == 409:
        return OutlookConflictError(
            f"Resource already exists: {detail}",
            original_error=original_error,
            status_code=status,
        )
    elif status == 429:
        return OutlookRateLimitError(
            "Rate limit exceeded - too many requests",
            original_error=original_error,
            retry_after=_parse_retry_after(headers),
        )
    elif status == 400:
        return OutlookValidationError(
            f"Graph rejected the request: {detail}",
            original_error=original_error,
            status_code=status,
        )
    elif status >= 500:
        return OutlookServerError(
            f"Graph server error ({status}): {detail}",
            original_error=original_error,
            status_code=status,
        )
    return OutlookCalendarError(
        f"Graph API error ({status}): {detail}",
        original_error=original_error,
        status_code=status,
    )


def _raise_for_status(response: httpx.Response) -> None:
    """Convert a non-2xx Graph response into an OutlookCalendarError."""
    if response.is_success:
        return
    try:
        body = response.json()
    except ValueError:
        body = response.text
    raise error_for_status(response.status_code, body, dict(response.headers))


def event_path(calendar_id: str, event_id: Optional[str] = None) -> str:
    """Relative Graph path for events of a calendar (usable inside $batch)."""
    base = f"/me/calendars/{calendar_id}/events"
    return f"{base}/{event_id}" if event_id else base


@dataclass
class BatchRequest:
    """One operation inside a Graph JSON batch."""

    id: str
    method: str
    url: str
    body: Optional[dict] = None

    def to_graph(self) -> dict:
        request: dict[str, Any] = {
            "id": self.id,
            "method": self.method,
            "url": self.url,
        }
        if self.body is not None:
            request["headers"] = {"Content-Type": "application/json"}
            request["body"] = self.body
        return request


@dataclass
class BatchResponse:
    """Result of one operation inside a Graph JSON batch."""

    id: str
    status: int
    body: Any = None
    headers: dict = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def not_found(self) -> bool:
        return self.status == 404

    def error(self) -> OutlookCalendarError:
        """Exception describing this item's failure."""
        return error_for_status(self.status, self.body, self.headers)


class OutlookCalendarClient:
    """
    Async wrapper around the Microsoft Graph calendar endpoints.

    Provides:
    - Consistent error translation (see exceptions module)
    - Pagination via @odata.nextLink
    - JSON batching of up to 20 operations
    - Optional retry with backoff for throttling and 5xx errors
      (one attempt per call unless GRAPH_MAX_ATTEMPTS is raised)
    """

    def __init__(
        self,
        access_token: str,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            access_token: Short-lived Graph access token
            base_url: Graph base URL (defaults to settings)
            timeout: Per-request timeout in seconds (defaults to settings)
            max_attempts: Attempts per call (defaults to settings)
            transport: Optional httpx transport (used by tests)
        """
        settings = get_settings()
        self._max_attempts = max_attempts or settings.graph_max_attempts
        self._http = httpx.AsyncClient(
            base_url=base_url or settings.graph_base_url,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/json",
            },
            timeout=timeout or settings.graph_timeout_seconds,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "OutlookCalendarClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def _send(
        self,
        method: str,
        url: str,
        json: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> Optional[dict]:
        """Send one request and return the decoded JSON body (None for 204)."""
        try:
            response = await self._http.request(method, url, json=json, params=params)
        except httpx.TimeoutException as e:
            raise OutlookTransportError(f"Graph request timed out: {method} {url}", original_error=e)
        except httpx.RequestError as e:
            raise OutlookTransportError(f"Graph request failed: {e}", original_error=e)

        _raise_for_status(response)

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def _request(
        self,
        method: str,
        url: str,
        json: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> Optional[dict]:
        """Send a request under the configured retry policy."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=_retry_wait,
            retry=retry_if_exception(_is_retryable_error),
            reraise=True,
        ):
            with attempt:
                return await self._send(method, url, json=json, params=params)
        return None

    async def _paginate(self, url: str, params: Optional[dict] = None) -> list[dict]:
        """Fetch all pages from a paginated Graph collection."""
        items: list[dict] = []
        next_url: Optional[str] = url
        next_params = params

        while next_url:
            data = await self._request("GET", next_url, params=next_params) or {}
            items.extend(data.get("value", []))
            # nextLink already carries the query string
            next_url = data.get("@odata.nextLink")
            next_params = None

        return items

    # -------------------- Calendars --------------------

    async def list_calendars(self) -> list[dict]:
        return await self._paginate("/me/calendars")

    async def create_calendar(self, name: str) -> dict:
        result = await self._request("POST", "/me/calendars", json={"name": name})
        logger.info(f"Created Outlook calendar '{name}' ({result.get('id')})")
        return result

    # -------------------- Master categories --------------------

    async def list_master_categories(self) -> list[dict]:
        return await self._paginate("/me/outlook/masterCategories")

    async def create_master_category(self, display_name: str, color: str) -> dict:
        result = await self._request(
            "POST",
            "/me/outlook/masterCategories",
            json={"displayName": display_name, "color": color},
        )
        logger.info(f"Created Outlook category '{display_name}'")
        return result

    # -------------------- Events --------------------

    async def list_events(self, calendar_id: str, page_size: int = 100) -> list[dict]:
        """
        List every event in a calendar.

        Only id, subject and categories are selected; the reconciler
        needs nothing else.
        """
        events = await self._paginate(
            event_path(calendar_id),
            params={"$select": EVENT_LIST_FIELDS, "$top": page_size},
        )
        logger.debug(f"Listed {len(events)} events from calendar {calendar_id}")
        return events

    async def create_event(self, calendar_id: str, body: dict) -> dict:
        result = await self._request("POST", event_path(calendar_id), json=body)
        logger.info(f"Created event {result.get('id')} in {calendar_id}")
        return result

    async def update_event(self, calendar_id: str, event_id: str, body: dict) -> dict:
        """
        Update an existing event in place.

        Raises:
            OutlookNotFoundError: If the event no longer exists
        """
        result = await self._request("PATCH", event_path(calendar_id, event_id), json=body)
        logger.info(f"Updated event {event_id} in {calendar_id}")
        return result

    async def delete_event(self, calendar_id: str, event_id: str) -> bool:
        """
        Delete an event.

        Returns:
            True if deleted, False if it was already gone
        """
        try:
            await self._request("DELETE", event_path(calendar_id, event_id))
        except OutlookNotFoundError:
            logger.debug(f"Event {event_id} already deleted")
            return False
        logger.info(f"Deleted event {event_id} from {calendar_id}")
        return True

    # -------------------- Batching --------------------

    async def batch(self, requests: Sequence[BatchRequest]) -> dict[str, BatchResponse]:
        """
        Execute up to 20 operations in a single $batch round trip.

        Returns:
            Responses keyed by request id (Graph does not preserve order)

        Raises:
            OutlookBatchError: If the batch as a whole failed
            ValueError: If more than 20 requests are given
        """
        if not requests:
            return {}
        if len(requests) > MAX_BATCH_SIZE:
            raise ValueError(f"Graph batches accept at most {MAX_BATCH_SIZE} requests")

        payload = {"requests": [request.to_graph() for request in requests]}
        try:
            data = await self._request("POST", "/$batch", json=payload) or {}
        except OutlookCalendarError as e:
            raise OutlookBatchError(
                f"Batch of {len(requests)} requests failed: {e.message}",
                original_error=e,
                status_code=e.status_code,
            )

        responses = {}
        for item in data.get("responses", []):
            response = BatchResponse(
                id=str(item.get("id")),
                status=int(item.get("status", 0)),
                body=item.get("body"),
                headers=item.get("headers") or {},
            )
            responses[response.id] = response

        missing = [request.id for request in requests if request.id not in responses]
        if missing:
            raise OutlookBatchError(f"Batch response is missing items {missing}")

        return responses
