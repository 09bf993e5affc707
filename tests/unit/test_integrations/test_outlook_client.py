"""Tests for the Microsoft Graph calendar client."""

import json

import httpx
import pytest

from planner_sync.integrations.outlook.client import (
    BatchRequest,
    OutlookCalendarClient,
    _is_retryable_error,
    _parse_retry_after,
    error_for_status,
    event_path,
)
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

BASE_URL = "https://graph.test/v1.0"


def make_client(handler, max_attempts: int = 1) -> OutlookCalendarClient:
    return OutlookCalendarClient(
        "access-token",
        base_url=BASE_URL,
        timeout=5,
        max_attempts=max_attempts,
        transport=httpx.MockTransport(handler),
    )


def graph_error(status: int, code: str = "ErrorCode", message: str = "Boom", headers=None):
    return httpx.Response(status, json={"error": {"code": code, "message": message}}, headers=headers)


class TestIsRetryableError:
    """Tests for retry decision logic."""

    def test_retryable_errors(self):
        assert _is_retryable_error(OutlookRateLimitError("slow down")) is True
        assert _is_retryable_error(OutlookServerError("down")) is True
        assert _is_retryable_error(OutlookTransportError("unreachable")) is True

    def test_non_retryable_errors(self):
        for error in (
            OutlookAuthError("denied"),
            OutlookNotFoundError("gone"),
            OutlookConflictError("exists"),
            OutlookValidationError("bad"),
        ):
            assert _is_retryable_error(error) is False

    def test_other_exceptions(self):
        assert _is_retryable_error(ValueError("test")) is False
        assert _is_retryable_error(RuntimeError("test")) is False


class TestErrorForStatus:
    """Tests for Graph status code to exception mapping."""

    @pytest.mark.parametrize(
        "status, expected",
        [
            (401, OutlookAuthError),
            (403, OutlookAuthError),
            (404, OutlookNotFoundError),
            (409, OutlookConflictError),
            (429, OutlookRateLimitError),
            (400, OutlookValidationError),
            (500, OutlookServerError),
            (503, OutlookServerError),
        ],
    )
    def test_status_mapping(self, status, expected):
        error = error_for_status(status, {"error": {"code": "X", "message": "y"}})
        assert type(error) is expected

    def test_unknown_status_uses_base_error(self):
        error = error_for_status(418, "teapot")
        assert type(error) is OutlookCalendarError
        assert error.status_code == 418

    def test_graph_message_included(self):
        error = error_for_status(400, {"error": {"code": "ErrorInvalidRequest", "message": "Bad date"}})
        assert "ErrorInvalidRequest: Bad date" in error.message

    def test_rate_limit_reads_retry_after(self):
        error = error_for_status(429, None, {"Retry-After": "7"})
        assert isinstance(error, OutlookRateLimitError)
        assert error.retry_after == 7.0

    def test_parse_retry_after_invalid(self):
        assert _parse_retry_after({"retry-after": "soon"}) is None
        assert _parse_retry_after(None) is None


class TestEventPath:
    def test_collection_path(self):
        assert event_path("cal-1") == "/me/calendars/cal-1/events"

    def test_item_path(self):
        assert event_path("cal-1", "evt-9") == "/me/calendars/cal-1/events/evt-9"


class TestBatchRequest:
    def test_body_adds_content_type(self):
        request = BatchRequest(id="1", method="POST", url="/me/calendars/c/events", body={"subject": "x"})
        payload = request.to_graph()
        assert payload["headers"] == {"Content-Type": "application/json"}
        assert payload["body"] == {"subject": "x"}

    def test_delete_has_no_body(self):
        payload = BatchRequest(id="1", method="DELETE", url="/me/calendars/c/events/e").to_graph()
        assert "body" not in payload
        assert "headers" not in payload


class TestOutlookCalendarClient:
    """Tests for the HTTP behaviour of the client."""

    @pytest.mark.asyncio
    async def test_sends_bearer_token(self):
        seen = {}

        def handler(request: httpx.Request):
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"value": []})

        async with make_client(handler) as client:
            await client.list_calendars()

        assert seen["auth"] == "Bearer access-token"

    @pytest.mark.asyncio
    async def test_list_calendars_follows_next_link(self):
        def handler(request: httpx.Request):
            if request.url.params.get("$skip") == "1":
                return httpx.Response(200, json={"value": [{"id": "cal-2", "name": "Planner"}]})
            return httpx.Response(
                200,
                json={
                    "value": [{"id": "cal-1", "name": "Calendar"}],
                    "@odata.nextLink": f"{BASE_URL}/me/calendars?$skip=1",
                },
            )

        async with make_client(handler) as client:
            calendars = await client.list_calendars()

        assert [c["id"] for c in calendars] == ["cal-1", "cal-2"]

    @pytest.mark.asyncio
    async def test_list_events_selects_fields(self):
        seen = {}

        def handler(request: httpx.Request):
            seen["path"] = request.url.path
            seen["select"] = request.url.params.get("$select")
            return httpx.Response(200, json={"value": [{"id": "evt-1"}]})

        async with make_client(handler) as client:
            events = await client.list_events("cal-1")

        assert events == [{"id": "evt-1"}]
        assert seen["path"] == "/v1.0/me/calendars/cal-1/events"
        assert seen["select"] == "id,subject,categories"

    @pytest.mark.asyncio
    async def test_create_event_posts_body(self):
        seen = {}

        def handler(request: httpx.Request):
            seen["method"] = request.method
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"id": "evt-1", "subject": "PTO"})

        async with make_client(handler) as client:
            created = await client.create_event("cal-1", {"subject": "PTO"})

        assert created["id"] == "evt-1"
        assert seen["method"] == "POST"
        assert seen["body"] == {"subject": "PTO"}

    @pytest.mark.asyncio
    async def test_update_missing_event_raises_not_found(self):
        def handler(request: httpx.Request):
            return graph_error(404, "ErrorItemNotFound")

        async with make_client(handler) as client:
            with pytest.raises(OutlookNotFoundError):
                await client.update_event("cal-1", "evt-1", {"subject": "x"})

    @pytest.mark.asyncio
    async def test_delete_event_returns_false_when_already_gone(self):
        def handler(request: httpx.Request):
            return graph_error(404, "ErrorItemNotFound")

        async with make_client(handler) as client:
            assert await client.delete_event("cal-1", "evt-1") is False

    @pytest.mark.asyncio
    async def test_delete_event_returns_true(self):
        def handler(request: httpx.Request):
            assert request.method == "DELETE"
            return httpx.Response(204)

        async with make_client(handler) as client:
            assert await client.delete_event("cal-1", "evt-1") is True

    @pytest.mark.asyncio
    async def test_auth_error_is_not_retried(self):
        calls = []

        def handler(request: httpx.Request):
            calls.append(request)
            return graph_error(401, "InvalidAuthenticationToken")

        async with make_client(handler, max_attempts=3) as client:
            with pytest.raises(OutlookAuthError):
                await client.list_calendars()

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_rate_limit_retried_when_attempts_allowed(self):
        calls = []

        def handler(request: httpx.Request):
            calls.append(request)
            if len(calls) == 1:
                return graph_error(429, "TooManyRequests", headers={"Retry-After": "0"})
            return httpx.Response(200, json={"value": []})

        async with make_client(handler, max_attempts=2) as client:
            assert await client.list_calendars() == []

        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_single_attempt_by_default(self):
        calls = []

        def handler(request: httpx.Request):
            calls.append(request)
            return graph_error(503, "ServiceUnavailable")

        async with make_client(handler) as client:
            with pytest.raises(OutlookServerError):
                await client.list_calendars()

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_transport_error_wrapped(self):
        def handler(request: httpx.Request):
            raise httpx.ConnectError("connection refused", request=request)

        async with make_client(handler) as client:
            with pytest.raises(OutlookTransportError) as exc_info:
                await client.list_calendars()

        assert exc_info.value.retryable is True
        assert isinstance(exc_info.value.original_error, httpx.ConnectError)


class TestBatch:
    """Tests for $batch handling."""

    @pytest.mark.asyncio
    async def test_empty_batch_makes_no_request(self):
        def handler(request: httpx.Request):
            raise AssertionError("no request expected")

        async with make_client(handler) as client:
            assert await client.batch([]) == {}

    @pytest.mark.asyncio
    async def test_more_than_twenty_requests_rejected(self):
        def handler(request: httpx.Request):
            raise AssertionError("no request expected")

        requests = [BatchRequest(id=str(i), method="DELETE", url=f"/x/{i}") for i in range(21)]
        async with make_client(handler) as client:
            with pytest.raises(ValueError):
                await client.batch(requests)

    @pytest.mark.asyncio
    async def test_responses_keyed_by_id_regardless_of_order(self):
        seen = {}

        def handler(request: httpx.Request):
            seen["path"] = request.url.path
            seen["payload"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "responses": [
                        {"id": "1", "status": 404, "body": {"error": {"code": "ErrorItemNotFound"}}},
                        {"id": "0", "status": 201, "body": {"id": "evt-new"}},
                    ]
                },
            )

        requests = [
            BatchRequest(id="0", method="POST", url=event_path("cal-1"), body={"subject": "a"}),
            BatchRequest(id="1", method="PATCH", url=event_path("cal-1", "evt-old"), body={"subject": "b"}),
        ]
        async with make_client(handler) as client:
            responses = await client.batch(requests)

        assert seen["path"] == "/v1.0/$batch"
        assert [r["id"] for r in seen["payload"]["requests"]] == ["0", "1"]
        assert responses["0"].ok is True
        assert responses["0"].body == {"id": "evt-new"}
        assert responses["1"].not_found is True
        assert isinstance(responses["1"].error(), OutlookNotFoundError)

    @pytest.mark.asyncio
    async def test_whole_batch_failure_raises_batch_error(self):
        def handler(request: httpx.Request):
            return graph_error(503, "ServiceUnavailable")

        requests = [BatchRequest(id="0", method="DELETE", url=event_path("cal-1", "evt-1"))]
        async with make_client(handler) as client:
            with pytest.raises(OutlookBatchError) as exc_info:
                await client.batch(requests)

        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_missing_item_raises_batch_error(self):
        def handler(request: httpx.Request):
            return httpx.Response(200, json={"responses": [{"id": "0", "status": 204}]})

        requests = [
            BatchRequest(id="0", method="DELETE", url=event_path("cal-1", "evt-1")),
            BatchRequest(id="1", method="DELETE", url=event_path("cal-1", "evt-2")),
        ]
        async with make_client(handler) as client:
            with pytest.raises(OutlookBatchError):
                await client.batch(requests)
