"""Tests for the resilient fetch client."""

import httpx
import pytest

from postvault.core.exceptions import (
    AuthExpiredError,
    FetchTimeoutError,
    NetworkError,
    ParsingError,
    RateLimitedError,
    RequestRejectedError,
    ServerError,
    describe_error,
)
from postvault.core.rate_limiter import RateLimitClass
from postvault.utils.config import INSTAGRAM_BASE_URL

from conftest import COMMENTS_PATH

URL = INSTAGRAM_BASE_URL + COMMENTS_PATH
LISTING = RateLimitClass.COMMENT_LISTING


@pytest.mark.asyncio
class TestFetchJson:
    async def test_returns_decoded_payload_with_api_headers(self, api, session):
        route = api.get(COMMENTS_PATH).mock(return_value=httpx.Response(200, json={"comments": []}))

        payload = await session.fetcher.fetch_json(URL, LISTING, params={"max_id": "abc"})

        assert payload == {"comments": []}
        request = route.calls.last.request
        assert request.headers["X-IG-App-ID"]
        assert request.headers["X-CSRFToken"] == "csrf-token"
        assert request.url.params["max_id"] == "abc"
        assert session.fetcher.request_count == 1

    async def test_429_records_throttle(self, api, session):
        api.get(COMMENTS_PATH).mock(return_value=httpx.Response(429))

        with pytest.raises(RateLimitedError):
            await session.fetcher.fetch_json(URL, LISTING)

        assert session.limiter.throttle_count(LISTING) == 1

    async def test_html_body_is_treated_as_throttling(self, api, session):
        api.get(COMMENTS_PATH).mock(
            return_value=httpx.Response(200, text="<html>challenge</html>", headers={"content-type": "text/html"})
        )

        with pytest.raises(RateLimitedError):
            await session.fetcher.fetch_json(URL, LISTING)

        assert session.limiter.throttle_count(LISTING) == 1

    @pytest.mark.parametrize("status, error", [
        (401, AuthExpiredError),
        (403, AuthExpiredError),
        (404, RequestRejectedError),
        (500, ServerError),
        (503, ServerError),
    ])
    async def test_status_classification(self, api, session, status, error):
        api.get(COMMENTS_PATH).mock(return_value=httpx.Response(status, text="nope"))

        with pytest.raises(error) as exc_info:
            await session.fetcher.fetch_json(URL, LISTING)

        assert exc_info.value.status_code == status
        assert not session.limiter.was_throttled()

    async def test_invalid_json_raises_parsing_error(self, api, session):
        api.get(COMMENTS_PATH).mock(
            return_value=httpx.Response(200, text="{not json", headers={"content-type": "application/json"})
        )

        with pytest.raises(ParsingError):
            await session.fetcher.fetch_json(URL, LISTING)

    async def test_timeout(self, api, session):
        api.get(COMMENTS_PATH).mock(side_effect=httpx.ReadTimeout)

        with pytest.raises(FetchTimeoutError):
            await session.fetcher.fetch_json(URL, LISTING)

    async def test_connection_failure(self, api, session):
        api.get(COMMENTS_PATH).mock(side_effect=httpx.ConnectError)

        with pytest.raises(NetworkError):
            await session.fetcher.fetch_json(URL, LISTING)


@pytest.mark.asyncio
class TestFetchWithRetry:
    async def test_persistent_429_makes_three_attempts(self, api, session, sleeper):
        route = api.get(COMMENTS_PATH).mock(return_value=httpx.Response(429))

        with pytest.raises(RateLimitedError):
            await session.fetcher.fetch_with_retry(URL, LISTING)

        assert route.call_count == 3
        assert session.limiter.throttle_count(LISTING) == 3
        assert sleeper.calls == [pytest.approx(3.0), pytest.approx(6.0)]

    async def test_recovers_after_server_error(self, api, session, sleeper):
        route = api.get(COMMENTS_PATH).mock(side_effect=[
            httpx.Response(500),
            httpx.Response(200, json={"ok": True}),
        ])

        payload = await session.fetcher.fetch_with_retry(URL, LISTING)

        assert payload == {"ok": True}
        assert route.call_count == 2
        assert sleeper.calls == [pytest.approx(3.0)]

    async def test_auth_errors_are_not_retried(self, api, session, sleeper):
        route = api.get(COMMENTS_PATH).mock(return_value=httpx.Response(403))

        with pytest.raises(AuthExpiredError):
            await session.fetcher.fetch_with_retry(URL, LISTING)

        assert route.call_count == 1
        assert sleeper.calls == []

    async def test_not_found_is_not_retried(self, api, session):
        route = api.get(COMMENTS_PATH).mock(return_value=httpx.Response(404))

        with pytest.raises(RequestRejectedError):
            await session.fetcher.fetch_with_retry(URL, LISTING)

        assert route.call_count == 1

    async def test_network_errors_exhaust_attempts(self, api, session):
        route = api.get(COMMENTS_PATH).mock(side_effect=httpx.ConnectError)

        with pytest.raises(NetworkError):
            await session.fetcher.fetch_with_retry(URL, LISTING)

        assert route.call_count == 3

    async def test_max_retries_override(self, api, session):
        route = api.get(COMMENTS_PATH).mock(return_value=httpx.Response(502))

        with pytest.raises(ServerError):
            await session.fetcher.fetch_with_retry(URL, LISTING, max_retries=1)

        assert route.call_count == 1


class TestDescribeError:
    def test_known_error(self):
        described = describe_error(RateLimitedError("slow down"))

        assert described["error"] == "slow down"
        assert described["errorType"] == "rate_limit"
        assert described["guidance"]

    def test_foreign_error(self):
        described = describe_error(ValueError("boom"), "Failed to extract comments")

        assert described["error"] == "Failed to extract comments: boom"
        assert described["errorType"] == "unknown"
