"""Tests for the Photos Picker selection poller."""
import asyncio

import httpx
import pytest

from api_relay.errors import SelectionCancelledError, SelectionTimeoutError, UpstreamApiError
from api_relay.google_api import GoogleApiClient, GoogleEndpoints
from api_relay.picker import ProviderSessionSurface, SelectionPoller

ENDPOINTS = GoogleEndpoints(
    people="https://people.example/v1",
    drive="https://drive.example/v3",
    calendar="https://calendar.example/v3",
    picker="https://picker.example/v1",
)


class FakeSurface:
    """Reports closed after the given number of polls."""

    def __init__(self, closes_after: int | None):
        self.closes_after = closes_after
        self.polls = 0

    async def is_closed(self) -> bool:
        self.polls += 1
        return self.closes_after is not None and self.polls > self.closes_after


def _api(google) -> GoogleApiClient:
    return GoogleApiClient(httpx.AsyncClient(transport=google.transport), ENDPOINTS)


def _fast_poller(google, **overrides) -> SelectionPoller:
    opts = {"retry_step": 0.001, "close_poll_interval": 0.001, "hard_timeout": 5.0, "settle_delay": 0}
    opts.update(overrides)
    return SelectionPoller(_api(google), **opts)


def _media(*items) -> httpx.Response:
    return httpx.Response(200, json={"mediaItems": list(items)})


@pytest.mark.asyncio
async def test_open_selection_flow(google):
    google.add("POST", "/v1/sessions", httpx.Response(200, json={"id": "s1", "pickerUri": "https://photos.example/pick/s1"}))
    session = await _fast_poller(google).open_selection_flow("tok")
    assert session.to_dict() == {"id": "s1", "pickerUri": "https://photos.example/pick/s1"}
    assert google.requests[0].headers["Authorization"] == "Bearer tok"


@pytest.mark.asyncio
async def test_open_selection_flow_without_uri_fails(google):
    google.add("POST", "/v1/sessions", httpx.Response(200, json={"id": "s1"}))
    with pytest.raises(UpstreamApiError):
        await _fast_poller(google).open_selection_flow("tok")


@pytest.mark.asyncio
async def test_fetch_selected_first_try(google, make_picker_item):
    google.add("GET", "/v1/mediaItems", _media(make_picker_item("a"), make_picker_item("b")))
    items = await _fast_poller(google).fetch_selected("tok", "s1")
    assert [i.id for i in items] == ["a", "b"]
    request = google.calls("GET", "/v1/mediaItems")[0]
    assert request.url.params["sessionId"] == "s1"
    assert request.url.params["pageSize"] == "25"


@pytest.mark.asyncio
async def test_fetch_selected_retries_not_ready_with_linear_backoff(google, sleep, not_ready, make_picker_item):
    google.add("GET", "/v1/mediaItems", not_ready(), not_ready(), _media(make_picker_item("a")))
    poller = SelectionPoller(_api(google), sleep=sleep)
    items = await poller.fetch_selected("tok", "s1")
    assert [i.id for i in items] == ["a"]
    assert sleep.calls == [2.0, 4.0]


@pytest.mark.asyncio
async def test_fetch_selected_gives_up_after_max_retries(google, sleep, not_ready):
    google.add("GET", "/v1/mediaItems", not_ready())
    poller = SelectionPoller(_api(google), max_retries=3, retry_step=2.0, sleep=sleep)
    with pytest.raises(SelectionTimeoutError):
        await poller.fetch_selected("tok", "s1")
    assert len(google.calls("GET", "/v1/mediaItems")) == 4
    assert sleep.calls == [2.0, 4.0, 6.0]


@pytest.mark.asyncio
async def test_fetch_selected_does_not_retry_other_errors(google, sleep):
    google.add(
        "GET",
        "/v1/mediaItems",
        httpx.Response(403, json={"error": {"code": 403, "message": "forbidden", "status": "PERMISSION_DENIED"}}),
    )
    poller = SelectionPoller(_api(google), sleep=sleep)
    with pytest.raises(UpstreamApiError) as exc:
        await poller.fetch_selected("tok", "s1")
    assert exc.value.upstream_status == 403
    assert exc.value.status_code == 502
    assert sleep.calls == []


@pytest.mark.asyncio
async def test_await_selection_after_surface_closes(google, make_picker_item):
    google.add("GET", "/v1/mediaItems", _media(make_picker_item("a")))
    surface = FakeSurface(closes_after=3)
    items = await _fast_poller(google).await_selection("tok", "s1", surface)
    assert [i.id for i in items] == ["a"]
    assert surface.polls == 4


@pytest.mark.asyncio
async def test_await_selection_hard_timeout_still_fetches(google, make_picker_item):
    google.add("GET", "/v1/mediaItems", _media(make_picker_item("late")))
    surface = FakeSurface(closes_after=None)
    items = await _fast_poller(google, hard_timeout=0.05).await_selection("tok", "s1", surface)
    assert [i.id for i in items] == ["late"]


@pytest.mark.asyncio
async def test_await_selection_hard_timeout_with_nothing_selected(google):
    google.add("GET", "/v1/mediaItems", _media())
    surface = FakeSurface(closes_after=None)
    poller = _fast_poller(google, hard_timeout=0.05)
    with pytest.raises(SelectionTimeoutError):
        await poller.await_selection("tok", "s1", surface)
    polls_at_timeout = surface.polls
    await asyncio.sleep(0.02)
    # watcher was cancelled with the timeout
    assert surface.polls == polls_at_timeout


@pytest.mark.asyncio
async def test_await_selection_cancel_stops_polling(google):
    surface = FakeSurface(closes_after=None)
    cancel = asyncio.Event()
    poller = _fast_poller(google, hard_timeout=30.0)

    async def cancel_soon():
        await asyncio.sleep(0.02)
        cancel.set()

    canceller = asyncio.ensure_future(cancel_soon())
    with pytest.raises(SelectionCancelledError):
        await poller.await_selection("tok", "s1", surface, cancel=cancel)
    await canceller
    polls = surface.polls
    await asyncio.sleep(0.02)
    assert surface.polls == polls
    assert google.calls("GET", "/v1/mediaItems") == []


@pytest.mark.asyncio
async def test_provider_session_surface(google):
    google.add(
        "GET",
        "/v1/sessions/s1",
        httpx.Response(200, json={"id": "s1", "mediaItemsSet": False}),
        httpx.Response(200, json={"id": "s1", "mediaItemsSet": True}),
    )
    surface = ProviderSessionSurface(_api(google), "tok", "s1")
    assert await surface.is_closed() is False
    assert await surface.is_closed() is True
