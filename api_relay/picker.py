"""
Photos Picker selection flow.

The user picks photos in a Google-hosted page we don't control, so "finished" is
best-effort: a watcher polls for the picking surface to close while a hard timeout
runs alongside it. Whichever finishes first wins, the other is cancelled, and both
paths end in the same retrying fetch of the selected media items.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol

from api_relay import config
from api_relay.errors import PickerNotReadyError, SelectionCancelledError, SelectionTimeoutError, UpstreamApiError
from api_relay.google_api import GoogleApiClient
from api_relay.media import MediaItem, normalize_picker_items

logger = logging.getLogger(__name__)

_CLOSED = "closed"
_TIMEOUT = "timeout"
_CANCELLED = "cancelled"


@dataclass(frozen=True)
class SelectionSession:
    session_id: str
    picker_uri: str

    def to_dict(self) -> dict:
        return {"id": self.session_id, "pickerUri": self.picker_uri}


class SelectionSurface(Protocol):
    async def is_closed(self) -> bool: ...


class ProviderSessionSurface:
    """Treats the picker as closed once Google reports mediaItemsSet on the session."""

    def __init__(self, api: GoogleApiClient, access_token: str, session_id: str):
        self.api = api
        self.access_token = access_token
        self.session_id = session_id

    async def is_closed(self) -> bool:
        session = await self.api.get_picker_session(self.access_token, self.session_id)
        return bool(session.get("mediaItemsSet"))


class SelectionPoller:
    def __init__(
        self,
        api: GoogleApiClient,
        *,
        max_retries: int = config.PICKER_MAX_RETRIES,
        retry_step: float = config.PICKER_RETRY_STEP_SECONDS,
        close_poll_interval: float = config.PICKER_CLOSE_POLL_SECONDS,
        hard_timeout: float = config.PICKER_HARD_TIMEOUT_SECONDS,
        settle_delay: float = config.PICKER_SETTLE_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.api = api
        self.max_retries = max_retries
        self.retry_step = retry_step
        self.close_poll_interval = close_poll_interval
        self.hard_timeout = hard_timeout
        self.settle_delay = settle_delay
        self._sleep = sleep

    async def open_selection_flow(self, access_token: str) -> SelectionSession:
        data = await self.api.create_picker_session(access_token)
        if not data.get("id") or not data.get("pickerUri"):
            raise UpstreamApiError(502, "Failed to get picker URI")
        return SelectionSession(session_id=data["id"], picker_uri=data["pickerUri"])

    async def fetch_selected(self, access_token: str, session_id: str) -> list[MediaItem]:
        """
        Fetch the user's selection. FAILED_PRECONDITION (still picking) is retried with
        linear backoff: retry_step, 2*retry_step, ... for at most max_retries retries.
        """
        for attempt in range(self.max_retries + 1):
            try:
                raw_items = await self.api.list_picker_media(access_token, session_id)
            except PickerNotReadyError:
                if attempt >= self.max_retries:
                    break
                delay = (attempt + 1) * self.retry_step
                logger.debug("Picker not ready (attempt %d); retrying in %.1fs", attempt + 1, delay)
                await self._sleep(delay)
                continue
            return normalize_picker_items(raw_items)
        raise SelectionTimeoutError(f"User has not finished picking after {self.max_retries + 1} attempts")

    async def _watch_closed(self, surface: SelectionSurface) -> str:
        while not await surface.is_closed():
            await self._sleep(self.close_poll_interval)
        return _CLOSED

    async def _hard_timeout(self) -> str:
        await self._sleep(self.hard_timeout)
        return _TIMEOUT

    async def _race(self, *coros) -> object:
        """Run coroutines concurrently; return the first result and cancel the rest."""
        tasks = [asyncio.ensure_future(c) for c in coros]
        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for t in tasks:
                if not t.done():
                    t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
        first = next(t for t in tasks if t in done)
        return first.result()

    async def _cancelled(self, cancel: asyncio.Event) -> str:
        await cancel.wait()
        return _CANCELLED

    async def await_selection(
        self,
        access_token: str,
        session_id: str,
        surface: SelectionSurface,
        cancel: asyncio.Event | None = None,
    ) -> list[MediaItem]:
        """
        Wait for the user to finish picking, then return the normalized selection.
        Setting cancel stops polling at once with SelectionCancelledError.
        """
        watchers = [self._watch_closed(surface), self._hard_timeout()]
        if cancel is not None:
            watchers.append(self._cancelled(cancel))
        outcome = await self._race(*watchers)
        logger.debug("Picker session %s... finished waiting: %s", session_id[:8], outcome)
        if outcome == _CANCELLED:
            raise SelectionCancelledError()

        async def _fetch() -> list[MediaItem]:
            if outcome == _CLOSED and self.settle_delay > 0:
                # Google needs a moment to publish the selection after the picker closes
                await self._sleep(self.settle_delay)
            return await self.fetch_selected(access_token, session_id)

        if cancel is not None:
            result = await self._race(_fetch(), self._cancelled(cancel))
            if result == _CANCELLED:
                raise SelectionCancelledError()
            items = result
        else:
            items = await _fetch()

        if outcome == _TIMEOUT and not items:
            raise SelectionTimeoutError()
        return items
