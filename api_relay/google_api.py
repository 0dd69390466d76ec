"""
Thin async client for the Google APIs the relay proxies (People, Drive, Calendar, Photos Picker).
Every call carries the caller's bearer token. Failures become UpstreamApiError.
"""
import logging
from dataclasses import dataclass

import httpx

from api_relay import config
from api_relay.errors import PickerNotReadyError, UpstreamApiError

logger = logging.getLogger(__name__)

DRIVE_FILE_FIELDS = "files(id,name,mimeType,createdTime,modifiedTime,size,webViewLink,thumbnailLink,imageMediaMetadata)"
DRIVE_PHOTO_FIELDS = (
    "files(id,name,mimeType,createdTime,modifiedTime,size,webViewLink,thumbnailLink,imageMediaMetadata,webContentLink)"
)


@dataclass(frozen=True)
class GoogleEndpoints:
    people: str = config.PEOPLE_API_URL
    drive: str = config.DRIVE_API_URL
    calendar: str = config.CALENDAR_API_URL
    picker: str = config.PICKER_API_URL


def _error_detail(response: httpx.Response) -> tuple[str, str | None]:
    """Google error bodies look like {"error": {"code", "message", "status"}}; OAuth ones use a string."""
    try:
        body = response.json()
    except ValueError:
        return (response.text[:200] if response.text else f"HTTP {response.status_code}"), None
    err = body.get("error") if isinstance(body, dict) else None
    if isinstance(err, dict):
        return err.get("message") or f"HTTP {response.status_code}", err.get("status")
    if isinstance(err, str):
        return body.get("error_description") or err, None
    return f"HTTP {response.status_code}", None


class GoogleApiClient:
    def __init__(self, http: httpx.AsyncClient, endpoints: GoogleEndpoints | None = None):
        self.http = http
        self.endpoints = endpoints or GoogleEndpoints()

    async def _request(self, method: str, url: str, access_token: str, **kwargs) -> dict:
        headers = {"Authorization": f"Bearer {access_token}", "Accept": "application/json"}
        try:
            response = await self.http.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, url, e)
            raise UpstreamApiError(502, f"Could not reach Google: {e}") from e

        if response.status_code >= 400:
            detail, provider_status = _error_detail(response)
            logger.info("%s %s -> %s (%s)", method, url, response.status_code, provider_status or detail)
            if provider_status == "FAILED_PRECONDITION":
                raise PickerNotReadyError(response.status_code, detail, provider_status)
            raise UpstreamApiError(response.status_code, detail, provider_status)
        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            logger.warning("%s %s -> %s with a non-object body", method, url, response.status_code)
            raise UpstreamApiError(502, "Invalid JSON from Google")
        return body

    async def get_profile(self, access_token: str) -> dict:
        return await self._request(
            "GET",
            f"{self.endpoints.people}/people/me",
            access_token,
            params={"personFields": "names,emailAddresses,photos"},
        )

    async def list_files(self, access_token: str, page_size: int = 20) -> dict:
        return await self._request(
            "GET",
            f"{self.endpoints.drive}/files",
            access_token,
            params={"pageSize": page_size, "fields": DRIVE_FILE_FIELDS, "orderBy": "modifiedTime desc"},
        )

    async def list_drive_photos(self, access_token: str, page_size: int = 20) -> list[dict]:
        data = await self._request(
            "GET",
            f"{self.endpoints.drive}/files",
            access_token,
            params={
                "q": "mimeType contains 'image/'",
                "pageSize": page_size,
                "fields": DRIVE_PHOTO_FIELDS,
                "orderBy": "modifiedTime desc",
            },
        )
        return data.get("files") or []

    async def list_calendar_events(self, access_token: str, date: str) -> dict:
        """Events on the primary calendar for one UTC day (date is YYYY-MM-DD)."""
        return await self._request(
            "GET",
            f"{self.endpoints.calendar}/calendars/primary/events",
            access_token,
            params={
                "timeMin": f"{date}T00:00:00Z",
                "timeMax": f"{date}T23:59:59Z",
                "maxResults": 20,
                "singleEvents": "true",
                "orderBy": "startTime",
            },
        )

    async def create_picker_session(self, access_token: str) -> dict:
        return await self._request("POST", f"{self.endpoints.picker}/sessions", access_token, json={})

    async def get_picker_session(self, access_token: str, session_id: str) -> dict:
        return await self._request("GET", f"{self.endpoints.picker}/sessions/{session_id}", access_token)

    async def list_picker_media(self, access_token: str, session_id: str, page_size: int = 25) -> list[dict]:
        """Raises PickerNotReadyError while the user is still picking."""
        data = await self._request(
            "GET",
            f"{self.endpoints.picker}/mediaItems",
            access_token,
            params={"sessionId": session_id, "pageSize": page_size},
        )
        return data.get("mediaItems") or []
