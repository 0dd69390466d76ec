"""
Pytest configuration for api_relay. Client settings are set before the package is
imported so config.py picks them up; Google is replaced by httpx.MockTransport.
"""
import os

os.environ["GOOGLE_CLIENT_ID"] = "test-client-id"
os.environ["GOOGLE_CLIENT_SECRET"] = "test-client-secret"
os.environ["OAUTH_REDIRECT_URI"] = "http://localhost:3000"
os.environ["RELAY_RATE_LIMIT_OAUTH_PER_MINUTE"] = "1000"

import httpx  # noqa: E402
import pytest  # noqa: E402


class FakeGoogle:
    """
    Minimal stand-in for Google endpoints. Register responses per (method, path);
    a list of responses is served in order, the last one repeating.
    """

    def __init__(self):
        self.routes: dict[tuple[str, str], list[httpx.Response]] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, path: str, *responses: httpx.Response) -> None:
        self.routes[(method, path)] = list(responses)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json={"error": {"code": 404, "message": "not found", "status": "NOT_FOUND"}})
        if len(queue) > 1:
            return queue.pop(0)
        return queue[0]

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def google():
    return FakeGoogle()


@pytest.fixture
def sleep():
    return SleepRecorder()


def not_ready_response() -> httpx.Response:
    return httpx.Response(
        400,
        json={
            "error": {
                "code": 400,
                "message": "User has not finished picking media items.",
                "status": "FAILED_PRECONDITION",
            }
        },
    )


def picker_item(item_id: str = "m1", base_url: str = "https://lh3.example/abc", **media_file) -> dict:
    mf = {"baseUrl": base_url, "mimeType": "image/jpeg", "filename": f"{item_id}.jpg"}
    mf.update(media_file)
    return {
        "id": item_id,
        "createTime": "2024-05-01T10:00:00Z",
        "type": "PHOTO",
        "mediaFile": {**mf, "mediaFileMetadata": {"width": 4032, "height": 3024}},
    }


@pytest.fixture
def not_ready():
    return not_ready_response


@pytest.fixture
def make_picker_item():
    return picker_item
