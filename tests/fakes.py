"""Shared fakes: no test in this suite touches the network."""

from typing import Any, Dict, List, Optional, Tuple

import httpx


class FakeTokenEndpoint:
    """Returns queued (status, payload) tuples, or raises queued exceptions."""

    def __init__(self, *responses: Any):
        self.responses: List[Any] = list(responses)
        self.forms: List[Dict[str, str]] = []

    async def post_form(self, form: Dict[str, str]) -> Tuple[int, Dict[str, Any]]:
        self.forms.append(dict(form))
        if not self.responses:
            raise AssertionError("unexpected token request")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FixedClock:
    def __init__(self, now: int = 1_700_000_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now


class RecordingSleep:
    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class StaticTokens:
    """Token provider handing out tok-1, tok-2, ... (or None when exhausted)."""

    def __init__(self, available: bool = True):
        self.available = available
        self.calls = 0

    async def __call__(self) -> Optional[str]:
        self.calls += 1
        return f"tok-{self.calls}" if self.available else None


def mock_transport(*responses: Any) -> Tuple[httpx.MockTransport, List[httpx.Request]]:
    """MockTransport answering with queued responses; returns it with the request log.

    Each queued item is an httpx.Response, or an exception class from httpx
    that is raised for that request.
    """

    queue = list(responses)
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if not queue:
            raise AssertionError(f"unexpected request: {request.method} {request.url}")
        item = queue.pop(0)
        if isinstance(item, type) and issubclass(item, Exception):
            raise item("simulated failure", request=request)
        return item

    return httpx.MockTransport(handler), seen


def track_item(track_id: str, *artists: str, duration_ms: int = 180000) -> Dict[str, Any]:
    return {
        "added_at": "2020-01-01T00:00:00Z",
        "track": {
            "id": track_id,
            "name": f"Song {track_id}",
            "duration_ms": duration_ms,
            "artists": [{"name": a} for a in artists],
            "album": {"name": "Album"},
        },
    }


def feature(track_id: str, energy: float = 0.5, valence: float = 0.5, danceability: float = 0.5, tempo: float = 120.0) -> Dict[str, Any]:
    return {
        "id": track_id,
        "energy": energy,
        "valence": valence,
        "danceability": danceability,
        "tempo": tempo,
    }
