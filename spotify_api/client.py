import asyncio
import json
import logging
import math
import re
import urllib.parse
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from .errors import (
    AccessDenied,
    AuthExpired,
    InvalidInput,
    NetworkError,
    NotFound,
    RateLimited,
    RemoteRequestError,
    RemoteServerError,
)

logger = logging.getLogger(__name__)

SPOTIFY_API_BASE_URL = "https://api.spotify.com/v1"
DEFAULT_REQUEST_TIMEOUT = 15.0
DEFAULT_RETRY_AFTER = 1.0

SPOTIFY_ID_RE = re.compile(r"^[0-9A-Za-z]+$")

TokenProvider = Callable[[], Awaitable[Optional[str]]]
Sleep = Callable[[float], Awaitable[Any]]


def is_valid_spotify_id(value: Any) -> bool:
    return isinstance(value, str) and bool(SPOTIFY_ID_RE.match(value))


def parse_retry_after(value: Optional[str]) -> float:
    """Retry-After in seconds; 1s when missing, unparseable or not finite."""
    if value is None:
        return DEFAULT_RETRY_AFTER
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return DEFAULT_RETRY_AFTER
    if not math.isfinite(seconds):
        return DEFAULT_RETRY_AFTER
    return max(0.0, seconds)


def _remote_message(resp: httpx.Response) -> Optional[str]:
    try:
        data = resp.json()
    except (json.JSONDecodeError, ValueError):
        return None
    if not isinstance(data, dict):
        return None
    error = data.get("error")
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if isinstance(error, str) and error:
        return str(data.get("error_description") or error)
    return None


class SpotifyClient:
    """Async Spotify Web API client.

    Design goals:
    - Fetch a fresh token from the provider before every attempt
    - Retry a 429 exactly once, honoring Retry-After
    - Translate HTTP failures into the errors in spotify_api.errors
    """

    def __init__(
        self,
        config: Dict[str, Any],
        token_provider: TokenProvider,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Optional[Sleep] = None,
        base_url: str = SPOTIFY_API_BASE_URL,
    ):
        self.config = config or {}
        self.token_provider = token_provider
        self.transport = transport
        self.sleep = sleep if sleep is not None else asyncio.sleep
        self.base_url = base_url.rstrip("/")
        self.timeout = float(self.config.get("spotify_request_timeout", DEFAULT_REQUEST_TIMEOUT))

    # -----------------
    # HTTP helpers
    # -----------------

    def resolve_url(self, path: str) -> str:
        """Turn an API path or an absolute ``next`` URL into a request URL.

        Absolute URLs must point at the API base; the bearer token is never
        sent to any other host.
        """

        path = str(path or "").strip()
        if not path:
            raise InvalidInput("Request path is required.")

        if "://" in path:
            if not (path == self.base_url or path.startswith(self.base_url + "/") or path.startswith(self.base_url + "?")):
                raise InvalidInput("Refusing to follow a URL outside the Spotify API.", details={"url": path})
            return path

        if not path.startswith("/"):
            path = "/" + path
        return f"{self.base_url}{path}"

    async def _send(
        self,
        method: str,
        url: str,
        token: str,
        params: Optional[Dict[str, Any]],
        body: Optional[Any],
    ) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }
        query = {k: str(v) for k, v in params.items() if v is not None} if params else None
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                return await client.request(method.upper(), url, params=query, json=body, headers=headers)
        except httpx.TimeoutException as e:
            raise NetworkError(
                "Spotify did not respond in time. Please try again.",
                details={"url": url, "original_error": str(e)},
            ) from e
        except httpx.HTTPError as e:
            raise NetworkError(details={"url": url, "original_error": str(e)}) from e

    @staticmethod
    def _raise_for_status(resp: httpx.Response) -> None:
        status = resp.status_code
        if status < 400:
            return

        details = {"status": status, "url": str(resp.request.url) if resp.request else None}
        if status == 401:
            raise AuthExpired(details=details)
        if status == 403:
            raise AccessDenied(details=details)
        if status == 404:
            raise NotFound(details=details)
        if status >= 500:
            raise RemoteServerError(details=details)
        raise RemoteRequestError(_remote_message(resp), details=details, status_code=status)

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Any] = None,
    ) -> Dict[str, Any]:
        """Make a Spotify Web API request and return parsed JSON."""

        url = self.resolve_url(path)
        retried = False

        while True:
            token = await self.token_provider()
            if not token:
                raise AuthExpired("Authentication required. Please log in again.")

            resp = await self._send(method, url, token, params, body)

            if resp.status_code == 429:
                delay = parse_retry_after(resp.headers.get("Retry-After"))
                if retried:
                    raise RateLimited(details={"url": url}, retry_after=delay)
                retried = True
                logger.warning(f"Spotify rate limited {method.upper()} {url}; retrying in {delay:g}s")
                await self.sleep(delay)
                continue

            self._raise_for_status(resp)

            if not resp.content:
                return {}
            try:
                payload = resp.json()
            except (json.JSONDecodeError, ValueError) as e:
                raise RemoteServerError(
                    "Spotify returned an unreadable response.",
                    details={"status": resp.status_code, "url": url},
                ) from e
            return payload if isinstance(payload, dict) else {"items": payload}

    # -----------------
    # Convenience endpoints
    # -----------------

    async def me(self) -> Dict[str, Any]:
        return await self.request("GET", "/me")

    async def current_user_playlists(self, *, limit: int = 50, offset: int = 0) -> Dict[str, Any]:
        return await self.request("GET", "/me/playlists", params={"limit": min(50, int(limit)), "offset": offset})

    @staticmethod
    def playlist_tracks_path(playlist_id: str, *, limit: int = 100) -> str:
        if not is_valid_spotify_id(playlist_id):
            raise InvalidInput("Playlist ID is missing or malformed.", details={"playlist_id": playlist_id})
        query = urllib.parse.urlencode({"limit": min(100, int(limit))})
        return f"/playlists/{playlist_id}/tracks?{query}"

    async def audio_features(self, ids: List[str]) -> Dict[str, Any]:
        """Return audio features for up to 100 track ids."""

        if not ids:
            return {"audio_features": []}
        return await self.request("GET", "/audio-features", params={"ids": ",".join(ids)})
