import sys
import unittest
from pathlib import Path

import httpx

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from spotify_api.client import SpotifyClient, parse_retry_after
from spotify_api.errors import (
    AccessDenied,
    AuthExpired,
    InvalidInput,
    NetworkError,
    NotFound,
    RateLimited,
    RemoteRequestError,
    RemoteServerError,
)
from tests.fakes import RecordingSleep, StaticTokens, mock_transport


def make_client(*responses, tokens=None):
    transport, seen = mock_transport(*responses)
    sleep = RecordingSleep()
    client = SpotifyClient({}, tokens or StaticTokens(), transport=transport, sleep=sleep)
    return client, seen, sleep


class TestRequest(unittest.IsolatedAsyncioTestCase):
    async def test_bearer_token_fetched_before_every_call(self):
        tokens = StaticTokens()
        client, seen, _ = make_client(
            httpx.Response(200, json={"id": "me"}),
            httpx.Response(200, json={"id": "me"}),
            tokens=tokens,
        )

        self.assertEqual(await client.me(), {"id": "me"})
        await client.me()

        self.assertEqual(tokens.calls, 2)
        self.assertEqual(seen[0].headers["Authorization"], "Bearer tok-1")
        self.assertEqual(seen[1].headers["Authorization"], "Bearer tok-2")
        self.assertEqual(seen[0].url, httpx.URL("https://api.spotify.com/v1/me"))

    async def test_no_token_means_auth_expired_without_request(self):
        client, seen, _ = make_client(tokens=StaticTokens(available=False))
        with self.assertRaises(AuthExpired):
            await client.me()
        self.assertEqual(seen, [])

    async def test_single_rate_limit_is_retried_transparently(self):
        client, seen, sleep = make_client(
            httpx.Response(429, headers={"Retry-After": "2"}),
            httpx.Response(200, json={"items": ["A"]}),
        )

        result = await client.request("GET", "/me/playlists")

        self.assertEqual(result, {"items": ["A"]})
        self.assertEqual(sleep.calls, [2.0])
        self.assertEqual(len(seen), 2)

    async def test_second_rate_limit_is_surfaced(self):
        client, seen, sleep = make_client(
            httpx.Response(429, headers={"Retry-After": "3"}),
            httpx.Response(429, headers={"Retry-After": "3"}),
        )

        with self.assertRaises(RateLimited) as ctx:
            await client.request("GET", "/me")

        self.assertEqual(len(seen), 2)
        self.assertEqual(sleep.calls, [3.0])
        self.assertEqual(ctx.exception.retry_after, 3.0)

    async def test_infinite_retry_after_uses_default_wait(self):
        client, _, sleep = make_client(
            httpx.Response(429, headers={"Retry-After": "inf"}),
            httpx.Response(200, json={"id": "me"}),
        )

        self.assertEqual(await client.me(), {"id": "me"})
        self.assertEqual(sleep.calls, [1.0])

    async def test_status_mapping(self):
        cases = [
            (401, AuthExpired),
            (403, AccessDenied),
            (404, NotFound),
            (500, RemoteServerError),
            (503, RemoteServerError),
            (400, RemoteRequestError),
        ]
        for status, expected in cases:
            with self.subTest(status=status):
                client, _, _ = make_client(httpx.Response(status, json={}))
                with self.assertRaises(expected):
                    await client.request("GET", "/me")

    async def test_other_4xx_carries_remote_message(self):
        client, _, _ = make_client(httpx.Response(400, json={"error": {"status": 400, "message": "invalid id"}}))
        with self.assertRaises(RemoteRequestError) as ctx:
            await client.request("GET", "/audio-features", params={"ids": "x"})
        self.assertEqual(ctx.exception.message, "invalid id")
        self.assertEqual(ctx.exception.status_code, 400)

    async def test_connection_failure_is_network_error(self):
        client, _, _ = make_client(httpx.ConnectError)
        with self.assertRaises(NetworkError):
            await client.me()

    async def test_timeout_is_network_error(self):
        client, _, _ = make_client(httpx.ReadTimeout)
        with self.assertRaises(NetworkError):
            await client.me()

    async def test_empty_body_returns_empty_dict(self):
        client, _, _ = make_client(httpx.Response(204))
        self.assertEqual(await client.request("PUT", "/me/following"), {})

    async def test_non_json_body_is_server_error(self):
        client, _, _ = make_client(httpx.Response(200, text="<html>oops</html>"))
        with self.assertRaises(RemoteServerError):
            await client.me()

    async def test_follows_absolute_next_url(self):
        client, seen, _ = make_client(httpx.Response(200, json={"items": []}))
        await client.request("GET", "https://api.spotify.com/v1/playlists/abc/tracks?offset=100&limit=100")
        self.assertEqual(seen[0].url.params["offset"], "100")

    async def test_refuses_foreign_absolute_url(self):
        client, seen, _ = make_client()
        with self.assertRaises(InvalidInput):
            await client.request("GET", "https://evil.example/v1/me")
        self.assertEqual(seen, [])

    async def test_audio_features_joins_ids(self):
        client, seen, _ = make_client(httpx.Response(200, json={"audio_features": []}))
        await client.audio_features(["a1", "b2"])
        self.assertEqual(seen[0].url.params["ids"], "a1,b2")


class TestHelpers(unittest.TestCase):
    def test_parse_retry_after(self):
        self.assertEqual(parse_retry_after("5"), 5.0)
        self.assertEqual(parse_retry_after(None), 1.0)
        self.assertEqual(parse_retry_after("soon"), 1.0)
        self.assertEqual(parse_retry_after("-3"), 0.0)
        self.assertEqual(parse_retry_after("inf"), 1.0)
        self.assertEqual(parse_retry_after("nan"), 1.0)

    def test_playlist_tracks_path(self):
        self.assertEqual(SpotifyClient.playlist_tracks_path("37i9dQZF1DXcBWIGoYBM5M"), "/playlists/37i9dQZF1DXcBWIGoYBM5M/tracks?limit=100")
        with self.assertRaises(InvalidInput):
            SpotifyClient.playlist_tracks_path("../me")
        with self.assertRaises(InvalidInput):
            SpotifyClient.playlist_tracks_path("")


if __name__ == "__main__":
    unittest.main(verbosity=2)
