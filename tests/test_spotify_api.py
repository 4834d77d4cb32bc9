"""
Tests for the Spotify Web API client: token exchange, search, download, backoff
"""
import asyncio
import time
from unittest.mock import MagicMock

import pytest
import requests
import responses
from spotipy.exceptions import SpotifyException

from providers.spotify_api import AccessToken, ArtFailure, SpotifyWebAPI

IMAGE_URL = "https://i.scdn.co/image/abc123"


def token_response(token="tok-1", expires_in=3600):
    response = MagicMock()
    response.status_code = 200
    response.raise_for_status.return_value = None
    response.json.return_value = {
        "access_token": token,
        "token_type": "Bearer",
        "expires_in": expires_in,
    }
    return response


def image_response(content=b"image-bytes", status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.content = content
    return response


def search_results(images=None, items=True):
    if not items:
        return {"tracks": {"items": []}}
    if images is None:
        images = [{"url": IMAGE_URL, "height": 640, "width": 640}]
    return {"tracks": {"items": [{"album": {"images": images}}]}}


@pytest.fixture
def session():
    s = MagicMock(spec=requests.Session)
    s.post.return_value = token_response()
    s.get.return_value = image_response()
    return s


@pytest.fixture
def sp():
    client = MagicMock()
    client.search.return_value = search_results()
    return client


@pytest.fixture
def api(session, sp):
    return SpotifyWebAPI(
        client_id="id",
        client_secret="secret",
        session=session,
        client_factory=lambda token: sp,
        timeout=1,
        download_timeout=1,
    )


class TestAuthentication:
    async def test_authenticate_stores_token(self, api, session):
        assert await api.authenticate() is True
        assert api.token.access_token == "tok-1"
        assert api.token.expires_in == 3600
        _, kwargs = session.post.call_args
        assert kwargs["data"] == {"grant_type": "client_credentials"}
        assert kwargs["auth"] == ("id", "secret")

    async def test_failure_leaves_token_absent(self, api, session):
        session.post.side_effect = requests.ConnectionError("offline")
        assert await api.authenticate() is False
        assert api.token is None
        assert api.request_stats["errors"]["auth"] == 1

    async def test_http_error_leaves_token_absent(self, api, session):
        bad = token_response()
        bad.raise_for_status.side_effect = requests.HTTPError("400 invalid_client")
        session.post.return_value = bad
        assert await api.authenticate() is False
        assert api.token is None

    async def test_concurrent_refreshes_share_one_request(self, api, session):
        def slow_post(*args, **kwargs):
            time.sleep(0.05)
            return token_response()
        session.post.side_effect = slow_post

        results = await asyncio.gather(*(api.authenticate() for _ in range(5)))

        assert results == [True] * 5
        assert session.post.call_count == 1

    async def test_missing_credentials_never_call_endpoint(self, session, sp):
        api = SpotifyWebAPI(client_id="", client_secret="", session=session,
                            client_factory=lambda token: sp)
        assert await api.authenticate() is False
        assert await api.search_album_art("Song", "Band") is None
        assert api.last_failure == ArtFailure.NO_TOKEN
        session.post.assert_not_called()
        sp.search.assert_not_called()

    def test_token_expiry(self):
        now = 1_000_000.0
        fresh = AccessToken("t", expires_in=3600, obtained_at=now)
        assert not fresh.is_expired(now + 100)
        assert fresh.is_expired(now + 3600 - 30)  # inside the safety margin


class TestSearchAlbumArt:
    async def test_happy_path(self, api, sp, session):
        result = await api.search_album_art(" Song ", "Band ")

        assert result == b"image-bytes"
        assert api.last_failure is None
        sp.search.assert_called_once_with(q="Song artist:Band", type="track", limit=1)
        session.get.assert_called_once_with(IMAGE_URL, timeout=1)

    async def test_lazy_authentication_on_first_search(self, api, session):
        assert api.token is None
        assert await api.search_album_art("Song", "Band") == b"image-bytes"
        assert session.post.call_count == 1

    async def test_token_is_reused(self, api, session):
        await api.search_album_art("Song", "Band")
        await api.search_album_art("Other", "Band")
        assert session.post.call_count == 1

    async def test_expired_token_is_refreshed(self, api, session):
        api._token = AccessToken("old", expires_in=10, obtained_at=0)
        await api.search_album_art("Song", "Band")
        assert session.post.call_count == 1
        assert api.token.access_token == "tok-1"

    async def test_auth_error_refreshes_and_retries_once(self, api, sp, session):
        sp.search.side_effect = [
            SpotifyException(401, -1, "The access token expired"),
            search_results(),
        ]
        await api.authenticate()

        assert await api.search_album_art("Song", "Band") == b"image-bytes"
        assert session.post.call_count == 2
        assert sp.search.call_count == 2

    async def test_repeated_auth_error_gives_up(self, api, sp):
        sp.search.side_effect = SpotifyException(401, -1, "nope")
        assert await api.search_album_art("Song", "Band") is None
        assert api.last_failure == ArtFailure.SEARCH_FAILED
        assert sp.search.call_count == 2

    async def test_not_found(self, api, sp, session):
        sp.search.return_value = search_results(items=False)
        assert await api.search_album_art("Song", "Band") is None
        assert api.last_failure == ArtFailure.NOT_FOUND
        session.get.assert_not_called()

    async def test_no_images_is_not_found(self, api, sp):
        sp.search.return_value = search_results(images=[])
        assert await api.search_album_art("Song", "Band") is None
        assert api.last_failure == ArtFailure.NOT_FOUND

    async def test_malformed_response(self, api, sp):
        sp.search.return_value = {"unexpected": True}
        assert await api.search_album_art("Song", "Band") is None
        assert api.last_failure == ArtFailure.SEARCH_FAILED

    async def test_search_network_error(self, api, sp):
        sp.search.side_effect = requests.ConnectionError("reset")
        assert await api.search_album_art("Song", "Band") is None
        assert api.last_failure == ArtFailure.SEARCH_FAILED

    async def test_download_failure_is_distinct_from_not_found(self, api, session):
        session.get.return_value = image_response(status_code=404)
        assert await api.search_album_art("Song", "Band") is None
        assert api.last_failure == ArtFailure.DOWNLOAD_FAILED

    async def test_download_exception(self, api, session):
        session.get.side_effect = requests.Timeout("slow cdn")
        assert await api.search_album_art("Song", "Band") is None
        assert api.last_failure == ArtFailure.DOWNLOAD_FAILED
        assert api.request_stats["errors"]["timeout"] == 1

    async def test_rate_limit_starts_backoff(self, api, sp):
        sp.search.side_effect = SpotifyException(429, -1, "slow down", headers={"Retry-After": "5"})

        assert await api.search_album_art("Song", "Band") is None
        assert api.last_failure == ArtFailure.RATE_LIMITED
        assert api.in_backoff()
        assert 4 <= api._backoff_until - time.time() <= 5

        sp.search.reset_mock()
        assert await api.search_album_art("Song", "Band") is None
        sp.search.assert_not_called()

    async def test_request_stats(self, api):
        await api.search_album_art("Song", "Band")
        stats = api.get_request_stats()
        assert stats["API Calls"] == {"token": 1, "search": 1, "image": 1}
        assert stats["Token"] == "valid"


class TestRealSpotipyClient:
    """Runs the default spotipy client over a mocked HTTP transport."""

    async def test_rate_limit_honours_retry_after_header(self):
        api = SpotifyWebAPI(client_id="id", client_secret="secret", timeout=1, download_timeout=1)

        with responses.RequestsMock() as rsps:
            rsps.add(responses.POST, api.token_url, json={
                "access_token": "tok-1", "token_type": "Bearer", "expires_in": 3600,
            })
            rsps.add(
                responses.GET,
                "https://api.spotify.com/v1/search",
                status=429,
                headers={"Retry-After": "2"},
                json={"error": {"status": 429, "message": "API rate limit exceeded"}},
            )

            assert await api.search_album_art("Song", "Band") is None

        assert api.last_failure == ArtFailure.RATE_LIMITED
        assert 1 <= api._backoff_until - time.time() <= 2
        assert api.request_stats["errors"]["rate_limit"] == 1

    async def test_search_and_download(self):
        api = SpotifyWebAPI(client_id="id", client_secret="secret", timeout=1, download_timeout=1)

        with responses.RequestsMock() as rsps:
            rsps.add(responses.POST, api.token_url, json={
                "access_token": "tok-1", "token_type": "Bearer", "expires_in": 3600,
            })
            rsps.add(responses.GET, "https://api.spotify.com/v1/search", json=search_results())
            rsps.add(responses.GET, IMAGE_URL, body=b"image-bytes")

            assert await api.search_album_art("Song", "Band") == b"image-bytes"
            assert rsps.calls[1].request.headers["Authorization"] == "Bearer tok-1"
