"""
Spotify Web API Integration
Client-credentials token exchange, track search and album art download.

Everything here degrades to None: the caller only ever sees "artwork bytes"
or "no artwork". The reason for a None is kept in `last_failure` and the
counters in `request_stats` for diagnostics.
"""
from __future__ import annotations
import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

import requests
import spotipy
from spotipy.exceptions import SpotifyException

from config import SPOTIFY, ALBUM_ART
from logging_config import get_logger
from system_utils.helpers import run_in_daemon_executor

logger = get_logger(__name__)

# Treat tokens as expired slightly early so a search never races the expiry
TOKEN_EXPIRY_MARGIN = 60


class ArtFailure(Enum):
    """Why search_album_art returned None."""
    NO_TOKEN = "no_token"
    RATE_LIMITED = "rate_limited"
    SEARCH_FAILED = "search_failed"
    NOT_FOUND = "not_found"
    DOWNLOAD_FAILED = "download_failed"


@dataclass(frozen=True)
class AccessToken:
    """Bearer token from the client-credentials grant."""
    access_token: str
    token_type: str = "Bearer"
    expires_in: int = 3600
    obtained_at: float = 0.0

    @property
    def expires_at(self) -> float:
        return self.obtained_at + self.expires_in

    def is_expired(self, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        return now >= self.expires_at - TOKEN_EXPIRY_MARGIN


class SpotifyWebAPI:
    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        session: Optional[requests.Session] = None,
        client_factory: Optional[Callable[[str], spotipy.Spotify]] = None,
        timeout: Optional[float] = None,
        download_timeout: Optional[float] = None,
    ):
        """
        Args:
            client_id/client_secret: App credentials (default: from config)
            session: requests session used for the token exchange and image downloads
            client_factory: Builds a spotipy client for a bearer token (tests swap this out)
            timeout: API request timeout in seconds
            download_timeout: Image download timeout in seconds
        """
        self.client_id = client_id if client_id is not None else SPOTIFY["client_id"]
        self.client_secret = client_secret if client_secret is not None else SPOTIFY["client_secret"]
        self.token_url = SPOTIFY["token_url"]
        self.timeout = timeout if timeout is not None else SPOTIFY["timeout"]
        self.download_timeout = download_timeout if download_timeout is not None else ALBUM_ART["download_timeout"]
        self.session = session or requests.Session()
        self._client_factory = client_factory or self._default_client

        self._token: Optional[AccessToken] = None
        self._auth_task: Optional[asyncio.Task] = None
        self._backoff_until = 0.0
        self.last_failure: Optional[ArtFailure] = None

        self.request_stats = {
            'total_requests': 0,
            'api_calls': {
                'token': 0,
                'search': 0,
                'image': 0,
            },
            'errors': {
                'auth': 0,
                'rate_limit': 0,
                'timeout': 0,
                'other': 0,
            }
        }

    @property
    def token(self) -> Optional[AccessToken]:
        return self._token

    @property
    def has_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def _default_client(self, access_token: str) -> spotipy.Spotify:
        # Retries are handled here (401 refresh, 429 backoff), not by urllib3.
        # A plain session has no Retry adapter, so a 429 reaches spotipy as an
        # HTTPError and the SpotifyException keeps the Retry-After header.
        return spotipy.Spotify(
            auth=access_token,
            requests_session=requests.Session(),
            requests_timeout=self.timeout,
        )

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    async def authenticate(self) -> bool:
        """
        Exchange client credentials for a bearer token.

        Concurrent callers share one token request. On failure the token
        stays absent and the next search tries again.
        """
        if self._auth_task is None or self._auth_task.done():
            self._auth_task = asyncio.ensure_future(self._authenticate())
        return await asyncio.shield(self._auth_task)

    async def _authenticate(self) -> bool:
        if not self.has_credentials:
            logger.error("Missing Spotify credentials - album art search disabled")
            self._token = None
            return False

        self.request_stats['total_requests'] += 1
        self.request_stats['api_calls']['token'] += 1
        try:
            token = await run_in_daemon_executor(self._request_token)
        except requests.Timeout:
            self.request_stats['errors']['timeout'] += 1
            logger.warning("Token request timed out")
            token = None
        except (requests.RequestException, ValueError, KeyError, TypeError) as e:
            self.request_stats['errors']['auth'] += 1
            logger.error(f"Token request failed: {e}")
            token = None

        self._token = token
        if token:
            logger.info("Spotify Web API token obtained")
        return token is not None

    def _request_token(self) -> AccessToken:
        """Blocking client-credentials exchange (run in executor)."""
        response = self.session.post(
            self.token_url,
            data={"grant_type": "client_credentials"},
            auth=(self.client_id, self.client_secret),
            timeout=self.timeout,
        )
        response.raise_for_status()
        payload = response.json()
        return AccessToken(
            access_token=payload["access_token"],
            token_type=payload.get("token_type", "Bearer"),
            expires_in=int(payload.get("expires_in", 3600)),
            obtained_at=time.time(),
        )

    def invalidate_token(self) -> None:
        self._token = None

    async def _ensure_token(self) -> Optional[AccessToken]:
        if self._token is None or self._token.is_expired():
            await self.authenticate()
        return self._token

    # ------------------------------------------------------------------
    # Search + download
    # ------------------------------------------------------------------

    def _handle_rate_limit(self, error: SpotifyException) -> None:
        self.request_stats['errors']['rate_limit'] += 1
        retry_after = 30  # Default if header missing
        headers = getattr(error, 'headers', None) or {}
        try:
            retry_after = int(headers.get('Retry-After', retry_after))
        except (TypeError, ValueError):
            pass
        self._backoff_until = time.time() + retry_after
        logger.warning(f"Rate limit hit. Backing off search for {retry_after}s")

    def in_backoff(self) -> bool:
        return time.time() < self._backoff_until

    async def search_album_art(self, track: str, artist: str) -> Optional[bytes]:
        """
        Find the top search result for track + artist and download its first album image.

        Returns the raw image bytes, or None on any failure.
        """
        self.last_failure = None

        if self.in_backoff():
            logger.debug(f"In backoff period. Skipping search for: {track} - {artist}")
            self.last_failure = ArtFailure.RATE_LIMITED
            return None

        token = await self._ensure_token()
        if token is None:
            self.last_failure = ArtFailure.NO_TOKEN
            return None

        image_url = await self._search_image_url(token, track, artist)
        if image_url is None:
            return None

        image = await self._download_image(image_url)
        if image is None:
            self.last_failure = ArtFailure.DOWNLOAD_FAILED
        return image

    async def _search_image_url(self, token: AccessToken, track: str, artist: str) -> Optional[str]:
        query = f"{track.strip()} artist:{artist.strip()}"

        for attempt in range(2):
            self.request_stats['total_requests'] += 1
            self.request_stats['api_calls']['search'] += 1
            try:
                sp = self._client_factory(token.access_token)
                results = await run_in_daemon_executor(
                    lambda: sp.search(q=query, type='track', limit=1)
                )
                return self._extract_image_url(results, track, artist)
            except SpotifyException as e:
                if e.http_status == 401 and attempt == 0:
                    # Token expired server-side: refresh once and retry
                    self.request_stats['errors']['auth'] += 1
                    logger.info("Spotify token rejected, re-authenticating")
                    self.invalidate_token()
                    token = await self._ensure_token()
                    if token is None:
                        self.last_failure = ArtFailure.NO_TOKEN
                        return None
                    continue
                if e.http_status == 429:
                    self._handle_rate_limit(e)
                    self.last_failure = ArtFailure.RATE_LIMITED
                    return None
                self.request_stats['errors']['other'] += 1
                logger.error(f"Search request failed ({e.http_status}): {e.msg}")
            except requests.Timeout:
                self.request_stats['errors']['timeout'] += 1
                logger.error("Search request timed out")
            except (requests.RequestException, ValueError) as e:
                self.request_stats['errors']['other'] += 1
                logger.error(f"Error searching track: {e}")
            self.last_failure = ArtFailure.SEARCH_FAILED
            return None

        self.last_failure = ArtFailure.SEARCH_FAILED
        return None

    def _extract_image_url(self, results: Any, track: str, artist: str) -> Optional[str]:
        try:
            items = results['tracks']['items']
            if not items:
                logger.info(f"No tracks found for: {artist} - {track}")
                self.last_failure = ArtFailure.NOT_FOUND
                return None
            images = items[0]['album']['images']
            if not images or not images[0].get('url'):
                logger.info(f"No album images for: {artist} - {track}")
                self.last_failure = ArtFailure.NOT_FOUND
                return None
            return images[0]['url']
        except (KeyError, IndexError, TypeError) as e:
            logger.error(f"Malformed search response: {e}")
            self.last_failure = ArtFailure.SEARCH_FAILED
            return None

    async def _download_image(self, url: str) -> Optional[bytes]:
        self.request_stats['total_requests'] += 1
        self.request_stats['api_calls']['image'] += 1
        try:
            return await run_in_daemon_executor(self._download_image_sync, url)
        except requests.Timeout:
            self.request_stats['errors']['timeout'] += 1
            logger.warning(f"Image download timed out: {url}")
        except requests.RequestException as e:
            self.request_stats['errors']['other'] += 1
            logger.warning(f"Image download failed: {e}")
        return None

    def _download_image_sync(self, url: str) -> Optional[bytes]:
        response = self.session.get(url, timeout=self.download_timeout)
        if response.status_code != 200:
            logger.warning(f"Image download returned HTTP {response.status_code}: {url}")
            return None
        return response.content or None

    def get_request_stats(self) -> Dict[str, Any]:
        """Get current API request statistics"""
        return {
            'Total Requests': self.request_stats['total_requests'],
            'API Calls': self.request_stats['api_calls'],
            'Errors': self.request_stats['errors'],
            'Token': 'valid' if self._token and not self._token.is_expired() else 'missing',
            'Last Failure': self.last_failure.value if self.last_failure else None,
        }
