"""
Album Art module for system_utils package.
Disk cache for resolved artwork and the provider that chains
memory cache -> disk cache -> Spotify Web API.

Disk layout: one PNG per cache key, named base64url(key).png. Files are
written once and never expire.

Dependencies: helpers, image, memory_cache, prefetch
"""
from __future__ import annotations
import os
import uuid
from pathlib import Path
from typing import Optional, TYPE_CHECKING

from .helpers import cache_file_name, normalize_cache_key, run_in_daemon_executor
from .image import ArtworkImage, decode_image
from .memory_cache import MemoryArtCache
from .prefetch import AlbumArtPrefetcher
from config import ALBUM_ART_CACHE_DIR
from logging_config import get_logger

if TYPE_CHECKING:
    from providers.spotify_api import SpotifyWebAPI

logger = get_logger(__name__)


class DiskArtCache:
    """On-disk PNG store. Read failures are misses; write failures are logged and dropped."""

    def __init__(self, cache_dir: Optional[Path] = None):
        self.cache_dir = Path(cache_dir) if cache_dir else ALBUM_ART_CACHE_DIR
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning(f"Failed to create album art cache directory {self.cache_dir}: {e}")

    def path_for(self, key: str) -> Path:
        return self.cache_dir / cache_file_name(key)

    def get(self, key: str) -> Optional[ArtworkImage]:
        path = self.path_for(key)
        try:
            if not path.is_file():
                return None
            raw = path.read_bytes()
        except OSError as e:
            logger.debug(f"Disk cache read failed for {key!r}: {e}")
            return None

        image = decode_image(raw)
        if image is None:
            # Corrupt file: the next successful fetch overwrites it
            logger.debug(f"Disk cache entry undecodable, treating as miss: {path.name}")
            return None
        logger.debug(f"Found cached album art on disk: {key!r}")
        return image

    def put(self, key: str, image: ArtworkImage) -> bool:
        path = self.path_for(key)
        temp_path = path.with_name(f"{path.stem}_{uuid.uuid4().hex}.tmp")
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            temp_path.write_bytes(image.png_data)
            os.replace(temp_path, path)
            logger.debug(f"Cached album art on disk: {key!r}")
            return True
        except OSError as e:
            logger.warning(f"Failed to write album art cache file {path.name}: {e}")
            try:
                if temp_path.exists():
                    os.remove(temp_path)
            except OSError:
                pass
            return False


class AlbumArtProvider:
    """
    Resolves artwork for a track.

    Lookup order is memory cache, then disk cache, then the Web API. Network
    fetches go through the prefetcher, so one key never has two fetches running.
    """

    def __init__(
        self,
        web_api: "SpotifyWebAPI",
        disk_cache: Optional[DiskArtCache] = None,
        memory_cache: Optional[MemoryArtCache] = None,
        prefetcher: Optional[AlbumArtPrefetcher] = None,
    ):
        self.web_api = web_api
        self.disk_cache = disk_cache or DiskArtCache()
        if prefetcher is None:
            prefetcher = AlbumArtPrefetcher(memory_cache or MemoryArtCache())
        self.prefetcher = prefetcher
        self.memory_cache = prefetcher.memory_cache

    async def get_album_art(self, track: str, artist: str) -> Optional[ArtworkImage]:
        key = normalize_cache_key(track, artist)
        return await self.prefetcher.resolve(key, lambda: self._fetch(key, track, artist))

    def prefetch_album_art(self, track: str, artist: str) -> None:
        key = normalize_cache_key(track, artist)
        self.prefetcher.prefetch(key, lambda: self._fetch(key, track, artist))

    async def _fetch(self, key: str, track: str, artist: str) -> Optional[ArtworkImage]:
        cached = await run_in_daemon_executor(self.disk_cache.get, key)
        if cached is not None:
            return cached

        logger.info(f"Cache miss - fetching from Web API: {track} - {artist}")
        raw = await self.web_api.search_album_art(track, artist)
        if raw is None:
            reason = self.web_api.last_failure.value if self.web_api.last_failure else "unknown"
            logger.info(f"No album art for: {track} - {artist} ({reason})")
            return None

        image = await run_in_daemon_executor(decode_image, raw)
        if image is None:
            logger.warning(f"Downloaded album art could not be decoded: {track} - {artist}")
            return None

        await run_in_daemon_executor(self.disk_cache.put, key, image)
        return image
