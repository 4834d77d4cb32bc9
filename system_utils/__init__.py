"""
System Utils Package

The internal structure is:
    state.py         - PlaybackState snapshot, status enum, constants, task tracking
    helpers.py       - Worker pool, tracked tasks, cache key normalization
    image.py         - Artwork decoding and PNG encoding
    memory_cache.py  - Bounded LRU artwork cache
    prefetch.py      - Single-flight fetch coordinator
    album_art.py     - Disk cache and the memory -> disk -> Web API provider
    now_playing.py   - Polling state machine
    island.py        - Observable model for the island UI
    sources/         - Player control sources (AppleScript Spotify)
"""

from .state import (
    PlaybackState,
    PlayerStatus,
    IDLE_STATE,
    NO_TRACK_TEXT,
    UNKNOWN_ARTIST_TEXT,
)
from .helpers import (
    normalize_cache_key,
    cache_file_name,
    create_tracked_task,
    run_in_daemon_executor,
    shutdown_daemon_executor,
)
from .image import ArtworkImage, decode_image
from .memory_cache import MemoryArtCache
from .prefetch import AlbumArtPrefetcher, InFlightFetch
from .album_art import AlbumArtProvider, DiskArtCache
from .now_playing import NowPlayingMonitor
from .island import IslandModel

__all__ = [
    'PlaybackState',
    'PlayerStatus',
    'IDLE_STATE',
    'NO_TRACK_TEXT',
    'UNKNOWN_ARTIST_TEXT',
    'normalize_cache_key',
    'cache_file_name',
    'create_tracked_task',
    'run_in_daemon_executor',
    'shutdown_daemon_executor',
    'ArtworkImage',
    'decode_image',
    'MemoryArtCache',
    'AlbumArtPrefetcher',
    'InFlightFetch',
    'AlbumArtProvider',
    'DiskArtCache',
    'NowPlayingMonitor',
    'IslandModel',
]
