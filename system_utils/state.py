"""
Shared State Module for system_utils package.
Contains the playback snapshot type, status enum, constants and task tracking.

CRITICAL: This module must not import anything else from the system_utils
package to prevent circular imports.
"""
from __future__ import annotations
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, TYPE_CHECKING

import config

if TYPE_CHECKING:
    from .image import ArtworkImage

# ==========================================
# CONSTANTS
# ==========================================

# Sentinel texts shown when nothing useful is known about the track
NO_TRACK_TEXT = "No track playing"
UNKNOWN_ARTIST_TEXT = "Unknown artist"
NOT_RESPONDING_TRACK_TEXT = "Spotify not responding"
NOT_RESPONDING_ARTIST_TEXT = "Try restarting Spotify"

# Intervals (from config)
POLL_INTERVAL = config.NOW_PLAYING["poll_interval"]
RETRY_DELAY = config.NOW_PLAYING["retry_delay"]
MAX_RETRIES = config.NOW_PLAYING["max_retries"]
COMMAND_REFRESH_DELAY = config.NOW_PLAYING["command_refresh_delay"]
INITIAL_ART_DELAY = config.NOW_PLAYING["initial_art_delay"]

# Memory cache limits (from config)
MEMORY_COUNT_LIMIT = config.ALBUM_ART["memory_count_limit"]
MEMORY_COST_LIMIT = config.ALBUM_ART["memory_cost_limit"]

# ==========================================
# TASK TRACKING
# ==========================================

# Strong references to background tasks so they are not garbage collected
_background_tasks: set = set()


# ==========================================
# PLAYBACK SNAPSHOT
# ==========================================

class PlayerStatus(Enum):
    """Monitor state machine states."""
    UNKNOWN = "unknown"
    ABSENT = "absent"
    NO_TRACK = "no_track"
    PLAYING = "playing"
    PAUSED = "paused"
    NOT_RESPONDING = "not_responding"

    @property
    def is_present(self) -> bool:
        return self in (PlayerStatus.NO_TRACK, PlayerStatus.PLAYING,
                        PlayerStatus.PAUSED, PlayerStatus.NOT_RESPONDING)


@dataclass(frozen=True)
class PlaybackState:
    """
    Immutable snapshot of what the player is doing.

    Only NowPlayingMonitor creates new snapshots; observers read them.
    position/duration are in seconds and may be None (unreliable source).
    """
    status: PlayerStatus = PlayerStatus.UNKNOWN
    is_running: bool = False
    is_playing: bool = False
    track: str = NO_TRACK_TEXT
    artist: str = UNKNOWN_ARTIST_TEXT
    album: str = ""
    position: Optional[float] = None
    duration: Optional[float] = None
    artwork: Optional["ArtworkImage"] = None

    @property
    def has_track(self) -> bool:
        return self.status in (PlayerStatus.PLAYING, PlayerStatus.PAUSED)

    def with_changes(self, **changes) -> "PlaybackState":
        return replace(self, **changes)

    def differs_only_in_progress(self, other: "PlaybackState") -> bool:
        """True if the two snapshots differ in position/duration and nothing else."""
        return (self != other and
                replace(self, position=None, duration=None) ==
                replace(other, position=None, duration=None))


IDLE_STATE = PlaybackState()
