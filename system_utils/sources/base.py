"""
Base class for player control sources.

A source answers three questions about one media player:
1. Is the player process running?
2. What is it playing right now? (a TrackReading)
3. Did a control command go through? (a CommandResult)

Sources never raise for player failures. A broken scripting bridge is an
ERROR reading or a failed CommandResult, which the monitor retries or logs.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional
import platform


class ReadingKind(Enum):
    TRACK = "track"          # track + artist + playing flag parsed
    NO_TRACK = "no_track"    # player alive, nothing loaded
    ERROR = "error"          # transient failure, worth retrying


class PlayerCommand(Enum):
    PREVIOUS = "previous track"
    NEXT = "next track"
    TOGGLE_PLAY_PAUSE = "playpause"


@dataclass(frozen=True)
class TrackReading:
    """Result of one now-playing query."""
    kind: ReadingKind
    track: str = ""
    artist: str = ""
    is_playing: bool = False
    album: Optional[str] = None
    position: Optional[float] = None   # seconds
    duration: Optional[float] = None   # seconds
    message: Optional[str] = None

    @classmethod
    def playing(cls, track: str, artist: str, is_playing: bool, **extra) -> "TrackReading":
        return cls(ReadingKind.TRACK, track=track, artist=artist, is_playing=is_playing, **extra)

    @classmethod
    def no_track(cls) -> "TrackReading":
        return cls(ReadingKind.NO_TRACK)

    @classmethod
    def error(cls, message: str) -> "TrackReading":
        return cls(ReadingKind.ERROR, message=message)


@dataclass(frozen=True)
class CommandResult:
    success: bool
    message: str = ""


class BasePlayerSource(ABC):
    """
    Abstract base class for player sources.

    Required methods:
        is_running() - Liveness of the player process
        get_current_track() - Current TrackReading
        send_command(command) - Previous / Next / Toggle play-pause
    """

    name: str = "base"
    platforms = ("Windows", "Linux", "Darwin")

    def is_available(self) -> bool:
        """Default implementation checks the current platform."""
        return platform.system() in self.platforms

    @abstractmethod
    async def is_running(self) -> bool:
        """True if the player process is alive. Scripting failures count as not running."""

    @abstractmethod
    async def get_current_track(self) -> TrackReading:
        """Query the current track, artist and playing flag."""

    @abstractmethod
    async def send_command(self, command: PlayerCommand) -> CommandResult:
        """Send a fire-and-forget control command."""
