"""
Player sources.

Only one player is controlled at a time; the registry maps the configured
source name to its class so tests and future sources can swap it out.
"""
from typing import Dict, Optional, Type

from .base import (
    BasePlayerSource,
    CommandResult,
    PlayerCommand,
    ReadingKind,
    TrackReading,
)
from .spotify_applescript import SpotifyAppleScriptSource
from logging_config import get_logger

logger = get_logger(__name__)

_registry: Dict[str, Type[BasePlayerSource]] = {
    SpotifyAppleScriptSource.name: SpotifyAppleScriptSource,
}


def get_player_source(name: Optional[str] = None) -> BasePlayerSource:
    """Create the player source registered under name (default: AppleScript Spotify)."""
    source_cls = _registry.get(name or SpotifyAppleScriptSource.name)
    if source_cls is None:
        raise KeyError(f"Unknown player source: {name}")
    source = source_cls()
    if not source.is_available():
        logger.warning(f"Player source '{source.name}' is not available on this platform")
    return source


__all__ = [
    'BasePlayerSource',
    'CommandResult',
    'PlayerCommand',
    'ReadingKind',
    'TrackReading',
    'SpotifyAppleScriptSource',
    'get_player_source',
]
