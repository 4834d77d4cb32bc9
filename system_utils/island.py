"""
Observable model behind the dynamic island widget.

Exposes the now-playing snapshot as flat properties, the user preferences
(auto expand, progress bar, hover effect) and the transport actions. A UI
toolkit subscribes with a zero-argument callback and re-reads the properties.
"""
from __future__ import annotations
from typing import Callable, List, Optional

from .image import ArtworkImage
from .now_playing import NowPlayingMonitor
from .state import PlaybackState, PlayerStatus
from logging_config import get_logger
from settings import SettingsManager, settings as default_settings

logger = get_logger(__name__)

STATUS_TEXT = {
    PlayerStatus.UNKNOWN: "Checking Spotify...",
    PlayerStatus.ABSENT: "Spotify is not running",
    PlayerStatus.NO_TRACK: "Nothing playing",
    PlayerStatus.PLAYING: "Playing",
    PlayerStatus.PAUSED: "Paused",
    PlayerStatus.NOT_RESPONDING: "Spotify not responding",
}


class IslandModel:
    def __init__(self, monitor: NowPlayingMonitor, settings_manager: Optional[SettingsManager] = None):
        self.monitor = monitor
        self.settings = settings_manager or default_settings
        self._listeners: List[Callable[[], None]] = []
        monitor.add_listener(self._on_state_change)

    # === Observation ===

    def subscribe(self, callback: Callable[[], None]) -> None:
        if callback not in self._listeners:
            self._listeners.append(callback)

    def unsubscribe(self, callback: Callable[[], None]) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _notify(self) -> None:
        for callback in list(self._listeners):
            try:
                callback()
            except Exception as e:
                logger.error(f"Island listener failed: {e}", exc_info=True)

    def _on_state_change(self, _state: PlaybackState) -> None:
        self._notify()

    # === Now playing ===

    @property
    def _state(self) -> PlaybackState:
        return self.monitor.state

    @property
    def is_spotify_running(self) -> bool:
        return self._state.is_running

    @property
    def is_playing(self) -> bool:
        return self._state.is_playing

    @property
    def current_track(self) -> str:
        return self._state.track

    @property
    def current_artist(self) -> str:
        return self._state.artist

    @property
    def current_album(self) -> str:
        return self._state.album

    @property
    def track_position(self) -> float:
        return self._state.position or 0.0

    @property
    def track_duration(self) -> float:
        return self._state.duration or 0.0

    @property
    def album_art_image(self) -> Optional[ArtworkImage]:
        return self._state.artwork

    @property
    def status_text(self) -> str:
        return STATUS_TEXT[self._state.status]

    # === Preferences ===

    def _get_pref(self, key: str) -> bool:
        return bool(self.settings.get(key))

    def _set_pref(self, key: str, value: bool) -> None:
        if self._get_pref(key) == bool(value):
            return
        self.settings.set(key, bool(value))
        self.settings.save_to_config()
        self._notify()

    @property
    def auto_expand(self) -> bool:
        return self._get_pref("ui.auto_expand")

    @auto_expand.setter
    def auto_expand(self, value: bool) -> None:
        self._set_pref("ui.auto_expand", value)

    @property
    def show_progress(self) -> bool:
        return self._get_pref("ui.show_progress")

    @show_progress.setter
    def show_progress(self, value: bool) -> None:
        self._set_pref("ui.show_progress", value)

    @property
    def hover_effect_enabled(self) -> bool:
        return self._get_pref("ui.hover_effect")

    @hover_effect_enabled.setter
    def hover_effect_enabled(self, value: bool) -> None:
        self._set_pref("ui.hover_effect", value)

    # === Actions ===

    async def toggle_play_pause(self) -> bool:
        return await self.monitor.toggle_play_pause()

    async def next_track(self) -> bool:
        return await self.monitor.next_track()

    async def previous_track(self) -> bool:
        return await self.monitor.previous_track()

    def start_monitoring(self) -> None:
        self.monitor.start_monitoring()

    def stop_monitoring(self) -> None:
        self.monitor.stop_monitoring()
