"""
Now-playing monitor for system_utils package.

Polls the player source on a fixed interval, classifies each reading,
publishes PlaybackState snapshots to listeners and resolves album art when
the track changes.

All state mutation happens on the event loop. The player source and the art
provider do their blocking work in the worker pool and hand results back by
returning from an awaited coroutine.

Serialization rule: a poll round (liveness check, track query and any
retries) is one outstanding round trip. Ticks that arrive while a round is
outstanding are skipped, so a retry and an interval tick never overlap.

The degraded "not responding" state shows sentinel text only: artwork,
album and progress are cleared because they belong to no displayed track.

Dependencies: state, helpers, sources.base, album_art
"""
from __future__ import annotations
import asyncio
from typing import Callable, List, Optional, Set, TYPE_CHECKING

from . import state
from .helpers import create_tracked_task, normalize_cache_key
from .sources.base import BasePlayerSource, PlayerCommand, ReadingKind, TrackReading
from .state import (
    NO_TRACK_TEXT,
    NOT_RESPONDING_ARTIST_TEXT,
    NOT_RESPONDING_TRACK_TEXT,
    UNKNOWN_ARTIST_TEXT,
    PlaybackState,
    PlayerStatus,
)
from config import DEBUG
from logging_config import get_logger

if TYPE_CHECKING:
    from .album_art import AlbumArtProvider

logger = get_logger(__name__)

StateListener = Callable[[PlaybackState], None]


class NowPlayingMonitor:
    def __init__(
        self,
        player: BasePlayerSource,
        art_provider: Optional["AlbumArtProvider"] = None,
        poll_interval: float = state.POLL_INTERVAL,
        retry_delay: float = state.RETRY_DELAY,
        max_retries: int = state.MAX_RETRIES,
        command_refresh_delay: float = state.COMMAND_REFRESH_DELAY,
        initial_art_delay: float = state.INITIAL_ART_DELAY,
    ):
        self.player = player
        self.art_provider = art_provider
        self.poll_interval = poll_interval
        self.retry_delay = retry_delay
        self.max_retries = max_retries
        self.command_refresh_delay = command_refresh_delay
        self.initial_art_delay = initial_art_delay

        self._state = state.IDLE_STATE
        self._listeners: List[StateListener] = []

        self._retry_count = 0
        self._poll_in_flight = False
        self._ticker_task: Optional[asyncio.Task] = None
        # Polls, retries and delayed refreshes; cancelled by stop_monitoring()
        self._pending: Set[asyncio.Task] = set()
        # Art resolution is never cancelled; a finished fetch still fills the caches
        self._art_task: Optional[asyncio.Task] = None
        self.has_initially_loaded = False

        # Counters for diagnostics
        self.skipped_ticks = 0
        self.degraded_transitions = 0
        self.art_resolutions = 0

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def is_monitoring(self) -> bool:
        return self._ticker_task is not None and not self._ticker_task.done()

    def add_listener(self, callback: StateListener) -> None:
        if callback not in self._listeners:
            self._listeners.append(callback)

    def remove_listener(self, callback: StateListener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _set_state(self, new_state: PlaybackState) -> None:
        old = self._state
        if new_state == old:
            return
        self._state = new_state
        if not new_state.differs_only_in_progress(old):
            logger.debug(f"Playback state: {new_state.status.value} ({new_state.track} - {new_state.artist})")
        for callback in list(self._listeners):
            try:
                callback(new_state)
            except Exception as e:
                logger.error(f"State listener failed: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start_monitoring(self) -> None:
        """Start interval polling. The first poll runs immediately."""
        if self.is_monitoring:
            return
        logger.info(f"Starting now-playing monitor (interval {self.poll_interval}s)")
        self._ticker_task = asyncio.create_task(self._run_ticker())
        self._spawn(self._initial_album_art_fetch())

    def stop_monitoring(self) -> None:
        """Cancel the interval timer and pending polls/retries/refreshes."""
        if self._ticker_task is not None:
            self._ticker_task.cancel()
            self._ticker_task = None
        for task in list(self._pending):
            task.cancel()
        logger.info("Stopped now-playing monitor")

    async def wait_for_artwork(self) -> None:
        """Wait for the current art resolution, if any (used by --once and tests)."""
        if self._art_task is not None:
            await asyncio.shield(self._art_task)

    def _spawn(self, coro) -> asyncio.Task:
        task = create_tracked_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _run_ticker(self) -> None:
        while True:
            self._spawn(self.poll())
            await asyncio.sleep(self.poll_interval)

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def poll(self) -> bool:
        """
        Run one poll round. Returns False if skipped because a round is outstanding.

        Each round starts with a fresh retry counter, so a degraded monitor
        recovers on its next scheduled tick.
        """
        if self._poll_in_flight:
            self.skipped_ticks += 1
            logger.debug("Previous poll still unresolved, skipping tick")
            return False

        self._poll_in_flight = True
        self._retry_count = 0
        try:
            if not await self._check_running():
                self._enter_absent()
                return True
            await self._query_track()
            return True
        finally:
            self._poll_in_flight = False

    async def _check_running(self) -> bool:
        try:
            return await self.player.is_running()
        except Exception as e:
            logger.warning(f"Player liveness check failed: {e}")
            return False

    async def _read_track(self) -> TrackReading:
        try:
            return await self.player.get_current_track()
        except Exception as e:
            return TrackReading.error(str(e))

    async def _query_track(self) -> None:
        while True:
            reading = await self._read_track()
            if DEBUG["log_polling"]:
                logger.debug(f"Player reading: {reading}")

            if reading.kind == ReadingKind.TRACK:
                self._retry_count = 0
                self._apply_track(reading)
                return

            if reading.kind == ReadingKind.NO_TRACK:
                self._apply_no_track()
                return

            # Transient error: re-run the same query, not the whole round
            self._retry_count += 1
            if self._retry_count <= self.max_retries:
                logger.info(f"Retrying Spotify connection ({self._retry_count}/{self.max_retries}): {reading.message}")
                await asyncio.sleep(self.retry_delay)
                continue

            self._enter_degraded(reading.message)
            return

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _apply_track(self, reading: TrackReading) -> None:
        track = reading.track or NO_TRACK_TEXT
        artist = reading.artist or UNKNOWN_ARTIST_TEXT
        status = PlayerStatus.PLAYING if reading.is_playing else PlayerStatus.PAUSED
        old = self._state

        changes = dict(
            status=status,
            is_running=True,
            is_playing=reading.is_playing,
            position=reading.position,
            duration=reading.duration,
        )

        if (old.track, old.artist) != (track, artist):
            logger.info(f"Track changed: {track} - {artist}")
            # Clear old art before resolution starts so it never pairs with the new track
            self._set_state(old.with_changes(
                track=track,
                artist=artist,
                album=reading.album or "",
                artwork=None,
                **changes
            ))
            if track != NO_TRACK_TEXT:
                self._start_art_resolution(track, artist)
            return

        self._set_state(old.with_changes(album=reading.album or old.album, **changes))

    def _apply_no_track(self) -> None:
        self._set_state(self._state.with_changes(
            status=PlayerStatus.NO_TRACK,
            is_running=True,
            is_playing=False,
            track=NO_TRACK_TEXT,
            artist=UNKNOWN_ARTIST_TEXT,
            album="",
            position=None,
            duration=None,
        ))

    def _enter_absent(self) -> None:
        if self._state.status != PlayerStatus.ABSENT:
            logger.info("Player not running")
        self._set_state(PlaybackState(status=PlayerStatus.ABSENT))

    def _enter_degraded(self, message: Optional[str]) -> None:
        self.degraded_transitions += 1
        logger.warning(f"Player not responding after {self.max_retries} retries: {message}")
        self._set_state(self._state.with_changes(
            status=PlayerStatus.NOT_RESPONDING,
            is_running=True,
            is_playing=False,
            track=NOT_RESPONDING_TRACK_TEXT,
            artist=NOT_RESPONDING_ARTIST_TEXT,
            album="",
            position=None,
            duration=None,
            artwork=None,
        ))

    # ------------------------------------------------------------------
    # Album art
    # ------------------------------------------------------------------

    def _start_art_resolution(self, track: str, artist: str) -> None:
        if self.art_provider is None:
            return
        self.art_resolutions += 1
        self._art_task = create_tracked_task(self._resolve_artwork(track, artist))

    async def _resolve_artwork(self, track: str, artist: str) -> None:
        key = normalize_cache_key(track, artist)
        try:
            image = await self.art_provider.get_album_art(track, artist)
        except Exception as e:
            logger.error(f"Album art resolution failed for {track} - {artist}: {e}")
            return

        current = self._state
        if not current.has_track or normalize_cache_key(current.track, current.artist) != key:
            # Track moved on; the result still went into the caches
            logger.debug(f"Discarding album art for previous track: {track} - {artist}")
            return
        if image is None:
            return
        self.has_initially_loaded = True
        self._set_state(current.with_changes(artwork=image))

    async def _initial_album_art_fetch(self) -> None:
        await asyncio.sleep(self.initial_art_delay)
        current = self._state
        if self.has_initially_loaded or not current.is_playing or not current.has_track:
            return
        if current.artwork is not None:
            return
        if self._art_task is not None and not self._art_task.done():
            return
        logger.info(f"Force fetching album art for: {current.track} - {current.artist}")
        self._start_art_resolution(current.track, current.artist)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def issue_command(self, command: PlayerCommand) -> bool:
        """
        Send a control command. On success a refresh poll runs shortly after,
        ahead of the next interval tick. Failures are logged, not retried.
        """
        try:
            result = await self.player.send_command(command)
        except Exception as e:
            logger.warning(f"Command '{command.value}' failed: {e}")
            return False

        if not result.success:
            logger.warning(f"Command '{command.value}' failed: {result.message}")
            return False

        logger.info(f"Command '{command.value}' succeeded")
        self._spawn(self._delayed_refresh())
        return True

    async def _delayed_refresh(self) -> None:
        await asyncio.sleep(self.command_refresh_delay)
        await self.poll()

    async def toggle_play_pause(self) -> bool:
        return await self.issue_command(PlayerCommand.TOGGLE_PLAY_PAUSE)

    async def next_track(self) -> bool:
        return await self.issue_command(PlayerCommand.NEXT)

    async def previous_track(self) -> bool:
        return await self.issue_command(PlayerCommand.PREVIOUS)
