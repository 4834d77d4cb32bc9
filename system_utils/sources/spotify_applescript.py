"""
Spotify desktop source via AppleScript (osascript).

Queries the Spotify app on macOS for liveness, the current track and playing
state, and sends transport commands. All osascript calls run in the worker
pool so the event loop never blocks on the scripting bridge.

Response protocol (fields joined by "|||"):
    track|||artist|||playing[|||album|||duration|||position]
or one of the markers SPOTIFY_NO_TRACK, SPOTIFY_NOT_RUNNING, SPOTIFY_ERROR.
"""
import subprocess
from typing import Optional

from .base import (
    BasePlayerSource,
    CommandResult,
    PlayerCommand,
    TrackReading,
)
from ..helpers import run_in_daemon_executor
from config import NOW_PLAYING
from logging_config import get_logger

logger = get_logger(__name__)

SEPARATOR = "|||"

NO_TRACK_MARKER = "SPOTIFY_NO_TRACK"
NOT_RUNNING_MARKER = "SPOTIFY_NOT_RUNNING"
ERROR_MARKER = "SPOTIFY_ERROR"
SUCCESS_MARKER = "SUCCESS"

# Spotify reports duration in ms, Music.app-style players in seconds
MS_DURATION_THRESHOLD = 10000


class SpotifyAppleScriptSource(BasePlayerSource):
    name = "spotify_applescript"
    platforms = ("Darwin",)

    def __init__(self, app_name: Optional[str] = None, timeout: Optional[float] = None):
        self.app_name = app_name or NOW_PLAYING["player_app"]
        self.timeout = timeout if timeout is not None else NOW_PLAYING["script_timeout"]

    # === Scripts ===

    def _running_script(self) -> str:
        return f'''
        if application "{self.app_name}" is running then
            return "RUNNING"
        else
            return "NOT_RUNNING"
        end if
        '''

    def _track_script(self) -> str:
        return f'''
        try
            if application "{self.app_name}" is not running then
                return "{NOT_RUNNING_MARKER}"
            end if
            tell application "{self.app_name}"
                try
                    set trackName to name of current track
                    set trackArtist to artist of current track
                    set isPlayingState to (player state is playing)
                on error
                    return "{NO_TRACK_MARKER}"
                end try
                set trackAlbum to ""
                set trackDuration to ""
                set trackPosition to ""
                try
                    set trackAlbum to album of current track
                    set trackDuration to (duration of current track) as string
                    set trackPosition to player position as string
                end try
                return trackName & "{SEPARATOR}" & trackArtist & "{SEPARATOR}" & (isPlayingState as string) & "{SEPARATOR}" & trackAlbum & "{SEPARATOR}" & trackDuration & "{SEPARATOR}" & trackPosition
            end tell
        on error
            return "{ERROR_MARKER}"
        end try
        '''

    def _command_script(self, command: PlayerCommand) -> str:
        return f'''
        try
            tell application "{self.app_name}"
                {command.value}
                return "{SUCCESS_MARKER}"
            end tell
        on error errMsg
            return "ERROR: " & errMsg
        end try
        '''

    # === Execution ===

    def _run_osascript(self, script: str) -> Optional[str]:
        """
        Execute AppleScript (run in executor).

        Returns stripped stdout, or None if osascript failed or timed out.
        """
        try:
            result = subprocess.run(
                ["osascript", "-e", script],
                capture_output=True,
                text=True,
                timeout=self.timeout
            )
        except subprocess.TimeoutExpired:
            logger.debug(f"AppleScript ({self.app_name}) timed out")
            return None
        except OSError as e:
            # osascript missing (not macOS) or not executable
            logger.debug(f"AppleScript ({self.app_name}) could not run: {e}")
            return None

        if result.returncode != 0:
            logger.debug(f"AppleScript ({self.app_name}) error: {result.stderr.strip()}")
            return None
        return result.stdout.strip()

    async def is_running(self) -> bool:
        output = await run_in_daemon_executor(self._run_osascript, self._running_script())
        return output == "RUNNING"

    async def get_current_track(self) -> TrackReading:
        output = await run_in_daemon_executor(self._run_osascript, self._track_script())
        if output is None:
            return TrackReading.error("osascript failed")
        return parse_track_output(output)

    async def send_command(self, command: PlayerCommand) -> CommandResult:
        output = await run_in_daemon_executor(self._run_osascript, self._command_script(command))
        if output is None:
            return CommandResult(False, "osascript failed")
        if output == SUCCESS_MARKER:
            return CommandResult(True)
        return CommandResult(False, output)


def _parse_float(value: str) -> Optional[float]:
    value = value.strip().replace(",", ".")  # Locale decimal commas
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def parse_track_output(output: str) -> TrackReading:
    """Classify raw osascript output into a TrackReading."""
    output = output.strip()
    if output == NO_TRACK_MARKER:
        return TrackReading.no_track()
    if output in (ERROR_MARKER, NOT_RUNNING_MARKER):
        return TrackReading.error(output)

    parts = output.split(SEPARATOR)
    if len(parts) not in (3, 6):
        return TrackReading.error(f"unexpected response: {output[:80]}")

    track, artist, playing = parts[0], parts[1], parts[2].strip().lower()
    if playing not in ("true", "false"):
        return TrackReading.error(f"unexpected playing flag: {playing}")
    if not track and not artist:
        return TrackReading.no_track()

    album = None
    duration = None
    position = None
    if len(parts) == 6:
        album = parts[3] or None
        duration = _parse_float(parts[4])
        if duration is not None and duration > MS_DURATION_THRESHOLD:
            duration = duration / 1000
        position = _parse_float(parts[5])

    return TrackReading.playing(
        track,
        artist,
        playing == "true",
        album=album,
        duration=duration,
        position=position,
    )
