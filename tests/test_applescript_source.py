"""Tests for the AppleScript Spotify source (osascript is mocked)"""
import subprocess
from unittest.mock import patch

import pytest

from system_utils.sources import get_player_source
from system_utils.sources.base import PlayerCommand, ReadingKind
from system_utils.sources.spotify_applescript import (
    SpotifyAppleScriptSource,
    parse_track_output,
)

RUN = "system_utils.sources.spotify_applescript.subprocess.run"


def completed(stdout="", returncode=0, stderr=""):
    return subprocess.CompletedProcess(args=["osascript"], returncode=returncode,
                                       stdout=stdout, stderr=stderr)


class TestParseTrackOutput:
    def test_three_field_response(self):
        reading = parse_track_output("Song X|||Artist Y|||true")
        assert reading.kind == ReadingKind.TRACK
        assert (reading.track, reading.artist, reading.is_playing) == ("Song X", "Artist Y", True)
        assert reading.album is None and reading.duration is None

    def test_six_field_response_with_ms_duration(self):
        reading = parse_track_output("Song|||Band|||false|||Album|||215000|||12,5")
        assert reading.is_playing is False
        assert reading.album == "Album"
        assert reading.duration == pytest.approx(215.0)
        assert reading.position == pytest.approx(12.5)

    def test_six_field_response_with_missing_extras(self):
        reading = parse_track_output("Song|||Band|||true|||||||||")
        assert reading.kind == ReadingKind.TRACK
        assert reading.album is None
        assert reading.duration is None and reading.position is None

    def test_no_track_marker(self):
        assert parse_track_output("SPOTIFY_NO_TRACK").kind == ReadingKind.NO_TRACK

    def test_empty_track_and_artist_is_no_track(self):
        assert parse_track_output("||||||true").kind == ReadingKind.NO_TRACK

    @pytest.mark.parametrize("output", [
        "SPOTIFY_ERROR",
        "SPOTIFY_NOT_RUNNING",
        "garbage",
        "a|||b",
        "a|||b|||maybe",
    ])
    def test_errors(self, output):
        assert parse_track_output(output).kind == ReadingKind.ERROR


class TestSpotifyAppleScriptSource:
    @pytest.fixture
    def source(self):
        return SpotifyAppleScriptSource(app_name="Spotify", timeout=1)

    async def test_is_running(self, source):
        with patch(RUN, return_value=completed("RUNNING\n")):
            assert await source.is_running() is True
        with patch(RUN, return_value=completed("NOT_RUNNING")):
            assert await source.is_running() is False

    async def test_scripting_failure_counts_as_not_running(self, source):
        with patch(RUN, side_effect=FileNotFoundError("osascript")):
            assert await source.is_running() is False

    async def test_get_current_track(self, source):
        with patch(RUN, return_value=completed("Song|||Band|||true|||LP|||3.5|||1")) as run:
            reading = await source.get_current_track()
        assert reading.kind == ReadingKind.TRACK
        assert reading.duration == pytest.approx(3.5)
        args = run.call_args[0][0]
        assert args[:2] == ["osascript", "-e"]
        assert 'application "Spotify"' in args[2]

    async def test_timeout_is_error_reading(self, source):
        with patch(RUN, side_effect=subprocess.TimeoutExpired("osascript", 1)):
            reading = await source.get_current_track()
        assert reading.kind == ReadingKind.ERROR

    async def test_nonzero_exit_is_error_reading(self, source):
        with patch(RUN, return_value=completed(returncode=1, stderr="execution error")):
            reading = await source.get_current_track()
        assert reading.kind == ReadingKind.ERROR

    async def test_send_command_success(self, source):
        with patch(RUN, return_value=completed("SUCCESS")) as run:
            result = await source.send_command(PlayerCommand.NEXT)
        assert result.success
        assert "next track" in run.call_args[0][0][2]

    async def test_send_command_error_message(self, source):
        with patch(RUN, return_value=completed("ERROR: Spotify got an error")):
            result = await source.send_command(PlayerCommand.TOGGLE_PLAY_PAUSE)
        assert not result.success
        assert result.message == "ERROR: Spotify got an error"

    def test_registry_default(self):
        assert isinstance(get_player_source(), SpotifyAppleScriptSource)
        with pytest.raises(KeyError):
            get_player_source("winamp")
