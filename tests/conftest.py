"""Pytest configuration and shared fixtures"""
import asyncio
import sys
from io import BytesIO
from pathlib import Path
from typing import Dict, List, Optional

import pytest
from PIL import Image

# Add project root to path
sys.path.append(str(Path(__file__).parent.parent))

from system_utils.image import ArtworkImage, decode_image
from system_utils.sources.base import (
    BasePlayerSource,
    CommandResult,
    PlayerCommand,
    TrackReading,
)


def make_png(width: int = 4, height: int = 4, color=(200, 30, 30, 255)) -> bytes:
    buffer = BytesIO()
    Image.new("RGBA", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


def make_jpeg(width: int = 8, height: int = 8, color=(10, 120, 200)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="JPEG")
    return buffer.getvalue()


def make_artwork(width: int = 4, height: int = 4, color=(200, 30, 30, 255)) -> ArtworkImage:
    return decode_image(make_png(width, height, color))


class FakePlayer(BasePlayerSource):
    """
    Scripted player source.

    running: list of liveness answers consumed per call (last one repeats)
    readings: list of TrackReadings consumed per query, then `default` repeats
    """
    name = "fake"

    def __init__(self, readings: Optional[List[TrackReading]] = None,
                 running: Optional[List[bool]] = None,
                 default: Optional[TrackReading] = None):
        self.readings = list(readings or [])
        self.running = list(running or [True])
        self.default = default or TrackReading.no_track()
        self.queries = 0
        self.liveness_checks = 0
        self.commands: List[PlayerCommand] = []
        self.command_result = CommandResult(True)
        self.gate: Optional[asyncio.Event] = None

    async def is_running(self) -> bool:
        self.liveness_checks += 1
        if len(self.running) > 1:
            return self.running.pop(0)
        return self.running[0]

    async def get_current_track(self) -> TrackReading:
        self.queries += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.readings:
            return self.readings.pop(0)
        return self.default

    async def send_command(self, command: PlayerCommand) -> CommandResult:
        self.commands.append(command)
        return self.command_result


class FakeArtProvider:
    """Album art provider double. Per-track gates hold a resolution until released."""

    def __init__(self, images: Optional[Dict[str, Optional[ArtworkImage]]] = None):
        self.images = images or {}
        self.calls: List[tuple] = []
        self.gates: Dict[str, asyncio.Event] = {}

    async def get_album_art(self, track: str, artist: str) -> Optional[ArtworkImage]:
        self.calls.append((track, artist))
        gate = self.gates.get(track)
        if gate is not None:
            await gate.wait()
        result = self.images.get(track)
        if isinstance(result, list):
            return result.pop(0) if result else None
        return result


@pytest.fixture
def png_bytes():
    return make_png()


@pytest.fixture
def fake_player():
    return FakePlayer()


@pytest.fixture
def fake_art():
    return FakeArtProvider()
