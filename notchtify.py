"""
Notchtify headless runner.

Wires the player source, album art caches and Spotify Web API client into a
NowPlayingMonitor, then logs every island state change until interrupted.
A UI layer would subscribe to the same IslandModel instead of the logger.
"""
import argparse
import asyncio
import signal
import sys
from typing import Optional

from config import DEBUG, NOW_PLAYING, has_spotify_credentials
from logging_config import setup_logging, get_logger
from providers.spotify_api import SpotifyWebAPI
from system_utils import (
    AlbumArtProvider,
    DiskArtCache,
    IslandModel,
    MemoryArtCache,
    AlbumArtPrefetcher,
    NowPlayingMonitor,
    shutdown_daemon_executor,
)
from system_utils.sources import get_player_source

logger = get_logger(__name__)


def build_island(web_api: Optional[SpotifyWebAPI] = None) -> IslandModel:
    """Construct the service graph with explicit dependencies."""
    web_api = web_api or SpotifyWebAPI()
    art_provider = AlbumArtProvider(
        web_api=web_api,
        disk_cache=DiskArtCache(),
        prefetcher=AlbumArtPrefetcher(MemoryArtCache()),
    )
    monitor = NowPlayingMonitor(
        player=get_player_source(),
        art_provider=art_provider,
        poll_interval=NOW_PLAYING["poll_interval"],
        retry_delay=NOW_PLAYING["retry_delay"],
        max_retries=NOW_PLAYING["max_retries"],
        command_refresh_delay=NOW_PLAYING["command_refresh_delay"],
    )
    return IslandModel(monitor)


def _log_island(island: IslandModel) -> None:
    art = island.album_art_image
    art_text = f"{art.width}x{art.height}" if art else "none"
    logger.info(
        f"[{island.status_text}] {island.current_track} - {island.current_artist}"
        f" | playing={island.is_playing} art={art_text}"
    )


async def run(once: bool = False) -> None:
    web_api = SpotifyWebAPI()
    # Warm the token so the first track change can fetch art right away
    await web_api.authenticate()

    island = build_island(web_api)

    if once:
        await island.monitor.poll()
        await island.monitor.wait_for_artwork()
        _log_island(island)
        return

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            # Not supported on Windows event loops; Ctrl+C raises KeyboardInterrupt instead
            pass

    island.subscribe(lambda: _log_island(island))
    island.start_monitoring()
    try:
        await stop_event.wait()
    finally:
        island.stop_monitoring()
        logger.info("Shutting down")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Mirror Spotify now-playing state and album art")
    parser.add_argument("--log-level", default=DEBUG["log_level"],
                        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
                        help="Console log level")
    parser.add_argument("--once", action="store_true",
                        help="Poll once, resolve album art, print the state and exit")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(
        console_level=args.log_level,
        console=DEBUG["log_to_console"],
        log_file=DEBUG["log_file"],
    )

    if not has_spotify_credentials():
        logger.critical(
            "Spotify credentials missing. Set SPOTIFY_CLIENT_ID and SPOTIFY_CLIENT_SECRET "
            "in .env or spotify.client_id / spotify.client_secret in settings.json"
        )
        return 1

    try:
        asyncio.run(run(once=args.once))
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        shutdown_daemon_executor()
    return 0


if __name__ == "__main__":
    sys.exit(main())
