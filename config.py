"""
Notchtify Configuration Loader
Loads values from settings.json via the settings manager.
"""
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from settings import settings

# ==========================================
# Path Configuration
# ==========================================
if "__compiled__" in globals() or getattr(sys, 'frozen', False):
    ROOT_DIR = Path(sys.executable).parent
else:
    ROOT_DIR = Path(__file__).parent

# Only load .env if it exists
env_file = ROOT_DIR / '.env'
if env_file.exists():
    load_dotenv(env_file)


# Helper to prefer Env Var > Settings JSON > Default
def conf(key, default=None):
    # 1. Env var (spotify.client_id -> SPOTIFY_CLIENT_ID)
    env_val = os.getenv(key.upper().replace('.', '_'))
    if env_val is not None:
        return env_val

    # 2. Settings JSON (empty strings count as unset)
    json_val = settings.get(key)
    if json_val is not None and json_val != "":
        return json_val

    # 3. Default
    return default


def _as_float(value, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_int(value, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_bool(value, default: bool) -> bool:
    if isinstance(value, str):
        return value.lower() in ('true', '1', 'yes', 'on')
    if value is None:
        return default
    return bool(value)


# ==========================================
# EXPORTED CONFIG DICTS
# ==========================================

# Album art disk cache lives outside the repo by default (one PNG per track)
ALBUM_ART_CACHE_DIR = Path(os.getenv(
    "NOTCHTIFY_ALBUM_ART_CACHE",
    str(Path.home() / "Library" / "Caches" / "Notchtify" / "AlbumArt")
))

DEBUG = {
    "log_level": conf("debug.log_level", "INFO"),
    "log_file": conf("debug.log_file", "notchtify.log"),
    "log_to_console": _as_bool(conf("debug.log_to_console", True), True),
    "log_polling": _as_bool(conf("debug.log_polling", False), False),
}

SPOTIFY = {
    "client_id": conf("spotify.client_id"),
    "client_secret": conf("spotify.client_secret"),
    "token_url": conf("spotify.token_url", "https://accounts.spotify.com/api/token"),
    "timeout": _as_float(conf("spotify.timeout", 5.0), 5.0),
}

NOW_PLAYING = {
    "player_app": conf("now_playing.player_app", "Spotify"),
    "poll_interval": _as_float(conf("now_playing.poll_interval", 2.0), 2.0),
    "retry_delay": _as_float(conf("now_playing.retry_delay", 1.0), 1.0),
    "max_retries": _as_int(conf("now_playing.max_retries", 3), 3),
    "command_refresh_delay": _as_float(conf("now_playing.command_refresh_delay", 0.5), 0.5),
    "initial_art_delay": 1.0,
    "script_timeout": _as_float(conf("now_playing.script_timeout", 3.0), 3.0),
}

ALBUM_ART = {
    "memory_count_limit": _as_int(conf("album_art.memory_count_limit", 50), 50),
    "memory_cost_limit": _as_int(conf("album_art.memory_cost_limit_mb", 100), 100) * 1024 * 1024,
    "download_timeout": _as_float(conf("album_art.download_timeout", 5.0), 5.0),
}


def has_spotify_credentials() -> bool:
    """True when both client id and secret are configured."""
    return bool(SPOTIFY["client_id"] and SPOTIFY["client_secret"])
