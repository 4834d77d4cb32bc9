"""
Notchtify Settings Manager
Handles dynamic configuration management using settings.json
"""

import json
import os
import shutil
import sys
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from logging_config import get_logger

logger = get_logger(__name__)

if "__compiled__" in globals() or getattr(sys, 'frozen', False):
    ROOT_DIR = Path(sys.executable).parent
else:
    ROOT_DIR = Path(__file__).parent

SETTINGS_FILE = Path(os.getenv("NOTCHTIFY_SETTINGS_FILE", str(ROOT_DIR / "settings.json")))


@dataclass
class Setting:
    """Represents a single configurable setting"""
    name: str
    type: type
    default: Any
    requires_restart: bool = False
    category: Optional[str] = None
    description: Optional[str] = None
    widget_type: str = "text"  # text, number, slider, switch, select
    options: Optional[list] = None  # For select
    min_val: Optional[float] = None  # For slider/number
    max_val: Optional[float] = None  # For slider/number

    def validate_and_convert(self, value: Any) -> Any:
        try:
            if self.type == bool and isinstance(value, str):
                return value.lower() in ('true', '1', 'yes', 'on')
            if value is None:
                return self.default
            converted = self.type(value)
            if self.min_val is not None and converted < self.min_val:
                return self.default
            if self.max_val is not None and converted > self.max_val:
                return self.default
            return converted
        except (ValueError, TypeError):
            return self.default


class SettingsManager:
    def __init__(self, settings_file: Optional[Path] = None):
        self._settings: Dict[str, Any] = {}
        self.settings_file = Path(settings_file) if settings_file else SETTINGS_FILE

        self._definitions = {
            # Debug
            "debug.log_level": Setting("Log Level", str, "INFO", True, "Debug", "Console logging verbosity", "select", options=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
            "debug.log_file": Setting("Log File", str, "notchtify.log", True, "Debug", "Log file name"),
            "debug.log_to_console": Setting("Log to Console", bool, True, True, "Debug", "Print logs to terminal", "switch"),
            "debug.log_polling": Setting("Log Polling", bool, False, False, "Debug", "Log every poll result", "switch"),

            # Spotify Web API (client-credentials only, used for album art search)
            "spotify.client_id": Setting("Client ID", str, "", True, "Spotify", "Spotify app client id"),
            "spotify.client_secret": Setting("Client Secret", str, "", True, "Spotify", "Spotify app client secret"),
            "spotify.timeout": Setting("Request Timeout", float, 5.0, False, "Spotify", "HTTP timeout (s)", "number", min_val=1.0, max_val=30.0),

            # Now playing monitor
            "now_playing.player_app": Setting("Player App", str, "Spotify", True, "Now Playing", "Scriptable player application name"),
            "now_playing.poll_interval": Setting("Poll Interval", float, 2.0, True, "Now Playing", "Seconds between player polls", "slider", min_val=0.5, max_val=30.0),
            "now_playing.retry_delay": Setting("Retry Delay", float, 1.0, True, "Now Playing", "Seconds before retrying a failed query", "slider", min_val=0.1, max_val=10.0),
            "now_playing.max_retries": Setting("Max Retries", int, 3, True, "Now Playing", "Retries before showing 'not responding'", "number", min_val=0, max_val=10),
            "now_playing.command_refresh_delay": Setting("Command Refresh Delay", float, 0.5, True, "Now Playing", "Seconds to wait before refreshing after a control command", "slider", min_val=0.0, max_val=5.0),
            "now_playing.script_timeout": Setting("Script Timeout", float, 3.0, True, "Now Playing", "osascript timeout (s)", "number", min_val=0.5, max_val=10.0),

            # Album art caches
            "album_art.memory_count_limit": Setting("Memory Cache Entries", int, 50, True, "Album Art", "Max images held in memory", "number", min_val=1, max_val=1000),
            "album_art.memory_cost_limit_mb": Setting("Memory Cache Size", int, 100, True, "Album Art", "Max decoded image memory (MiB)", "number", min_val=1, max_val=4096),
            "album_art.download_timeout": Setting("Download Timeout", float, 5.0, False, "Album Art", "Image download timeout (s)", "number", min_val=1.0, max_val=30.0),

            # UI preferences
            "ui.auto_expand": Setting("Auto Expand", bool, True, False, "UI", "Expand the island on track change", "switch"),
            "ui.show_progress": Setting("Show Progress", bool, False, False, "UI", "Show track progress bar", "switch"),
            "ui.hover_effect": Setting("Hover Effect", bool, True, False, "UI", "Animate the island on hover", "switch"),
        }

        self.load_settings()

    def load_settings(self) -> None:
        """Load settings from JSON, fall back to defaults"""
        self._settings = {}

        for key, definition in self._definitions.items():
            self._settings[key] = definition.default

        if not self.settings_file.exists():
            return

        try:
            with open(self.settings_file, 'r', encoding='utf-8') as f:
                saved = json.load(f)
            for key, val in saved.items():
                if key in self._definitions:
                    self._settings[key] = self._definitions[key].validate_and_convert(val)
                else:
                    # Unknown keys are kept so older/newer files round-trip
                    self._settings[key] = val
        except (OSError, ValueError, AttributeError) as e:
            logger.error(f"Failed to load {self.settings_file.name}: {e} - using defaults")
            backup_path = self.settings_file.with_suffix('.json.corrupted')
            try:
                shutil.copy2(self.settings_file, backup_path)
                logger.info(f"Backed up corrupted settings to {backup_path}")
            except OSError:
                pass

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a setting value.
        Priority:
        1. Loaded value (from JSON or Schema Default)
        2. Schema Default (if key in definitions but not in settings dict yet)
        3. Provided 'default' argument (if key unknown)
        """
        if key in self._settings:
            return self._settings[key]

        if key in self._definitions:
            return self._definitions[key].default

        return default

    def set(self, key: str, value: Any) -> bool:
        """Set a known setting. Returns True if the change needs a restart."""
        if key not in self._definitions:
            return False

        setting = self._definitions[key]
        self._settings[key] = setting.validate_and_convert(value)
        return setting.requires_restart

    def save_to_config(self) -> bool:
        """Save current memory settings to JSON file"""
        temp_path = self.settings_file.parent / f"settings_{uuid.uuid4().hex}.json.tmp"
        try:
            self.settings_file.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, 'w', encoding='utf-8') as f:
                json.dump(self._settings, f, indent=4, sort_keys=True)
            # Atomic replace (works on both Windows and Unix)
            os.replace(temp_path, self.settings_file)
            return True
        except (OSError, TypeError) as e:
            logger.error(f"Failed to save settings: {e}")
            try:
                if temp_path.exists():
                    os.remove(temp_path)
            except OSError:
                pass
            return False

    def get_all(self) -> Dict:
        """Return settings grouped by category"""
        result: Dict[str, Dict[str, Any]] = {}
        for key, val in self._settings.items():
            defin = self._definitions.get(key)
            if not defin:
                continue

            cat = defin.category or "Misc"
            result.setdefault(cat, {})[key] = {
                "value": val,
                "name": defin.name,
                "description": defin.description,
                "type": defin.type.__name__,
                "requires_restart": defin.requires_restart,
                "widget_type": defin.widget_type,
                "options": defin.options,
                "min": defin.min_val,
                "max": defin.max_val,
            }
        return result

    def reset_to_defaults(self) -> None:
        if self.settings_file.exists():
            os.remove(self.settings_file)
        self.load_settings()


settings = SettingsManager()
