"""
obs-now-playing Settings Manager
Handles dynamic configuration management using settings.json
"""

import ast  # For safe list parsing
import json
import os
import shutil
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from logging_config import get_logger

logger = get_logger(__name__)

ROOT_DIR = Path(__file__).parent

# Allow overriding the settings file location via environment variable
# (OBS script folders are often read-only, and tests point this at a temp dir)
SETTINGS_FILE = Path(os.getenv("NOW_PLAYING_SETTINGS_FILE", str(ROOT_DIR / "settings.json")))

@dataclass
class Setting:
    """Represents a single configurable setting"""
    name: str
    type: type
    default: Any
    description: Optional[str] = None
    options: Optional[list] = None  # Allowed values, anything else falls back to default
    min_val: Optional[float] = None
    max_val: Optional[float] = None

    def validate_and_convert(self, value: Any) -> Any:
        try:
            if self.type == bool and isinstance(value, str):
                return value.strip().lower() in ('true', '1', 'yes', 'on')

            if self.type == list:
                if isinstance(value, list):
                    return value
                if isinstance(value, str):
                    value = value.strip()
                    # Method 1: ast.literal_eval (handles ['a'] and ["a"])
                    try:
                        parsed = ast.literal_eval(value)
                        if isinstance(parsed, list):
                            return parsed
                    except (ValueError, SyntaxError):
                        pass
                    # Method 2: comma separation (strip brackets first!)
                    clean_value = value.strip("[]")
                    if clean_value:
                        return [v.strip().strip("'").strip('"') for v in clean_value.split(',') if v.strip()]
                    return []
                return self.default

            converted = self.type(value)
            if self.options is not None:
                # Case-insensitive, returns the canonical spelling ("debug" -> "DEBUG")
                for option in self.options:
                    if str(option).lower() == str(converted).lower():
                        return option
                return self.default
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
        self._settings_file = Path(settings_file) if settings_file else SETTINGS_FILE

        # Define all available settings
        self._definitions = {
            # Debug
            "debug.log_file": Setting("Log File", str, "now_playing.log", "Log file name"),
            "debug.log_level": Setting("Log Level", str, "INFO", "Console logging verbosity", options=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
            "debug.log_polling": Setting("Log Polling", bool, False, "Log every poll cycle"),
            "debug.log_to_console": Setting("Log to Console", bool, True, "Print logs to stdout (OBS script log)"),
            "debug.log_detailed": Setting("Detailed Logging", bool, False, "Write DEBUG records to the log file"),
            "debug.log_rotation.max_bytes": Setting("Max Log Size", int, 1048576, "Max log file size (bytes)", min_val=1024),
            "debug.log_rotation.backup_count": Setting("Log Backups", int, 10, "Number of backups to keep", min_val=0),

            # Poller
            "poller.source": Setting("Player Source", str, "playerctl", "Backend used to talk to media players", options=["playerctl"]),
            "poller.interval": Setting("Poll Interval", float, 5.0, "Seconds between poll cycles", min_val=0.5, max_val=60.0),
            "poller.fetch_timeout": Setting("Fetch Timeout", float, 5.0, "Max seconds to wait for one player's metadata", min_val=0.1, max_val=30.0),
            "poller.enumerate_timeout": Setting("Enumerate Timeout", float, 5.0, "Max seconds to wait for the player list", min_val=0.1, max_val=30.0),
            "poller.failure_backoff": Setting("Failure Backoff", float, 5.0, "Seconds to wait after a failed enumeration", min_val=0.5, max_val=60.0),
            "poller.max_workers": Setting("Fetch Workers", int, 4, "Threads used for bounded metadata fetches", min_val=1, max_val=32),

            # Subscriber
            "subscriber.refresh_period": Setting("Refresh Period", float, 1.0, "Seconds between text refreshes", min_val=0.1, max_val=30.0),

            # Templates
            "templates.artists_separator": Setting("Artists Separator", str, ", ", "Separator used when rendering {artists}"),
            "templates.strict": Setting("Strict Templates", bool, False, "Reject templates using unknown variables"),
            "templates.default": Setting("Default Template", str, "{artists} - {title}", "Template used when none is configured"),

            # playerctl
            "playerctl.binary": Setting("playerctl Binary", str, "playerctl", "Path or name of the playerctl executable"),
            "playerctl.ignore_players": Setting("Ignored Players", list, [], "Player names to skip (partial match)"),
        }

        self.load_settings()

    @property
    def settings_file(self) -> Path:
        return self._settings_file

    def load_settings(self) -> None:
        """Load settings from JSON, fall back to defaults"""
        self._settings = {}

        # 1. Load defaults first
        for key, definition in self._definitions.items():
            self._settings[key] = definition.default

        # 2. Load from JSON if exists
        if self._settings_file.exists():
            try:
                with open(self._settings_file, 'r', encoding='utf-8') as f:
                    saved = json.load(f)
                if not isinstance(saved, dict):
                    raise ValueError(f"expected a JSON object, got {type(saved).__name__}")
                for key, val in saved.items():
                    # LENIENT MODE: Allow loading keys even if not in definitions
                    if key in self._definitions:
                        self._settings[key] = self._definitions[key].validate_and_convert(val)
                    else:
                        self._settings[key] = val
            except (OSError, ValueError) as e:
                logger.error(f"Failed to load {self._settings_file.name}: {e} - resetting to defaults")
                # Backup corrupted file and reset
                backup_path = self._settings_file.with_suffix('.json.corrupted')
                try:
                    shutil.copy2(self._settings_file, backup_path)
                    logger.info(f"Backed up corrupted settings to {backup_path}")
                except OSError:
                    logger.warning(f"Could not back up corrupted settings to {backup_path}")
                self.save_to_config()
        else:
            logger.info(f"Creating default settings file at {self._settings_file}")
            self.save_to_config()

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

    def convert(self, key: str, value: Any) -> Any:
        """Convert a raw value (e.g. from an env var) through the setting's type, if known."""
        definition = self._definitions.get(key)
        if definition is None:
            return value
        return definition.validate_and_convert(value)

    def save_to_config(self) -> None:
        """Save current memory settings to JSON file"""
        temp_path = self._settings_file.parent / f"settings_{uuid.uuid4().hex}.json.tmp"
        try:
            self._settings_file.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, 'w', encoding='utf-8') as f:
                sanitized = {}
                for key, val in self._settings.items():
                    defin = self._definitions.get(key)
                    if defin and defin.type == list and not isinstance(val, list):
                        logger.warning(f"List setting '{key}' invalid type, restoring default")
                        val = defin.default
                    sanitized[key] = val
                json.dump(sanitized, f, indent=4, sort_keys=True)

            # Atomic replace (works on both Windows and Unix)
            os.replace(temp_path, self._settings_file)
        except OSError as e:
            logger.error(f"Failed to save settings: {e}")
            if temp_path.exists():
                try:
                    os.remove(temp_path)
                except OSError:
                    pass

settings = SettingsManager()
