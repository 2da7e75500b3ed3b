"""
obs-now-playing Configuration Loader
Loads values from settings.json via the settings manager.
"""
import os
from pathlib import Path

from dotenv import load_dotenv

# Import the settings manager instance which holds the loaded JSON values
from settings import settings

# ==========================================
# Path Configuration
# ==========================================
ROOT_DIR = Path(__file__).parent

# ==========================================
# Version
# ==========================================
VERSION = "0.4.0"

# Only load .env if it exists
env_file = ROOT_DIR / '.env'
if env_file.exists():
    load_dotenv(env_file)

# Helper to prefer Env Var > Settings JSON > Default
def conf(key, default=None):
    # 1. Check Env Var (Highest Priority - handy when launching OBS from a shell)
    env_val = os.getenv(key.upper().replace('.', '_'))
    if env_val is not None:
        return settings.convert(key, env_val)

    # 2. Check Settings JSON
    json_val = settings.get(key)
    if json_val is not None:
        return json_val

    # 3. Default
    return default

# ==========================================
# EXPORTED CONFIG DICTS
# ==========================================

DEBUG = {
    "log_file": conf("debug.log_file", "now_playing.log"),
    "log_level": conf("debug.log_level", "INFO"),
    "log_polling": conf("debug.log_polling", False),
    "log_to_console": conf("debug.log_to_console", True),
    "log_detailed": conf("debug.log_detailed", False),
    "log_rotation": {
        "max_bytes": conf("debug.log_rotation.max_bytes", 1048576),
        "backup_count": conf("debug.log_rotation.backup_count", 10)
    }
}

POLLER = {
    "source": conf("poller.source", "playerctl"),
    "interval": conf("poller.interval", 5.0),
    "fetch_timeout": conf("poller.fetch_timeout", 5.0),
    "enumerate_timeout": conf("poller.enumerate_timeout", 5.0),
    "failure_backoff": conf("poller.failure_backoff", 5.0),
    "max_workers": conf("poller.max_workers", 4),
}

SUBSCRIBER = {
    "refresh_period": conf("subscriber.refresh_period", 1.0),
}

TEMPLATES = {
    "artists_separator": conf("templates.artists_separator", ", "),
    "strict": conf("templates.strict", False),
    "default": conf("templates.default", "{artists} - {title}"),
}

PLAYERCTL = {
    "binary": conf("playerctl.binary", "playerctl"),
    "ignore_players": conf("playerctl.ignore_players", []),
}
