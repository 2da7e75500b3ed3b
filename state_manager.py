"""
Host-side persisted state (state.json).

Metadata itself is never persisted; this only remembers what a host chose
for its subscribers (bound player, template text) between runs.
"""
import json
import logging
import os
import threading
import uuid
from pathlib import Path
from typing import Any

from benedict import benedict

# Get logger for this module (will be configured by logging_config.py)
logger = logging.getLogger(__name__)

ROOT_DIR = Path(__file__).parent

STATE_FILE = os.getenv("NOW_PLAYING_STATE_FILE", str(ROOT_DIR / "state.json"))

DEFAULT_STATE = {
    "subscribers": {},
}

# Thread lock to prevent concurrent writes
# RLock because get_state() may call reset_state() -> set_state() on the same thread
_state_lock = threading.RLock()


def reset_state() -> None:
    """
    This function resets the state to the default state.
    """
    set_state(json.loads(json.dumps(DEFAULT_STATE)))


def set_state(new_state: dict) -> None:
    """
    This function sets the state to the given state.
    Writes to a unique temp file first and atomically replaces the target.

    Args:
        new_state (dict): The new state.
    """
    with _state_lock:
        state_dir = os.path.dirname(STATE_FILE) or "."
        temp_path = os.path.join(state_dir, f"state_{uuid.uuid4().hex}.json.tmp")

        try:
            os.makedirs(state_dir, exist_ok=True)
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(new_state, f, indent=4)
            os.replace(temp_path, STATE_FILE)
        except OSError:
            if os.path.exists(temp_path):
                try:
                    os.remove(temp_path)
                except OSError:
                    pass
            # Re-raise so the caller knows it failed
            raise


def get_state() -> dict:
    """
    This function returns the current state.
    A missing or corrupted file is replaced by the default state.

    Returns:
        dict: The current state.
    """
    with _state_lock:
        if not os.path.exists(STATE_FILE):
            try:
                reset_state()
            except OSError as e:
                logger.error(f"Failed to create state file at {STATE_FILE}: {e}")
                return json.loads(json.dumps(DEFAULT_STATE))

        try:
            with open(STATE_FILE, "r", encoding="utf-8") as f:
                state = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to read state file {STATE_FILE}: {e}, resetting")
            state = json.loads(json.dumps(DEFAULT_STATE))
            try:
                set_state(state)
            except OSError as reset_error:
                logger.error(f"Failed to reset state file: {reset_error}")
            return state

        if not isinstance(state, dict):
            logger.warning("State file does not contain an object, using defaults")
            return json.loads(json.dumps(DEFAULT_STATE))
        return state


def set_attribute_js_notation(state: dict, attribute: str, value: Any) -> dict:
    """
    This function sets the given attribute to the given value in the given state.

    Args:
        state (dict): The state to set the attribute in.
        attribute (str): The attribute to set in js notation.
        value (Any): The value to set the attribute to.

    Returns:
        dict: The state with the attribute set to the value.
    """

    state = benedict(state, keypath_separator=".")
    state[attribute] = value
    return state.dict()


def get_attribute_js_notation(state: dict, attribute: str, default: Any = None) -> Any:
    """
    This function returns the value of the given attribute in the given state.

    Args:
        state (dict): The state to get the attribute from.
        attribute (str): The attribute to get in js notation.
        default (Any): Returned when the attribute is missing.

    Returns:
        Any: The value of the attribute.
    """

    state = benedict(state, keypath_separator=".")
    return state.get(attribute, default)
