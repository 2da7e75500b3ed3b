"""Tests for the host state file (state.json)"""
import json

import pytest

import state_manager


@pytest.fixture(autouse=True)
def state_file(tmp_path, monkeypatch):
    path = tmp_path / "state.json"
    monkeypatch.setattr(state_manager, "STATE_FILE", str(path))
    return path


def test_missing_file_returns_default_state(state_file):
    assert state_manager.get_state() == {"subscribers": {}}
    assert state_file.exists()


def test_set_and_get_state(state_file):
    state_manager.set_state({"subscribers": {"terminal": {"player": "vlc"}}})
    assert state_manager.get_state()["subscribers"]["terminal"]["player"] == "vlc"
    # No temp files left behind
    assert [p.name for p in state_file.parent.iterdir()] == ["state.json"]


def test_corrupted_file_is_reset(state_file):
    state_file.write_text("[broken", encoding="utf-8")
    assert state_manager.get_state() == {"subscribers": {}}
    assert json.loads(state_file.read_text(encoding="utf-8")) == {"subscribers": {}}


def test_non_object_state_uses_defaults(state_file):
    state_file.write_text("[1, 2]", encoding="utf-8")
    assert state_manager.get_state() == {"subscribers": {}}


def test_js_notation_helpers():
    state = {"subscribers": {}}
    state = state_manager.set_attribute_js_notation(state, "subscribers.terminal.template", "{title}")

    assert state == {"subscribers": {"terminal": {"template": "{title}"}}}
    assert state_manager.get_attribute_js_notation(state, "subscribers.terminal.template") == "{title}"
    assert state_manager.get_attribute_js_notation(state, "subscribers.obs.player") is None
    assert state_manager.get_attribute_js_notation(state, "subscribers.obs.player", "vlc") == "vlc"


def test_reset_state(state_file):
    state_manager.set_state({"subscribers": {"x": {}}})
    state_manager.reset_state()
    assert state_manager.get_state() == {"subscribers": {}}
