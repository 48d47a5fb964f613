"""Tests for loading and saving user settings.

Settings are optional: a missing or corrupt file must never stop generation,
so failures are logged and an empty mapping is returned instead.
"""

import json
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import bebop_targeting  # noqa: E402  # isort:skip
from bebop_targeting.theory import FormulaType  # noqa: E402  # isort:skip


def test_missing_file_returns_empty(tmp_path):
    """Absent settings simply mean no overrides."""
    assert bebop_targeting.load_settings(tmp_path / "missing.json") == {}


def test_save_and_load_roundtrip(tmp_path):
    """Saved settings are read back unchanged."""
    path = tmp_path / "settings.json"
    settings = {"tempo_bpm": 160, "swing": True, "key": "F"}
    bebop_targeting.save_settings(settings, path)
    assert bebop_targeting.load_settings(path) == settings


@pytest.mark.parametrize("content", ["{not json", json.dumps([1, 2, 3])])
def test_invalid_content_is_logged(tmp_path, caplog, content):
    """Corrupt files and non-object JSON are ignored with an error log."""
    path = tmp_path / "settings.json"
    path.write_text(content, encoding="utf-8")
    assert bebop_targeting.load_settings(path) == {}
    assert caplog.records


def test_save_failure_is_logged(tmp_path, caplog):
    """Saving into a missing directory logs instead of raising."""
    bebop_targeting.save_settings({"a": 1}, tmp_path / "nope" / "settings.json")
    assert "Could not save settings" in caplog.text


def test_options_from_settings():
    """Tempo and policy entries become generator options."""
    options = bebop_targeting.options_from_settings(
        {"tempo_bpm": 140, "policy": {"formula": {"lengthWeights": {"2": {"4": 2}}}}}
    )
    assert options.default_tempo_bpm == 140
    assert options.policy.formula.length_weights == {FormulaType.TYPE_2: {4: 2.0}}


def test_options_from_settings_ignores_bad_tempo():
    """Invalid tempos keep the built-in default."""
    assert bebop_targeting.options_from_settings({"tempo_bpm": -1}).default_tempo_bpm == 180
    assert bebop_targeting.options_from_settings(None).policy is None


def test_options_from_settings_rejects_bad_policy():
    """Malformed policies are reported as ``ValueError``."""
    with pytest.raises(ValueError):
        bebop_targeting.options_from_settings({"policy": {"formula": {"lengthWeights": {"9": {}}}}})
