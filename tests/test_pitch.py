"""Tests for the pitch arithmetic helpers in ``bebop_targeting.pitch``.

The helpers are pure functions, so the tests simply feed representative
values through them: degree labels with unicode accidentals, sharp-spelled
note names and octave wrapping into both wide and very narrow registers.
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from bebop_targeting import pitch  # noqa: E402  # isort:skip
from bebop_targeting.errors import InvalidRegisterError  # noqa: E402  # isort:skip


@pytest.mark.parametrize(
    "degree, offset",
    [("1", 0), ("3", 4), ("♭3", 3), ("5", 7), ("♯5", 8), ("7M", 11), ("♭7", 10), ("♭♭7", 9)],
)
def test_degree_to_semitone_offset(degree, offset):
    """Degree labels map to semitones above the root, unicode or ASCII."""
    assert pitch.degree_to_semitone_offset(degree) == offset


def test_midi_to_pitch_uses_sharps():
    """Black keys are spelled with sharps and octave 4 starts at MIDI 60."""
    assert pitch.midi_to_pitch(60) == "C4"
    assert pitch.midi_to_pitch(61) == "C#4"
    assert pitch.midi_to_pitch(70) == "A#4"
    assert pitch.midi_to_pitch(84) == "C6"


def test_pitch_name_to_midi_accidentals():
    """Flats, double sharps and lower-case letters are accepted."""
    assert pitch.pitch_name_to_midi("Bb3") == 58
    assert pitch.pitch_name_to_midi("F##4") == 67
    assert pitch.pitch_name_to_midi("c5") == 72


def test_pitch_name_to_midi_invalid(caplog):
    """Unparseable names raise ``ValueError`` and log the offending text."""
    with pytest.raises(ValueError):
        pitch.pitch_name_to_midi("H4")
    assert "Invalid pitch name" in caplog.text


def test_root_to_midi_default_octave():
    """Chord roots default to the fourth octave."""
    assert pitch.root_to_midi("C") == 60
    assert pitch.root_to_midi("Eb") == 63
    assert pitch.root_to_midi("F#", 3) == 54


def test_wrap_midi_to_range_shifts_by_octaves():
    """Values outside the register move by whole octaves."""
    assert pitch.wrap_midi_to_range(50, 60, 84) == 62
    assert pitch.wrap_midi_to_range(90, 60, 84) == 78
    assert pitch.wrap_midi_to_range(72, 60, 84) == 72


def test_wrap_midi_to_range_narrow_register_clamps():
    """A register narrower than an octave falls back to clamping."""
    assert pitch.wrap_midi_to_range(61, 64, 66) == 64


def test_wrap_midi_to_range_rejects_inverted_register():
    """``low > high`` is reported as an invalid register."""
    with pytest.raises(InvalidRegisterError):
        pitch.wrap_midi_to_range(60, 80, 70)


def test_degree_to_semitone_offset_unknown_label():
    """Labels outside the degree table raise ``ValueError``."""
    with pytest.raises(ValueError):
        pitch.degree_to_semitone_offset("b9")


@pytest.mark.parametrize(
    "key, fifths",
    [("C", 0), ("G", 1), ("F", -1), ("Bb", -2), ("Db", -5), ("F#", 6), ("Am", 0), ("Dmin", -1), ("C-", -3)],
)
def test_key_to_fifths(key, fifths):
    """Major and minor tonics map to their key signature."""
    assert pitch.key_to_fifths(key) == fifths


@pytest.mark.parametrize("key", ["", "H", "m", "C lydian"])
def test_key_to_fifths_rejects_unknown_keys(key):
    with pytest.raises(ValueError, match="Invalid key"):
        pitch.key_to_fifths(key)
