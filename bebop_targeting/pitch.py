"""Pitch arithmetic helpers.

This module groups the small conversions the scheduling engine relies on:
degree labels to semitone offsets, MIDI numbers to note names and back, and
octave wrapping into a register.  The functions are kept free of any
scheduling state so exporters and tests can use them directly.

Example
-------
>>> from bebop_targeting.pitch import midi_to_pitch, wrap_midi_to_range
>>> midi_to_pitch(61)
'C#4'
>>> wrap_midi_to_range(50, 60, 84)
62
"""

from __future__ import annotations

import logging
import re
from functools import lru_cache
from typing import Dict, List

from .errors import InvalidRegisterError

__all__ = [
    "MIN_MIDI",
    "MAX_MIDI",
    "NOTES",
    "NOTE_TO_SEMITONE",
    "normalize_degree_token",
    "degree_to_semitone_offset",
    "midi_to_pitch",
    "pitch_name_to_midi",
    "root_to_midi",
    "key_to_fifths",
    "wrap_midi_to_range",
    "clamp_midi",
]

logger = logging.getLogger(__name__)

# Fixed register every realised note is wrapped into (C4 to C6).
MIN_MIDI = 60
MAX_MIDI = 84

# Sharp spellings indexed by pitch class.
NOTES: List[str] = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]

# Natural letter names only; accidentals are applied on top of these.
NOTE_TO_SEMITONE: Dict[str, int] = {
    "C": 0,
    "D": 2,
    "E": 4,
    "F": 5,
    "G": 7,
    "A": 9,
    "B": 11,
}

# Unicode accidentals accepted in degree labels and their ASCII equivalents.
_DEGREE_ALIASES: Dict[str, str] = {
    "♭": "b",
    "♯": "#",
    "𝄫": "bb",
    "𝄪": "##",
}

_DEGREE_TO_OFFSET: Dict[str, int] = {
    "1": 0,
    "b2": 1,
    "#1": 1,
    "2": 2,
    "9": 2,
    "b3": 3,
    "#2": 3,
    "3": 4,
    "4": 5,
    "11": 5,
    "#4": 6,
    "b5": 6,
    "5": 7,
    "#5": 8,
    "b6": 8,
    "6": 9,
    "13": 9,
    "bb7": 9,
    "b7": 10,
    "7": 11,
    "7M": 11,
}

_PITCH_RE = re.compile(r"([A-Ga-g])(#{1,2}|b{1,2})?(-?\d+)")
_ROOT_RE = re.compile(r"([A-Ga-g])(#{1,2}|b{1,2})?")


def _accidental_offset(accidental: str | None) -> int:
    if not accidental:
        return 0
    return sum(1 if symbol == "#" else -1 for symbol in accidental)


def normalize_degree_token(degree: str) -> str:
    """Replace unicode accidentals in ``degree`` with ``b`` and ``#``."""

    normalized = degree.strip()
    for alias, replacement in _DEGREE_ALIASES.items():
        normalized = normalized.replace(alias, replacement)
    return normalized


@lru_cache(maxsize=None)
def degree_to_semitone_offset(degree: str) -> int:
    """Return the semitone offset of ``degree`` above the chord root.

    Raises
    ------
    ValueError
        If ``degree`` is not a recognised label.
    """

    normalized = normalize_degree_token(degree)
    try:
        return _DEGREE_TO_OFFSET[normalized]
    except KeyError:
        raise ValueError(f'Unrecognised degree "{degree}"') from None


def midi_to_pitch(midi: int) -> str:
    """Convert a MIDI number to a sharp-spelled note name such as ``C#4``."""

    octave = midi // 12 - 1
    return f"{NOTES[midi % 12]}{octave}"


def pitch_name_to_midi(pitch: str) -> int:
    """Convert a note name with octave (``Bb3``, ``F##4``) to a MIDI number."""

    match = _PITCH_RE.fullmatch(pitch.strip())
    if not match:
        logger.error("Invalid pitch name: %s", pitch)
        raise ValueError(f"Invalid pitch name: {pitch}")
    letter, accidental, octave_raw = match.groups()
    base = NOTE_TO_SEMITONE[letter.upper()]
    return (int(octave_raw) + 1) * 12 + base + _accidental_offset(accidental)


def root_to_midi(root: str, octave: int = 4) -> int:
    """Return the MIDI number of ``root`` (``C``, ``F#``, ``Bb``) in ``octave``."""

    match = _ROOT_RE.fullmatch(root.strip())
    if not match:
        raise ValueError(f'Could not interpret chord root "{root}"')
    letter, accidental = match.groups()
    base = NOTE_TO_SEMITONE[letter.upper()]
    return (octave + 1) * 12 + base + _accidental_offset(accidental)


_MINOR_KEY_RE = re.compile(r"^(.*?)(?:m|min|minor|-)$")


def key_to_fifths(key: str) -> int:
    """Return the key signature of ``key`` as a count of fifths.

    ``key`` is a tonic such as ``F`` or ``Bb``, optionally followed by ``m``
    (or ``min``, ``minor``, ``-``) for minor keys, which share the signature of
    their relative major.  Flats are negative; the result lies in ``[-5, 6]``
    so ``Gb`` and ``F#`` both read as six sharps.

    Raises
    ------
    ValueError
        If the tonic cannot be parsed.
    """

    tonic = (key or "").strip()
    minor = _MINOR_KEY_RE.match(tonic)
    is_minor = bool(minor and minor.group(1))
    if is_minor:
        tonic = minor.group(1)
    try:
        pitch_class = root_to_midi(tonic) % 12
    except ValueError:
        logger.error("Invalid key: %s", key)
        raise ValueError(f"Invalid key: {key!r}") from None
    if is_minor:
        pitch_class = (pitch_class + 3) % 12
    return (pitch_class * 7 + 5) % 12 - 5


def wrap_midi_to_range(midi: int, low: int, high: int) -> int:
    """Shift ``midi`` by octaves until it lies in ``[low, high]``.

    Registers narrower than an octave may have no octave transposition of
    ``midi`` inside them; the result is then clamped to the nearest bound.

    Raises
    ------
    InvalidRegisterError
        If ``low`` is greater than ``high``.
    """

    if low > high:
        raise InvalidRegisterError(f"Invalid register: {low} > {high}")
    value = midi
    while value < low:
        value += 12
    while value > high:
        value -= 12
    return clamp_midi(value, low, high)


def clamp_midi(midi: int, low: int, high: int) -> int:
    """Clamp ``midi`` into ``[low, high]`` without octave shifting."""

    return min(max(midi, low), high)
