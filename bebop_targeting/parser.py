"""Chord progression parser.

Progressions are written in lead-sheet bar notation: bars are separated by
``|`` and hold one or two chord symbols.  A single chord fills the whole bar
(eight eighth notes) while two chords split it evenly (four eighths each).

Example
-------
>>> parse_progression("| Dm9  G13 | C∆ |")  # doctest: +NORMALIZE_WHITESPACE
[ChordWindow(chord_symbol='Dm9', start_eighth=0, length_eighths=4),
 ChordWindow(chord_symbol='G13', start_eighth=4, length_eighths=4),
 ChordWindow(chord_symbol='Cmaj7', start_eighth=8, length_eighths=8)]
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Tuple

from .errors import ProgressionSyntaxError

__all__ = ["EIGHTHS_PER_BAR", "ChordWindow", "normalize_chord_token", "parse_progression"]

EIGHTHS_PER_BAR = 8

# Replacements applied to every chord token, in order.  Unicode quality marks
# are spelled out so the theory catalog only needs ASCII aliases.
_TOKEN_REPLACEMENTS: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"∆|Δ"), "maj7"),
    (re.compile(r"Ø"), "ø"),
    (re.compile(r"º7"), "dim7"),
    (re.compile(r"º"), "dim"),
    (re.compile(r"\+"), "#5"),
    (re.compile(r"\(([^)]+)\)"), r"\1"),
    (re.compile(r"\s+"), ""),
]


@dataclass(frozen=True)
class ChordWindow:
    """Time span of one chord measured in eighth notes."""

    chord_symbol: str
    start_eighth: int
    length_eighths: int

    @property
    def end_eighth(self) -> int:
        return self.start_eighth + self.length_eighths

    def to_dict(self) -> dict:
        return {
            "chordSymbol": self.chord_symbol,
            "startEighth": self.start_eighth,
            "lengthEighths": self.length_eighths,
        }


def normalize_chord_token(raw: str) -> str:
    """Return ``raw`` with quality marks and parentheses normalised."""

    token = raw.strip()
    for pattern, replacement in _TOKEN_REPLACEMENTS:
        token = pattern.sub(replacement, token)
    return token


def parse_progression(progression: str) -> List[ChordWindow]:
    """Split ``progression`` into contiguous :class:`ChordWindow` objects.

    Empty bars are ignored and an empty progression yields an empty list.

    Raises
    ------
    ProgressionSyntaxError
        If a bar contains more than two chord symbols.
    """

    if not progression or not progression.strip():
        return []

    windows: List[ChordWindow] = []
    cursor = 0
    for bar in (part.strip() for part in progression.split("|")):
        tokens = bar.split()
        if not tokens:
            continue
        if len(tokens) > 2:
            raise ProgressionSyntaxError(f'At most two chords per bar are allowed, found: "{bar}"')
        length = EIGHTHS_PER_BAR // len(tokens)
        for offset, token in enumerate(tokens):
            windows.append(
                ChordWindow(
                    chord_symbol=normalize_chord_token(token),
                    start_eighth=cursor + offset * length,
                    length_eighths=length,
                )
            )
        cursor += EIGHTHS_PER_BAR
    return windows
