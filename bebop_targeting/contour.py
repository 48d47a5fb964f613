"""Contour generator choosing the harmonic target of every chord.

The generator walks a register, alternating between aiming high and aiming
low, and for every chord picks the chord degree whose nearest octave lies
closest to the current aim.  A fixed degree priority breaks near ties so that
guide tones (third, fifth, root, seventh) are preferred over colour tones.

Register
--------
The active register is derived once from a 0..1 *slider*.  ``0`` keeps the
full default register ``[60, 84]``; each step towards ``1`` trims up to eight
semitones from both ends so the line becomes narrower and more static.

Direction
---------
After every pick the generator turns downwards when it is within two
semitones of the ceiling, upwards when within two semitones of the floor, and
otherwise simply reverses its previous direction.  The resulting line is a
zigzag between high and low aims rather than a long sweep from floor to
ceiling.

Example
-------
>>> from bebop_targeting.theory import get_chord_profile
>>> contour = ContourGenerator(slider=0)
>>> contour.next_target("Cmaj7", get_chord_profile("Cmaj7")).midi
72
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .errors import ContourError, InvalidRegisterError
from .pitch import MAX_MIDI, MIN_MIDI, degree_to_semitone_offset, midi_to_pitch, root_to_midi, wrap_midi_to_range
from .theory import ChordProfile

__all__ = [
    "DEFAULT_SLIDER",
    "DEGREE_PRIORITY",
    "ASCENDING",
    "DESCENDING",
    "ContourTarget",
    "ContourGenerator",
    "compute_effective_range",
    "create_contour_generator",
]

logger = logging.getLogger(__name__)

DEFAULT_SLIDER = 0.4
MAX_PADDING = 8

DEGREE_PRIORITY: Tuple[str, ...] = ("3", "5", "1", "7M", "♭7", "4", "6", "♭3", "♯5", "♭5", "♭♭7")

ASCENDING = 1
DESCENDING = -1

# Distance from a register bound at which the direction is forced to turn.
_TURN_MARGIN = 2
_TIE_EPSILON = 1e-3
_PRIORITY_SCALE = 0.1

_ROOT_RE = re.compile(r"^([A-Ga-g](?:#(?!5$)|b)?)")


@dataclass(frozen=True)
class ContourTarget:
    """Degree and pitch chosen for one chord window."""

    degree: str
    midi: int
    pitch: str


def compute_effective_range(slider: Optional[float], low: int = MIN_MIDI, high: int = MAX_MIDI) -> Tuple[int, int]:
    """Return ``(range_min, range_max)`` for ``slider`` within ``[low, high]``.

    Raises
    ------
    InvalidRegisterError
        If ``low`` is greater than ``high``.
    """

    if low > high:
        raise InvalidRegisterError(f"Invalid register: {low} > {high}")
    ratio = min(max(DEFAULT_SLIDER if slider is None else slider, 0.0), 1.0)
    # Half-up rounding so a slider of 0.5/8 trims one semitone.
    padding = math.floor(ratio * MAX_PADDING + 0.5)
    range_min = min(high, low + padding)
    range_max = max(range_min, high - padding)
    return range_min, range_max


def _priority_index(degree: str) -> int:
    try:
        return DEGREE_PRIORITY.index(degree)
    except ValueError:
        return len(DEGREE_PRIORITY)


def _extract_root(symbol: str) -> str:
    match = _ROOT_RE.match(symbol.strip())
    if not match:
        raise ContourError(f'Could not extract the root of chord symbol "{symbol}"')
    return match.group(1)


def _root_midi(root: str, low: int, high: int) -> int:
    """Place ``root`` inside the register, as close to its midpoint as possible."""

    mid = round((low + high) / 2)
    midi = root_to_midi(root, 4)
    while midi < low:
        midi += 12
    while midi > high:
        midi -= 12
    if abs(mid - (midi + 12)) < abs(mid - midi) and midi + 12 <= high:
        midi += 12
    if abs(mid - (midi - 12)) < abs(mid - midi) and midi - 12 >= low:
        midi -= 12
    return midi


def _degree_candidates(root_midi: int, degree: str, low: int, high: int) -> List[int]:
    base = root_midi + degree_to_semitone_offset(degree)
    candidates = set()
    midi = base
    while midi <= high:
        if midi >= low:
            candidates.add(midi)
        midi += 12
    midi = base - 12
    while midi >= low:
        if midi <= high:
            candidates.add(midi)
        midi -= 12
    return sorted(candidates)


class ContourGenerator:
    """Stateful target picker for one scheduling run."""

    def __init__(
        self,
        slider: Optional[float] = None,
        *,
        min_midi: int = MIN_MIDI,
        max_midi: int = MAX_MIDI,
        start_midi: Optional[int] = None,
    ) -> None:
        self.range_min, self.range_max = compute_effective_range(slider, min_midi, max_midi)
        self.last_midi: Optional[int] = start_midi
        self.direction = ASCENDING

    @property
    def midpoint(self) -> float:
        return (self.range_min + self.range_max) / 2

    def _desired(self) -> float:
        if self.last_midi is None:
            return self.midpoint
        return self.range_max if self.direction == ASCENDING else self.range_min

    def _update_direction(self, midi: int) -> None:
        if midi >= self.range_max - _TURN_MARGIN:
            self.direction = DESCENDING
        elif midi <= self.range_min + _TURN_MARGIN:
            self.direction = ASCENDING
        else:
            self.direction = -self.direction

    def next_target(self, chord_symbol: str, profile: ChordProfile) -> ContourTarget:
        """Return the target for ``chord_symbol`` and advance the contour.

        Raises
        ------
        ContourError
            If the profile defines no degrees or none of them fits the register.
        """

        degrees = sorted(profile.targets, key=lambda d: (_priority_index(d), d))
        if not degrees:
            raise ContourError(f'Chord profile for "{chord_symbol}" defines no targets')

        root_midi = _root_midi(_extract_root(chord_symbol), self.range_min, self.range_max)
        desired = self._desired()

        best: Optional[Tuple[float, str, int]] = None
        for degree in degrees:
            candidates = _degree_candidates(root_midi, degree, self.range_min, self.range_max)
            if not candidates:
                continue
            nearest = candidates[0]
            nearest_diff = abs(nearest - desired)
            for value in candidates:
                diff = abs(value - desired)
                if diff < nearest_diff - _TIE_EPSILON:
                    nearest, nearest_diff = value, diff
            score = nearest_diff + _priority_index(degree) * _PRIORITY_SCALE
            if best is None or score < best[0]:
                best = (score, degree, nearest)

        if best is None:
            raise ContourError(f"No degree of {chord_symbol} fits the register {self.range_min}-{self.range_max}")

        _, degree, midi = best
        midi = wrap_midi_to_range(midi, self.range_min, self.range_max)
        self.last_midi = midi
        self._update_direction(midi)
        logger.debug("Contour target for %s: %s (%d), direction %+d", chord_symbol, degree, midi, self.direction)
        return ContourTarget(degree=degree, midi=midi, pitch=midi_to_pitch(midi))


def create_contour_generator(
    slider: Optional[float] = None,
    *,
    min_midi: int = MIN_MIDI,
    max_midi: int = MAX_MIDI,
    start_midi: Optional[int] = None,
) -> ContourGenerator:
    return ContourGenerator(slider, min_midi=min_midi, max_midi=max_midi, start_midi=start_midi)
