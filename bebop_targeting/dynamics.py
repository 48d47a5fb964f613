"""Humanization helpers for MIDI note timings.

``humanize_timings`` turns the grid positions of a line into note-on and
note-off ticks.  Without options it only enforces a minimum duration and keeps
note starts in order.  With :class:`HumanizeOptions` it also shifts starts by
a small random amount and spreads velocities around the base value.  The
jitter is drawn from the seeded RNG of the request, so a humanised file is
still reproducible from its seed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .rng import SeededRandom

__all__ = ["HumanizeOptions", "NoteTiming", "humanize_timings"]

MIN_NOTE_TICKS = 12
# A jittered note keeps at least this many ticks before its grid end.
_MIN_REMAINING_TICKS = 6
MAX_TIMING_JITTER = 0.5


def _clamp(value, low, high):
    return min(max(value, low), high)


@dataclass
class HumanizeOptions:
    """Amount of random variation applied when rendering MIDI.

    Parameters
    ----------
    rng:
        Random source, normally the one that scheduled the line.
    timing:
        Maximum start shift as a fraction of a quarter note, clamped to
        ``[0, 0.5]``.
    velocity:
        Maximum velocity change as a fraction of the base velocity, clamped
        to ``[0, 1]``.
    """

    rng: SeededRandom
    timing: Optional[float] = None
    velocity: Optional[float] = None

    def offset_range(self, ticks_per_quarter: int) -> int:
        if self.timing is None:
            return 0
        return round(ticks_per_quarter * _clamp(self.timing, 0.0, MAX_TIMING_JITTER))

    def velocity_spread(self, base_velocity: int) -> int:
        if self.velocity is None:
            return 0
        return round(base_velocity * _clamp(self.velocity, 0.0, 1.0))


@dataclass
class NoteTiming:
    start: int
    end: int
    midi: int
    velocity: int


def _bipolar(rng: SeededRandom) -> float:
    return rng.next_float() * 2 - 1


def humanize_timings(
    spans: Sequence[Tuple[int, int, int]],
    base_velocity: float,
    options: Optional[HumanizeOptions] = None,
    ticks_per_quarter: int = 480,
) -> List[NoteTiming]:
    """Return one :class:`NoteTiming` per ``(start, end, midi)`` grid span.

    Durations never drop below ``MIN_NOTE_TICKS`` and no note starts before
    the note preceding it.
    """

    velocity_base = int(_clamp(round(base_velocity), 1, 127))
    offset_range = options.offset_range(ticks_per_quarter) if options else 0
    spread = options.velocity_spread(velocity_base) if options else 0

    timings: List[NoteTiming] = []
    for base_start, base_end, midi in spans:
        duration = max(MIN_NOTE_TICKS, base_end - base_start)
        start = base_start
        if offset_range > 0:
            offset = round(_bipolar(options.rng) * offset_range)
            start = _clamp(base_start + offset, 0, max(base_start, base_end - _MIN_REMAINING_TICKS))
        if timings and start < timings[-1].start:
            start = timings[-1].start
        velocity = velocity_base
        if spread > 0:
            velocity = int(_clamp(velocity_base + round(_bipolar(options.rng) * spread), 1, 127))
        timings.append(NoteTiming(start=start, end=start + duration, midi=midi, velocity=velocity))
    return timings
