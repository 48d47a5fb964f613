"""Rhythmic placement of approach figures inside a chord window.

Targets always land on an offbeat (odd eighth) measured from the start of
their chord window.  Which offbeats are legal depends only on the window
length: a half-bar window offers the first two offbeats, every other length
offers all four.  Working backwards from the landing point gives the first
approach note; when that note would itself start on an offbeat a single
*isolated* note is inserted one eighth earlier so the figure begins on a
downbeat.

:func:`compute_rhythm_placement` is a pure function of its inputs and may be
called repeatedly while the scheduler shortens a formula to fit.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from .errors import InvalidFormulaLengthError
from .parser import ChordWindow

__all__ = ["RhythmPlacement", "landing_options", "merge_landing_order", "compute_rhythm_placement"]

_LANDING_OPTIONS_BY_LENGTH: Dict[int, List[int]] = {
    4: [1, 3],
    8: [1, 3, 5, 7],
}
_DEFAULT_LANDING_OPTIONS: List[int] = [1, 3, 5, 7]


@dataclass(frozen=True)
class RhythmPlacement:
    """Absolute eighth positions of one approach figure and its target."""

    landing: int
    approach_start: int
    total_start: int
    isolated: Optional[int]

    @property
    def earliest(self) -> int:
        """First sounding position, counting the isolated note when present."""

        return self.isolated if self.isolated is not None else self.approach_start


def landing_options(length_eighths: int) -> List[int]:
    """Return the legal landing offsets for a window of ``length_eighths``."""

    return list(_LANDING_OPTIONS_BY_LENGTH.get(length_eighths, _DEFAULT_LANDING_OPTIONS))


def merge_landing_order(legal: Sequence[int], preferred: Optional[Sequence[int]]) -> List[int]:
    """Put the legal entries of ``preferred`` first, then the rest in natural order."""

    if not preferred:
        return list(legal)
    ordered: List[int] = []
    for offset in preferred:
        if offset in legal and offset not in ordered:
            ordered.append(offset)
    ordered.extend(offset for offset in legal if offset not in ordered)
    return ordered


def compute_rhythm_placement(
    window: ChordWindow,
    approach_count: int,
    preferred_landing_order: Optional[Sequence[int]] = None,
) -> RhythmPlacement:
    """Place a formula of ``approach_count`` notes (target included) in ``window``.

    ``approach_start`` may precede the window or even be negative; the caller
    interprets that as anticipation into the previous chord.

    Raises
    ------
    InvalidFormulaLengthError
        If ``approach_count`` is not positive.
    """

    if approach_count <= 0:
        raise InvalidFormulaLengthError("A formula must contain at least one note (the target)")

    order = merge_landing_order(landing_options(window.length_eighths), preferred_landing_order)
    landing = window.start_eighth + order[0]
    approach_start = landing - (approach_count - 1)
    isolated = approach_start - 1 if abs(approach_start) % 2 == 1 else None
    total_start = isolated if isolated is not None else approach_start
    return RhythmPlacement(
        landing=landing,
        approach_start=approach_start,
        total_start=total_start,
        isolated=isolated,
    )
