"""Group scheduled notes into bars for display purposes."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .parser import EIGHTHS_PER_BAR, ChordWindow, parse_progression
from .scheduler import NoteSource, ScheduledNote

__all__ = ["StructuredBar", "StructuredData", "build_structured_data"]


@dataclass
class StructuredBar:
    index: int
    start_eighth: int
    length_eighths: int
    chord_windows: List[ChordWindow] = field(default_factory=list)
    notes: List[ScheduledNote] = field(default_factory=list)
    targets: List[ScheduledNote] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "startEighth": self.start_eighth,
            "lengthEighths": self.length_eighths,
            "chordWindows": [window.to_dict() for window in self.chord_windows],
            "notes": [note.to_dict() for note in self.notes],
            "targets": [note.to_dict() for note in self.targets],
        }


@dataclass
class StructuredData:
    bars: List[StructuredBar]
    total_eighths: int

    def to_dict(self) -> Dict[str, Any]:
        return {"bars": [bar.to_dict() for bar in self.bars], "totalEighths": self.total_eighths}


def build_structured_data(
    progression: str,
    notes: Sequence[ScheduledNote],
    total_eighths: Optional[int] = None,
) -> StructuredData:
    """Split ``notes`` and the chords of ``progression`` into 8-eighth bars.

    ``total_eighths`` defaults to the end of the last sounding note.  At least
    one bar is always returned.  Chord windows belong to the bar in which they
    start.
    """

    windows = parse_progression(progression)
    if total_eighths is None:
        total_eighths = max((note.t + note.dur for note in notes), default=0)
    total_bars = max(1, math.ceil(total_eighths / EIGHTHS_PER_BAR))

    bars: List[StructuredBar] = []
    for index in range(total_bars):
        start = index * EIGHTHS_PER_BAR
        end = start + EIGHTHS_PER_BAR
        bar_notes = [note for note in notes if start <= note.t < end]
        bars.append(
            StructuredBar(
                index=index,
                start_eighth=start,
                length_eighths=EIGHTHS_PER_BAR,
                chord_windows=[w for w in windows if start <= w.start_eighth < end],
                notes=bar_notes,
                targets=[note for note in bar_notes if note.src is NoteSource.TARGET],
            )
        )
    return StructuredData(bars=bars, total_eighths=total_eighths)
