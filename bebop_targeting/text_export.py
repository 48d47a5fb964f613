"""Plain-text rendering of scheduled notes.

Each note becomes one line giving its 1-based bar and eighth, the pitch, the
role of the note and optionally the chord, degree and duration::

    1:4 → A4 (approach) [Cmaj7]
    1:6 → E5 (target) [Cmaj7, deg 3]
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from .parser import EIGHTHS_PER_BAR
from .scheduler import NoteSource, ScheduledNote

__all__ = ["FormattedNoteInfo", "format_note", "notes_to_text"]


@dataclass(frozen=True)
class FormattedNoteInfo:
    """Values passed to a custom ``format_line`` callback."""

    bar: int
    eighth: int
    note: ScheduledNote
    label: str
    meta: Optional[str]


LineFormatter = Callable[[FormattedNoteInfo], str]


def _label(note: ScheduledNote) -> str:
    if note.pitch and note.pitch.strip():
        return note.pitch
    return f"midi:{note.midi}"


def _meta(note: ScheduledNote) -> Optional[str]:
    pieces = []
    if note.chord:
        pieces.append(note.chord)
    if note.degree:
        pieces.append(f"deg {note.degree}")
    if note.dur != 1:
        pieces.append(f"{note.dur}e")
    if not pieces:
        return None
    return "[" + ", ".join(pieces) + "]"


def format_note(
    note: ScheduledNote,
    annotate_meta: bool = True,
    format_line: Optional[LineFormatter] = None,
) -> str:
    """Return the text line for ``note``.

    ``format_line`` receives a :class:`FormattedNoteInfo` and may replace the
    default layout entirely.
    """

    info = FormattedNoteInfo(
        bar=note.t // EIGHTHS_PER_BAR + 1,
        eighth=note.t % EIGHTHS_PER_BAR + 1,
        note=note,
        label=_label(note),
        meta=_meta(note) if annotate_meta else None,
    )
    if format_line is not None:
        return format_line(info)
    src = note.src.value if isinstance(note.src, NoteSource) else str(note.src)
    line = f"{info.bar}:{info.eighth} → {info.label} ({src})"
    if info.meta:
        line += f" {info.meta}"
    return line


def notes_to_text(
    notes: Sequence[ScheduledNote],
    annotate_meta: bool = True,
    format_line: Optional[LineFormatter] = None,
) -> str:
    return "\n".join(format_note(note, annotate_meta, format_line) for note in notes)
