"""MusicXML rendering of scheduled lines.

The output is a MusicXML 3.1 partwise document with one part in 4/4.  Each
measure holds eight eighth notes; gaps are filled with the fewest rests from
the lengths 8, 6, 4, 3, 2 and 1 (whole, dotted half, half, dotted quarter,
quarter, eighth).  Notes sounding at the same time are written as a chord and
the role of every note (``approach``, ``target`` ...) is attached as a lyric
so the structure of the line is visible in notation software.

The document is assembled from strings rather than an XML tree; every piece of
user supplied text passes through :func:`xml.sax.saxutils.escape`.
"""

from __future__ import annotations

from itertools import groupby
from typing import Dict, List, Optional, Sequence, Tuple
from xml.sax.saxutils import escape

from .midi_io import normalize_note_times
from .scheduler import NoteSource, ScheduledNote

__all__ = ["DIVISIONS", "notes_to_musicxml"]

DIVISIONS = 480
EIGHTHS_PER_MEASURE = 8
EIGHTH_DURATION = DIVISIONS // 2
REST_LENGTHS = (8, 6, 4, 3, 2, 1)

# (step, alter) per pitch class, sharps only.
_PITCH_CLASSES: Tuple[Tuple[str, int], ...] = (
    ("C", 0), ("C", 1), ("D", 0), ("D", 1), ("E", 0), ("F", 0),
    ("F", 1), ("G", 0), ("G", 1), ("A", 0), ("A", 1), ("B", 0),
)

# Eighth-note length -> (note type, number of dots).
_NOTE_TYPES: Dict[int, Tuple[str, int]] = {
    1: ("eighth", 0),
    2: ("quarter", 0),
    3: ("quarter", 1),
    4: ("half", 0),
    6: ("half", 1),
    8: ("whole", 0),
}


def _note_type(length: int) -> Tuple[str, int]:
    return _NOTE_TYPES.get(length, ("eighth", 0))


def _render_note(midi: int, length: int, src: Optional[str], chord: bool) -> List[str]:
    step, alter = _PITCH_CLASSES[midi % 12]
    note_type, dots = _note_type(length)
    lines = ["      <note>"]
    if chord:
        lines.append("        <chord/>")
    lines.append("        <pitch>")
    lines.append(f"          <step>{step}</step>")
    if alter:
        lines.append(f"          <alter>{alter}</alter>")
    lines.append(f"          <octave>{midi // 12 - 1}</octave>")
    lines.append("        </pitch>")
    lines.append(f"        <duration>{length * EIGHTH_DURATION}</duration>")
    lines.append("        <voice>1</voice>")
    lines.append(f"        <type>{note_type}</type>")
    lines.extend("        <dot/>" for _ in range(dots))
    if src:
        lines.append("        <lyric>")
        lines.append(f"          <text>{escape(src)}</text>")
        lines.append("        </lyric>")
    lines.append("      </note>")
    return lines


def _render_rest(length: int) -> List[str]:
    note_type, dots = _note_type(length)
    lines = [
        "      <note>",
        "        <rest/>",
        f"        <duration>{length * EIGHTH_DURATION}</duration>",
        "        <voice>1</voice>",
        f"        <type>{note_type}</type>",
    ]
    lines.extend("        <dot/>" for _ in range(dots))
    lines.append("      </note>")
    return lines


def _rests_for_gap(gap: int) -> List[str]:
    lines: List[str] = []
    while gap > 0:
        chunk = next(length for length in REST_LENGTHS if length <= gap)
        lines.extend(_render_rest(chunk))
        gap -= chunk
    return lines


def _measure_content(
    events: Sequence[Tuple[int, int, int, Optional[str]]],
    measure_index: int,
) -> List[str]:
    start = measure_index * EIGHTHS_PER_MEASURE
    end = start + EIGHTHS_PER_MEASURE
    in_measure = [event for event in events if start <= event[0] < end]
    lines: List[str] = []
    cursor = start
    for t, group in groupby(in_measure, key=lambda event: event[0]):
        if t < cursor:
            # Still covered by a longer note starting earlier.
            continue
        if t > cursor:
            lines.extend(_rests_for_gap(t - cursor))
            cursor = t
        group = list(group)
        for index, (_, dur, midi, src) in enumerate(group):
            lines.extend(_render_note(midi, dur, src, chord=index > 0))
        cursor += max(dur for _, dur, _, _ in group) or 1
    if cursor < end:
        lines.extend(_rests_for_gap(end - cursor))
    return lines


def notes_to_musicxml(
    notes: Sequence[ScheduledNote],
    title: str = "Bebop Targeting",
    part_name: str = "Lead",
    swing: bool = False,
    swing_text: Optional[str] = None,
    annotate_sources: bool = True,
    fifths: int = 0,
) -> str:
    """Return a MusicXML document for ``notes``.

    ``swing`` or ``swing_text`` adds a direction above the first measure
    (``"Swing feel"`` unless ``swing_text`` is given).  With
    ``annotate_sources`` disabled no lyrics are written.  ``fifths`` is the key
    signature (negative for flats); pitches are still spelled with sharps.
    """

    normalized, _ = normalize_note_times(notes)
    sources = [
        (note.src.value if isinstance(note.src, NoteSource) else str(note.src)) if annotate_sources else None
        for note in notes
    ]
    events = sorted(
        ((t, dur, midi, src) for (t, dur, midi), src in zip(normalized, sources)),
        key=lambda event: event[0],
    )
    last = max((t + dur for t, dur, _, _ in events), default=0)
    measures = max(1, -(-last // EIGHTHS_PER_MEASURE))

    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<!DOCTYPE score-partwise PUBLIC "-//Recordare//DTD MusicXML 3.1 Partwise//EN" '
        '"http://www.musicxml.org/dtds/partwise.dtd">',
        '<score-partwise version="3.1">',
        "  <work>",
        f"    <work-title>{escape(title)}</work-title>",
        "  </work>",
        "  <part-list>",
        '    <score-part id="P1">',
        f"      <part-name>{escape(part_name)}</part-name>",
        "    </score-part>",
        "  </part-list>",
        '  <part id="P1">',
    ]
    for index in range(measures):
        lines.append(f'    <measure number="{index + 1}">')
        if index == 0:
            lines.extend(
                [
                    "      <attributes>",
                    f"        <divisions>{DIVISIONS}</divisions>",
                    "        <key>",
                    f"          <fifths>{fifths}</fifths>",
                    "        </key>",
                    "        <time>",
                    "          <beats>4</beats>",
                    "          <beat-type>4</beat-type>",
                    "        </time>",
                    "        <clef>",
                    "          <sign>G</sign>",
                    "          <line>2</line>",
                    "        </clef>",
                    "      </attributes>",
                ]
            )
            if swing or swing_text:
                lines.extend(
                    [
                        '      <direction placement="above">',
                        "        <direction-type>",
                        f"          <words>{escape(swing_text or 'Swing feel')}</words>",
                        "        </direction-type>",
                        "      </direction>",
                    ]
                )
        lines.extend(_measure_content(events, index))
        lines.append("    </measure>")
    lines.extend(["  </part>", "</score-partwise>"])
    return "\n".join(lines)
