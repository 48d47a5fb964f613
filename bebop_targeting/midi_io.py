"""Utilities for rendering scheduled lines as MIDI.

Modification summary
--------------------
* ``notes_to_midi`` builds the whole file in memory and returns the
  ``MidiFile`` so the web API can stream it without touching the disk.
* Lines that anticipate before time zero are shifted right by an even number
  of eighths so offbeats stay offbeats.
* Swing is rendered by delaying every offbeat eighth to ``swing_ratio`` of the
  beat; a ``Swing N%`` text event records the feel for notation software.
* ``write_midi_file`` creates the destination directory automatically so
  callers can pass a path in a new folder without preparing it.
* Imports from ``mido`` are deferred so the scheduling engine can be used
  without the MIDI dependency.
"""

from __future__ import annotations

import io
import logging
import math
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple, Union

from .dynamics import HumanizeOptions, humanize_timings
from .scheduler import ScheduledNote

if TYPE_CHECKING:
    from mido import MidiFile

__all__ = [
    "TICKS_PER_QUARTER",
    "DEFAULT_TEMPO_BPM",
    "DEFAULT_VELOCITY",
    "DEFAULT_SWING_RATIO",
    "normalize_note_times",
    "eighth_to_ticks",
    "notes_to_midi",
    "notes_to_midi_bytes",
    "write_midi_file",
]

logger = logging.getLogger(__name__)

TICKS_PER_QUARTER = 480
DEFAULT_TEMPO_BPM = 180
DEFAULT_VELOCITY = 96
DEFAULT_CHANNEL = 0
DEFAULT_SWING_RATIO = 2 / 3

# Sort keys for events sharing a tick: meta events first, then note-off before
# note-on so a repeated pitch is retriggered instead of cut short.
_ORDER_META = 0
_ORDER_NOTE_OFF = 10
_ORDER_NOTE_ON = 20


def _import_mido():
    try:
        import mido
    except ModuleNotFoundError as exc:
        raise ImportError(
            "mido is required to create MIDI files; install it with 'pip install mido'"
        ) from exc
    return mido


def normalize_note_times(notes: Sequence[ScheduledNote]) -> Tuple[List[Tuple[int, int, int]], int]:
    """Return ``(t, dur, midi)`` triples shifted so no time is negative.

    The shift is rounded up to an even number of eighths and returned as the
    second element.

    Raises
    ------
    ValueError
        If a note time or duration is not finite.
    """

    if not notes:
        return [], 0
    for note in notes:
        if not math.isfinite(note.t) or not math.isfinite(note.dur):
            raise ValueError("Notes must have finite times and durations")
    min_start = min(note.t for note in notes)
    offset = -min_start if min_start < 0 else 0
    if offset % 2:
        offset += 1
    return [(note.t + offset, note.dur, note.midi) for note in notes], offset


def eighth_to_ticks(eighth: int, swing_ratio: Optional[float] = None) -> int:
    """Return the tick position of ``eighth``, delaying offbeats when swung."""

    beat_start = (eighth // 2) * TICKS_PER_QUARTER
    if eighth % 2 == 0:
        return beat_start
    if swing_ratio is None:
        return beat_start + TICKS_PER_QUARTER // 2
    return beat_start + round(TICKS_PER_QUARTER * min(max(swing_ratio, 0.0), 1.0))


def _resolve_swing_ratio(swing: bool, swing_ratio: Optional[float]) -> Optional[float]:
    if swing or (swing_ratio is not None and swing_ratio > 0):
        ratio = DEFAULT_SWING_RATIO if swing_ratio is None else swing_ratio
        return min(max(ratio, 0.0), 1.0)
    return None


def notes_to_midi(
    notes: Sequence[ScheduledNote],
    tempo_bpm: Optional[float] = DEFAULT_TEMPO_BPM,
    swing: bool = False,
    swing_ratio: Optional[float] = None,
    channel: int = DEFAULT_CHANNEL,
    velocity: float = DEFAULT_VELOCITY,
    track_name: Optional[str] = None,
    humanize: Optional[HumanizeOptions] = None,
) -> "MidiFile":
    """Render ``notes`` as a single-track type 0 ``MidiFile``.

    Parameters
    ----------
    notes:
        Scheduled notes in eighth-note units.
    tempo_bpm:
        Quarter-note tempo.  Missing or non-positive values fall back to
        ``DEFAULT_TEMPO_BPM``.
    swing, swing_ratio:
        When ``swing`` is true or a positive ratio is given, offbeat eighths
        start at ``swing_ratio`` of the beat (``2/3`` by default).
    channel, velocity:
        MIDI channel (0-15) and base velocity of every note.
    track_name:
        Optional name stored in a ``track_name`` meta event.
    humanize:
        Optional timing and velocity jitter.

    Returns
    -------
    MidiFile
        In-memory file with 480 ticks per quarter note.
    """

    mido = _import_mido()

    if not isinstance(channel, int) or not 0 <= channel <= 15:
        raise ValueError("channel must be an integer between 0 and 15")
    if tempo_bpm is None or not math.isfinite(tempo_bpm) or tempo_bpm <= 0:
        tempo_bpm = DEFAULT_TEMPO_BPM
    ratio = _resolve_swing_ratio(swing, swing_ratio)

    events = [
        (0, _ORDER_META, mido.MetaMessage("time_signature", numerator=4, denominator=4)),
        (0, _ORDER_META + 1, mido.MetaMessage("set_tempo", tempo=mido.bpm2tempo(tempo_bpm))),
    ]
    # mido stores meta text as latin-1; symbols such as ``∆`` become ``?``.
    name = track_name.strip().encode("latin-1", "replace").decode("latin-1") if track_name else ""
    if name:
        events.append((0, _ORDER_META + 2, mido.MetaMessage("track_name", name=name)))
    if ratio is not None:
        events.append((0, _ORDER_META + 3, mido.MetaMessage("text", text=f"Swing {round(ratio * 100)}%")))

    normalized, _ = normalize_note_times(notes)
    spans = [
        (eighth_to_ticks(t, ratio), eighth_to_ticks(t + dur, ratio), midi)
        for t, dur, midi in normalized
    ]
    for timing in humanize_timings(spans, velocity, humanize, TICKS_PER_QUARTER):
        note = timing.midi & 0x7F
        events.append(
            (timing.start, _ORDER_NOTE_ON, mido.Message("note_on", channel=channel, note=note, velocity=timing.velocity))
        )
        events.append(
            (timing.end, _ORDER_NOTE_OFF, mido.Message("note_off", channel=channel, note=note, velocity=64))
        )

    # ``sorted`` is stable, so events sharing tick and order keep their
    # insertion order.
    events.sort(key=lambda item: (item[0], item[1]))

    mid = mido.MidiFile(type=0, ticks_per_beat=TICKS_PER_QUARTER)
    track = mido.MidiTrack()
    mid.tracks.append(track)
    last_tick = 0
    for tick, _, msg in events:
        track.append(msg.copy(time=tick - last_tick))
        last_tick = tick
    track.append(mido.MetaMessage("end_of_track", time=0))
    return mid


def notes_to_midi_bytes(notes: Sequence[ScheduledNote], **kwargs) -> bytes:
    """Return the Standard MIDI File bytes of :func:`notes_to_midi`."""

    buffer = io.BytesIO()
    notes_to_midi(notes, **kwargs).save(file=buffer)
    return buffer.getvalue()


def write_midi_file(notes: Sequence[ScheduledNote], output_file: Union[str, Path], **kwargs) -> "MidiFile":
    """Render ``notes`` and save them to ``output_file``.

    The parent directory is created when missing.  Keyword arguments are
    passed on to :func:`notes_to_midi`.
    """

    mid = notes_to_midi(notes, **kwargs)
    path = Path(output_file).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    mid.save(str(path))
    logger.info("MIDI file saved to %s", path)
    return mid
