"""Melodic scheduling engine.

For each chord window the scheduler asks the contour generator for a target,
draws an approach formula for that target, fits the formula into the
available time and emits the resulting notes.  Formulas that would reach back
further than the previous chord window are shortened from the front one note
at a time, so a figure may anticipate into the previous chord but never into
the one before it.  When every window has been processed a single closure
note is appended one eighth after the last target.

Modification summary
--------------------
* ``schedule_progression`` accepts either parsed windows or raw progression
  text so callers do not need to import the parser.
* The theory store is injectable which keeps the tests independent of the
  bundled catalog.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .contour import ContourGenerator, ContourTarget
from .errors import EmptyCatalogError, MissingTargetDataError
from .parser import ChordWindow, parse_progression
from .pitch import MAX_MIDI, MIN_MIDI, midi_to_pitch, wrap_midi_to_range
from .policies import PolicyManager
from .rhythm import RhythmPlacement, compute_rhythm_placement
from .rng import SeededRandom
from .theory import ChordProfile, TheoryStore, default_store

__all__ = [
    "NoteSource",
    "ScheduledNote",
    "FormulaCandidate",
    "SchedulerRequest",
    "flatten_formulas",
    "select_formula",
    "fit_formula",
    "realise_approach_midis",
    "schedule_for_window",
    "add_closure",
    "schedule_progression",
    "schedule_request",
]

logger = logging.getLogger(__name__)

# Largest leap allowed between the final target and the closure note.
MAX_CLOSURE_INTERVAL = 11


class NoteSource(str, Enum):
    """Role of a scheduled note within the line."""

    APPROACH = "approach"
    TARGET = "target"
    ISOLATED = "isolated"
    CLOSURE = "closure"


@dataclass
class ScheduledNote:
    """A single melodic event measured in eighth notes."""

    t: int
    midi: int
    pitch: str
    src: NoteSource
    dur: int = 1
    chord: Optional[str] = None
    degree: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "t": self.t,
            "dur": self.dur,
            "midi": self.midi,
            "pitch": self.pitch,
            "src": self.src.value,
        }
        if self.chord is not None:
            data["chord"] = self.chord
        if self.degree is not None:
            data["degree"] = self.degree
        return data


@dataclass(frozen=True)
class FormulaCandidate:
    pattern: Tuple[int, ...]
    group: str


@dataclass
class SchedulerRequest:
    """Parameters of one generation request.

    ``key`` does not steer the line; it only sets the key signature of the
    MusicXML score.
    """

    progression: str
    key: str = "C"
    tempo_bpm: Optional[float] = None
    swing: Optional[bool] = None
    contour_slider: Optional[float] = None
    seed: Optional[Union[int, float]] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SchedulerRequest":
        """Build a request from decoded JSON.

        Raises
        ------
        ValueError
            If ``progression`` is missing or not a string.
        """

        progression = data.get("progression")
        if not isinstance(progression, str):
            raise ValueError("progression must be a string")
        return cls(
            progression=progression,
            key=str(data.get("key") or "C"),
            tempo_bpm=data.get("tempo_bpm"),
            swing=data.get("swing"),
            contour_slider=data.get("contour_slider"),
            seed=data.get("seed"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"progression": self.progression, "key": self.key}
        for name in ("tempo_bpm", "swing", "contour_slider", "seed"):
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        return data


def flatten_formulas(collection: Mapping[str, Sequence[Sequence[int]]]) -> List[FormulaCandidate]:
    """Flatten a grouped formula catalog, preserving group and pattern order."""

    return [
        FormulaCandidate(pattern=tuple(pattern), group=group)
        for group, patterns in collection.items()
        for pattern in patterns
    ]


def select_formula(
    profile: ChordProfile,
    target: ContourTarget,
    rng: SeededRandom,
    policy: Optional[PolicyManager] = None,
    store: Optional[TheoryStore] = None,
) -> List[int]:
    """Draw an approach formula for ``target`` from the catalog.

    Candidates are weighted by the number of approach notes they contain and
    then adjusted by ``policy``.  If every adjusted weight is zero the draw
    falls back to a uniform distribution.

    Raises
    ------
    MissingTargetDataError
        If ``profile`` lacks the target degree or its formula type is unsupported.
    EmptyCatalogError
        If the catalog holds no formulas for the required type.
    """

    info = profile.targets.get(target.degree)
    if info is None:
        raise MissingTargetDataError(
            f'Chord profile "{profile.quality}" has no data for degree {target.degree}'
        )
    formula_type = info.formula_type
    if formula_type is None:
        raise MissingTargetDataError(
            f"No formulas available for degree {target.degree} (type {info.type!r})"
        )

    candidates = flatten_formulas((store or default_store()).get_formulas(formula_type))
    if not candidates:
        raise EmptyCatalogError(f"No formulas available for type {int(formula_type)}")

    weights = []
    for candidate in candidates:
        base_weight = max(1, len(candidate.pattern) - 1)
        if policy is not None:
            base_weight = policy.evaluate_formula_weight(formula_type, candidate, base_weight)
        weights.append(max(0.0, base_weight))
    if sum(weights) <= 0:
        weights = [1.0] * len(candidates)

    selected = rng.choice_weighted(candidates, weights)
    if policy is not None:
        policy.register_selected_type(formula_type)
    return list(selected.pattern)


def fit_formula(
    window: ChordWindow,
    formula: Sequence[int],
    previous_window: Optional[ChordWindow],
    landing_preference: Optional[Sequence[int]] = None,
) -> Tuple[List[int], RhythmPlacement]:
    """Shorten ``formula`` from the front until it fits after the previous window start.

    The loop stops at a single-note formula (the target alone) whatever the
    placement, so it always terminates.
    """

    current = list(formula)
    placement = compute_rhythm_placement(window, len(current), landing_preference)
    lower_bound = previous_window.start_eighth if previous_window is not None else 0
    while len(current) > 1 and placement.earliest < lower_bound:
        current = current[1:]
        placement = compute_rhythm_placement(window, len(current), landing_preference)
    return current, placement


def realise_approach_midis(target_midi: int, formula: Sequence[int]) -> List[int]:
    """Return the wrapped MIDI pitches of every approach offset in ``formula``."""

    return [wrap_midi_to_range(target_midi + offset, MIN_MIDI, MAX_MIDI) for offset in formula[:-1]]


def schedule_for_window(
    notes: List[ScheduledNote],
    window: ChordWindow,
    profile: ChordProfile,
    target: ContourTarget,
    rng: SeededRandom,
    previous_window: Optional[ChordWindow] = None,
    policy: Optional[PolicyManager] = None,
    store: Optional[TheoryStore] = None,
) -> List[ScheduledNote]:
    """Append the notes for ``window`` to ``notes`` and return the list."""

    raw_formula = select_formula(profile, target, rng, policy, store)
    landing_preference = policy.get_landing_preferences(window.length_eighths) if policy else None
    formula, placement = fit_formula(window, raw_formula, previous_window, landing_preference)
    target_midi = wrap_midi_to_range(target.midi, MIN_MIDI, MAX_MIDI)

    logger.debug(
        "%s: formula %s (from %s) landing %d, approach from %d",
        window.chord_symbol,
        formula,
        raw_formula,
        placement.landing,
        placement.approach_start,
    )

    isolated = placement.isolated
    if isolated is not None and isolated < 0 and previous_window is None:
        isolated = None
    if isolated is not None:
        notes.append(
            ScheduledNote(t=isolated, midi=target_midi, pitch=midi_to_pitch(target_midi), src=NoteSource.ISOLATED)
        )

    for index, midi in enumerate(realise_approach_midis(target.midi, formula)):
        time = placement.approach_start + index
        if previous_window is not None and time < window.start_eighth and time < previous_window.start_eighth:
            continue
        notes.append(
            ScheduledNote(
                t=time,
                midi=midi,
                pitch=midi_to_pitch(midi),
                src=NoteSource.APPROACH,
                chord=window.chord_symbol,
            )
        )

    notes.append(
        ScheduledNote(
            t=placement.landing,
            midi=target_midi,
            pitch=target.pitch,
            src=NoteSource.TARGET,
            chord=window.chord_symbol,
            degree=target.degree,
        )
    )
    return notes


def add_closure(notes: List[ScheduledNote]) -> Optional[ScheduledNote]:
    """Append the closing note after the last target and return it.

    The closure sits a whole step below the target, or a whole step above
    when that would leave the register.  Leaps beyond a major seventh are
    replaced by the fourth below, wrapped into the register.
    """

    targets = [note for note in notes if note.src is NoteSource.TARGET]
    if not targets:
        return None
    last_target = targets[0]
    for note in targets[1:]:
        if note.t > last_target.t:
            last_target = note

    closure_midi = last_target.midi - 2
    if closure_midi < MIN_MIDI:
        closure_midi = last_target.midi + 2 if last_target.midi + 2 <= MAX_MIDI else MIN_MIDI
    if abs(closure_midi - last_target.midi) > MAX_CLOSURE_INTERVAL:
        closure_midi = wrap_midi_to_range(last_target.midi - 5, MIN_MIDI, MAX_MIDI)

    closure = ScheduledNote(
        t=last_target.t + 1,
        midi=closure_midi,
        pitch=midi_to_pitch(closure_midi),
        src=NoteSource.CLOSURE,
    )
    notes.append(closure)
    return closure


def schedule_progression(
    windows: Union[str, Sequence[ChordWindow]],
    rng: SeededRandom,
    contour: Optional[ContourGenerator] = None,
    policy: Optional[PolicyManager] = None,
    store: Optional[TheoryStore] = None,
) -> List[ScheduledNote]:
    """Schedule a complete line over ``windows``.

    Parameters
    ----------
    windows:
        Parsed chord windows or progression text such as ``"| Dm9 G13 | C∆ |"``.
    rng:
        Random source owned by this run.
    contour, policy:
        Per-run state objects.  Fresh defaults are created when omitted.
    store:
        Theory catalog; the bundled one is used when omitted.

    Returns
    -------
    List[ScheduledNote]
        Notes sorted by time, ending with the closure note.

    Raises
    ------
    BebopError
        Any theory, formula or register problem aborts the whole run.
    """

    if isinstance(windows, str):
        windows = parse_progression(windows)
    windows = list(windows)
    if not windows:
        return []

    store = store or default_store()
    contour = contour or ContourGenerator()
    policy = policy or PolicyManager()

    notes: List[ScheduledNote] = []
    previous_window: Optional[ChordWindow] = None
    for window in windows:
        profile = store.get_chord_profile(window.chord_symbol)
        target = contour.next_target(window.chord_symbol, profile)
        schedule_for_window(notes, window, profile, target, rng, previous_window, policy, store)
        previous_window = window

    # ``sorted`` is stable so notes sharing a time keep their emission order.
    notes = sorted(notes, key=lambda note: note.t)
    add_closure(notes)
    return sorted(notes, key=lambda note: note.t)


def schedule_request(
    request: SchedulerRequest,
    rng: SeededRandom,
    contour: Optional[ContourGenerator] = None,
    policy: Optional[PolicyManager] = None,
    store: Optional[TheoryStore] = None,
) -> List[ScheduledNote]:
    """Schedule ``request.progression`` with a contour built from its slider."""

    if contour is None:
        contour = ContourGenerator(request.contour_slider)
    return schedule_progression(request.progression, rng, contour=contour, policy=policy, store=store)
