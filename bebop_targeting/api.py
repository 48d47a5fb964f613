"""High level generation API shared by the CLI and the web front end.

A request is validated, scheduled with a freshly seeded random source and
rendered to every supported format in one call.  The response objects expose
``to_dict`` so they can be returned as JSON unchanged.

Example
-------
>>> from bebop_targeting.api import generate_from_request
>>> from bebop_targeting.scheduler import SchedulerRequest
>>> response = generate_from_request(SchedulerRequest("| Dm9 G13 | C∆ |", seed=7))
>>> response.meta.total_bars
2
"""

from __future__ import annotations

import base64
import logging
import math
import time
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Sequence, Union

from .contour import ContourGenerator
from .midi_io import notes_to_midi_bytes
from .musicxml_export import notes_to_musicxml
from .parser import EIGHTHS_PER_BAR
from .pitch import key_to_fifths
from .policies import PolicyConfig, PolicyManager
from .rng import make_rng
from .scheduler import ScheduledNote, SchedulerRequest, schedule_request
from .structure import StructuredData, build_structured_data
from .text_export import notes_to_text
from .validation import assert_known_chords

__all__ = [
    "DEFAULT_TEMPO_BPM",
    "DEFAULT_SWING_RATIO",
    "GeneratorOptions",
    "GeneratorMeta",
    "GeneratorArtifacts",
    "GeneratorResponse",
    "GeneratorMidiStream",
    "GeneratorVariantsResponse",
    "normalize_seed",
    "generate_from_request",
    "generate_midi_stream",
    "generate_variants_from_request",
]

logger = logging.getLogger(__name__)

DEFAULT_TEMPO_BPM = 180
DEFAULT_SWING_RATIO = 2 / 3
DEFAULT_VARIANT_COUNT = 2


@dataclass
class GeneratorOptions:
    """Defaults applied when a request leaves a value unset."""

    default_tempo_bpm: float = DEFAULT_TEMPO_BPM
    default_swing_ratio: float = DEFAULT_SWING_RATIO
    policy: Optional[PolicyConfig] = None


@dataclass
class GeneratorMeta:
    progression: str
    total_eighths: int
    total_bars: int
    tempo_bpm: Optional[float]
    swing: Optional[bool]
    swing_ratio: Optional[float]
    seed: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "progression": self.progression,
            "totalEighths": self.total_eighths,
            "totalBars": self.total_bars,
            "tempo_bpm": self.tempo_bpm,
            "swing": self.swing,
            "swingRatio": self.swing_ratio,
            "seed": self.seed,
        }


@dataclass
class GeneratorArtifacts:
    text: str
    midi_base64: str
    music_xml: str

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text, "midiBase64": self.midi_base64, "musicXml": self.music_xml}


@dataclass
class GeneratorResponse:
    notes: List[ScheduledNote]
    meta: GeneratorMeta
    artifacts: GeneratorArtifacts
    structured: StructuredData

    def to_dict(self) -> Dict[str, Any]:
        return {
            "notes": [note.to_dict() for note in self.notes],
            "meta": self.meta.to_dict(),
            "artifacts": self.artifacts.to_dict(),
            "structured": self.structured.to_dict(),
        }


@dataclass
class GeneratorMidiStream:
    notes: List[ScheduledNote]
    meta: GeneratorMeta
    midi_bytes: bytes


@dataclass
class GeneratorVariantsResponse:
    variants: List[GeneratorResponse] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"variants": [variant.to_dict() for variant in self.variants]}


def normalize_seed(seed: Optional[Union[int, float]]) -> int:
    """Return an integer seed, deriving one from the clock when ``seed`` is ``None``.

    Raises
    ------
    ValueError
        If ``seed`` is not a finite number.
    """

    if seed is None:
        return int(time.time() * 1000) % 0xFFFFFFFF
    if isinstance(seed, bool) or not isinstance(seed, (int, float)):
        raise ValueError("seed must be a finite number")
    if isinstance(seed, float):
        if not math.isfinite(seed):
            raise ValueError("seed must be a finite number")
        return math.trunc(seed)
    return seed


def _validate_request(request: SchedulerRequest) -> None:
    if not request.progression or not request.progression.strip():
        raise ValueError("A chord progression is required")
    tempo = request.tempo_bpm
    if tempo is not None:
        if isinstance(tempo, bool) or not isinstance(tempo, (int, float)) or not math.isfinite(tempo) or tempo <= 0:
            raise ValueError("tempo_bpm must be a positive number")
    slider = request.contour_slider
    if slider is not None:
        if isinstance(slider, bool) or not isinstance(slider, (int, float)) or not 0 <= slider <= 1:
            raise ValueError("contour_slider must be a number between 0 and 1")
    if request.swing is not None and not isinstance(request.swing, bool):
        raise ValueError("swing must be a boolean")
    if request.key is not None and not isinstance(request.key, str):
        raise ValueError("key must be a string such as \"C\" or \"Bb\"")
    key_to_fifths(request.key or "C")


def _swing_ratio(swing: Optional[bool], options: GeneratorOptions) -> Optional[float]:
    return options.default_swing_ratio if swing else None


def _schedule(request: SchedulerRequest, seed: int, options: GeneratorOptions) -> List[ScheduledNote]:
    # Contour, policy and rng are owned by this call only.
    contour = ContourGenerator(request.contour_slider)
    policy = PolicyManager(options.policy)
    return schedule_request(request, make_rng(seed), contour=contour, policy=policy)


def _compute_meta(
    request: SchedulerRequest,
    notes: Sequence[ScheduledNote],
    seed: int,
    options: GeneratorOptions,
) -> GeneratorMeta:
    total_eighths = max((note.t + note.dur for note in notes), default=0)
    return GeneratorMeta(
        progression=request.progression,
        total_eighths=total_eighths,
        total_bars=max(1, math.ceil(total_eighths / EIGHTHS_PER_BAR)),
        tempo_bpm=request.tempo_bpm,
        swing=request.swing,
        swing_ratio=_swing_ratio(request.swing, options),
        seed=seed,
    )


def _midi_bytes(
    request: SchedulerRequest,
    notes: Sequence[ScheduledNote],
    meta: GeneratorMeta,
    options: GeneratorOptions,
) -> bytes:
    return notes_to_midi_bytes(
        notes,
        tempo_bpm=request.tempo_bpm or options.default_tempo_bpm,
        swing=bool(request.swing),
        swing_ratio=meta.swing_ratio,
        track_name=request.progression,
    )


def _prepare(request: SchedulerRequest, options: Optional[GeneratorOptions]):
    options = options or GeneratorOptions()
    _validate_request(request)
    assert_known_chords(request.progression)
    seed = normalize_seed(request.seed)
    notes = _schedule(request, seed, options)
    meta = _compute_meta(request, notes, seed, options)
    logger.debug("Generated %d notes for %r with seed %d", len(notes), request.progression, seed)
    return options, notes, meta


def generate_from_request(
    request: SchedulerRequest,
    options: Optional[GeneratorOptions] = None,
) -> GeneratorResponse:
    """Schedule ``request`` and render text, MIDI and MusicXML artifacts.

    Raises
    ------
    ValueError
        If the progression is empty or a request field is invalid.
    ProgressionValidationError
        If any chord of the progression is unknown.  Nothing is scheduled.
    """

    options, notes, meta = _prepare(request, options)
    swing_text = f"Swing {round(meta.swing_ratio * 100)}%" if meta.swing_ratio else None
    artifacts = GeneratorArtifacts(
        text=notes_to_text(notes),
        midi_base64=base64.b64encode(_midi_bytes(request, notes, meta, options)).decode("ascii"),
        music_xml=notes_to_musicxml(
            notes,
            title=request.progression,
            swing=bool(request.swing),
            swing_text=swing_text,
            fifths=key_to_fifths(request.key or "C"),
        ),
    )
    structured = build_structured_data(request.progression, notes, meta.total_eighths)
    return GeneratorResponse(notes=notes, meta=meta, artifacts=artifacts, structured=structured)


def generate_midi_stream(
    request: SchedulerRequest,
    options: Optional[GeneratorOptions] = None,
) -> GeneratorMidiStream:
    """Like :func:`generate_from_request` but only renders the MIDI bytes."""

    options, notes, meta = _prepare(request, options)
    return GeneratorMidiStream(notes=notes, meta=meta, midi_bytes=_midi_bytes(request, notes, meta, options))


def _normalize_count(count: Any) -> int:
    if count is None:
        return DEFAULT_VARIANT_COUNT
    if isinstance(count, bool) or not isinstance(count, int) or count <= 0:
        raise ValueError("count must be a positive integer")
    return count


def generate_variants_from_request(
    base_request: SchedulerRequest,
    count: Optional[int] = DEFAULT_VARIANT_COUNT,
    seeds: Optional[Sequence[Union[int, float]]] = None,
    options: Optional[GeneratorOptions] = None,
) -> GeneratorVariantsResponse:
    """Generate ``count`` variants of ``base_request`` that differ only by seed.

    Without explicit ``seeds`` the variants use consecutive seeds starting at
    the (normalised) seed of ``base_request``.

    Raises
    ------
    ValueError
        If ``count`` is not a positive integer, ``len(seeds) != count`` or a
        seed is not a finite number.
    """

    if base_request is None:
        raise ValueError("base_request is required")
    count = _normalize_count(count)
    if seeds is not None:
        if len(seeds) != count:
            raise ValueError("The number of seeds must match the number of variants")
        resolved = [normalize_seed(seed) for seed in seeds]
    else:
        base_seed = normalize_seed(base_request.seed)
        resolved = [base_seed + index for index in range(count)]
    variants = [generate_from_request(replace(base_request, seed=seed), options) for seed in resolved]
    return GeneratorVariantsResponse(variants=variants)
