"""Chord-theory catalog: chord profiles and approach formulas.

The catalog lives in ``data/theory.json`` and is validated when it is loaded so
that scheduling never has to second-guess its shape.  Two lookups matter to
the engine:

``get_chord_profile(symbol)``
    Maps a chord symbol such as ``Dm9`` or ``C∆`` to the profile of its
    quality.  The profile lists every harmonic degree a line may target and
    the formula type used to approach it.

``get_formulas(formula_type)``
    Returns the grouped catalog of approach formulas for
    :class:`FormulaType` ``TYPE_1`` or ``TYPE_2``.

Chord symbols are reduced to a quality by stripping the root and mapping
common aliases (``Δ``, ``m9``, ``7(b9)``, ``m7b5`` ...) onto the canonical
names used as keys in the catalog.

Example
-------
>>> from bebop_targeting.theory import get_chord_profile
>>> sorted(get_chord_profile("Cmaj7").targets)
['1', '3', '5', '7M']
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from enum import IntEnum
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from .errors import MissingTargetDataError, TheoryDataError, UnknownChordError

__all__ = [
    "DEFAULT_THEORY_PATH",
    "FormulaType",
    "TargetInfo",
    "ChordProfile",
    "TheoryStore",
    "extract_quality",
    "default_store",
    "get_chord_profile",
    "get_formulas",
    "available_chord_qualities",
]

logger = logging.getLogger(__name__)

DEFAULT_THEORY_PATH = Path(__file__).resolve().parent / "data" / "theory.json"

# Alias table applied after the root has been stripped from a symbol.  Values
# are keys of the ``chords`` section of the catalog.
_QUALITY_ALIASES: Dict[str, str] = {
    "": "maj7",
    "maj": "maj7",
    "maj7": "maj7",
    "maj9": "maj7",
    "maj11": "maj7",
    "maj13": "maj7",
    "M7": "maj7",
    "m7": "m7",
    "m9": "m7",
    "m11": "m7",
    "m13": "m7",
    "min7": "m7",
    "min9": "m7",
    "m6": "m6",
    "mMaj7": "mMaj7",
    "ø": "ø",
    "Ø": "ø",
    "m7b5": "ø",
    "halfdim": "ø",
    "dim": "dim7",
    "dim7": "dim7",
    "o7": "dim7",
    "7": "7",
    "9": "7",
    "11": "7",
    "13": "7",
    "7b9": "7",
    "7#9": "7",
    "7b5": "7b5",
    "7#5": "7#5",
    "aug": "7#5",
    "#5": "7#5",
    "sus": "frig",
    "sus4": "frig",
    "frig": "frig",
    "maj7b5": "maj7b5",
    "maj7#5": "maj7#5",
}

# ``C#5`` is read as ``C`` plus ``#5`` because the parser spells ``C+`` that way.
_SYMBOL_RE = re.compile(r"^([A-Ga-g](?:#(?!5$)|b)?)(.*)$")
_PAREN_RE = re.compile(r"\((.*?)\)")


class FormulaType(IntEnum):
    """Formula families a chord degree may be approached with."""

    TYPE_1 = 1
    TYPE_2 = 2

    @classmethod
    def coerce(cls, value: Any) -> Optional["FormulaType"]:
        """Return the member matching ``value`` or ``None`` when unsupported."""

        if isinstance(value, bool):
            return None
        if isinstance(value, cls):
            return value
        if isinstance(value, int):
            try:
                return cls(value)
            except ValueError:
                return None
        return None

    @property
    def catalog_key(self) -> str:
        return self.name


@dataclass(frozen=True)
class TargetInfo:
    """Metadata of a targetable degree within a chord profile."""

    reference: str
    type: Union[int, str]
    interval: Optional[str] = None

    @property
    def formula_type(self) -> Optional[FormulaType]:
        return FormulaType.coerce(self.type)


@dataclass(frozen=True)
class ChordProfile:
    """Degrees, default extensions and targets of one chord quality."""

    quality: str
    structure: List[str] = field(default_factory=list)
    extensions_default: Dict[str, str] = field(default_factory=dict)
    targets: Dict[str, TargetInfo] = field(default_factory=dict)


def _normalise_quality_text(raw: str) -> str:
    cleaned = _PAREN_RE.sub(lambda match: match.group(1), raw)
    cleaned = re.sub(r"\s", "", cleaned)
    cleaned = cleaned.replace("Δ", "maj7").replace("∆", "maj7")
    cleaned = cleaned.replace("º", "dim")
    cleaned = cleaned.replace("+", "#5")
    return cleaned


def extract_quality(symbol: str) -> str:
    """Return the raw quality text of ``symbol`` with its root removed."""

    trimmed = symbol.strip()
    match = _SYMBOL_RE.match(trimmed)
    if not match:
        return _normalise_quality_text(trimmed)
    return _normalise_quality_text(match.group(2) or "")


class TheoryStore:
    """Validated in-memory view of a theory catalog document."""

    def __init__(self, data: Mapping[str, Any]) -> None:
        self._formulas = self._load_formulas(data)
        self._chords = self._load_chords(data)
        self.meta = data.get("meta")

    @classmethod
    def from_path(cls, path: Union[str, Path] = DEFAULT_THEORY_PATH) -> "TheoryStore":
        """Load and validate the catalog stored at ``path``."""

        try:
            with open(path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            logger.error("Could not load theory catalog %s: %s", path, exc)
            raise TheoryDataError(f"Could not load theory catalog {path}: {exc}") from exc
        return cls(data)

    # ------------------------------------------------------------------
    # Load-time validation
    # ------------------------------------------------------------------
    @staticmethod
    def _load_formulas(data: Mapping[str, Any]) -> Dict[FormulaType, Dict[str, List[List[int]]]]:
        section = data.get("formulas")
        if not isinstance(section, Mapping):
            raise TheoryDataError("Theory catalog is missing a 'formulas' mapping")
        formulas: Dict[FormulaType, Dict[str, List[List[int]]]] = {}
        for formula_type in FormulaType:
            groups = section.get(formula_type.catalog_key, {})
            if not isinstance(groups, Mapping):
                raise TheoryDataError(f"Formulas for {formula_type.catalog_key} must be a mapping")
            validated: Dict[str, List[List[int]]] = {}
            for group, patterns in groups.items():
                if not isinstance(patterns, list):
                    raise TheoryDataError(f"Formula group '{group}' must be a list")
                for pattern in patterns:
                    if (
                        not isinstance(pattern, list)
                        or not pattern
                        or not all(isinstance(v, int) and not isinstance(v, bool) for v in pattern)
                    ):
                        raise TheoryDataError(
                            f"Formula {pattern!r} in group '{group}' must be a non-empty list of integers"
                        )
                    if pattern[-1] != 0:
                        raise TheoryDataError(
                            f"Formula {pattern!r} in group '{group}' must end on the target (0)"
                        )
                validated[str(group)] = [list(p) for p in patterns]
            formulas[formula_type] = validated
        return formulas

    @staticmethod
    def _load_chords(data: Mapping[str, Any]) -> Dict[str, ChordProfile]:
        section = data.get("chords")
        if not isinstance(section, Mapping) or not section:
            raise TheoryDataError("Theory catalog is missing a non-empty 'chords' mapping")
        chords: Dict[str, ChordProfile] = {}
        for quality, entry in section.items():
            targets_raw = entry.get("targets") if isinstance(entry, Mapping) else None
            if not isinstance(targets_raw, Mapping) or not targets_raw:
                raise TheoryDataError(f"Chord quality '{quality}' defines no targets")
            targets: Dict[str, TargetInfo] = {}
            for degree, info in targets_raw.items():
                if not isinstance(info, Mapping) or "type" not in info:
                    raise TheoryDataError(
                        f"Target '{degree}' of chord quality '{quality}' needs a formula type"
                    )
                targets[str(degree)] = TargetInfo(
                    reference=str(info.get("reference", "")),
                    type=info["type"],
                    interval=info.get("interval"),
                )
            chords[str(quality)] = ChordProfile(
                quality=str(quality),
                structure=list(entry.get("structure", [])),
                extensions_default=dict(entry.get("extensions_default", {})),
                targets=targets,
            )
        return chords

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def resolve_quality(self, symbol: str) -> Optional[str]:
        """Return the catalog quality for ``symbol`` or ``None`` when unknown."""

        cleaned = extract_quality(symbol)
        alias = _QUALITY_ALIASES.get(cleaned)
        if alias is not None and alias in self._chords:
            return alias
        if cleaned in self._chords:
            return cleaned
        return None

    def lookup_chord_profile(self, symbol: str) -> Optional[ChordProfile]:
        """Return the profile of ``symbol`` or ``None`` when it is not recognised."""

        quality = self.resolve_quality(symbol)
        if quality is None:
            return None
        return self._chords[quality]

    def get_chord_profile(self, symbol: str) -> ChordProfile:
        """Return the profile of ``symbol``.

        Raises
        ------
        UnknownChordError
            If the quality of ``symbol`` is not part of the catalog.
        """

        profile = self.lookup_chord_profile(symbol)
        if profile is None:
            raise UnknownChordError(symbol)
        return profile

    def get_formulas(self, formula_type: Any) -> Dict[str, List[List[int]]]:
        """Return a copy of the grouped formulas for ``formula_type``."""

        resolved = FormulaType.coerce(formula_type)
        if resolved is None:
            raise MissingTargetDataError(f"Unsupported formula type: {formula_type!r}")
        return {group: [list(p) for p in patterns] for group, patterns in self._formulas[resolved].items()}

    def available_chord_qualities(self) -> List[str]:
        return list(self._chords)


@lru_cache(maxsize=None)
def default_store() -> TheoryStore:
    """Return the catalog bundled with the package, loaded once per process."""

    return TheoryStore.from_path(DEFAULT_THEORY_PATH)


def get_chord_profile(symbol: str) -> ChordProfile:
    return default_store().get_chord_profile(symbol)


def get_formulas(formula_type: Any) -> Dict[str, List[List[int]]]:
    return default_store().get_formulas(formula_type)


def available_chord_qualities() -> List[str]:
    return default_store().available_chord_qualities()
