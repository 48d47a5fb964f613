"""Configurable weighting policy for formula and landing selection.

A :class:`PolicyManager` lives for exactly one scheduling run.  Besides the
static multipliers from its :class:`PolicyConfig` it remembers the formula
type chosen for the previous chord so an optional penalty can discourage two
consecutive chords from reusing the same formula family.

Policies are usually loaded from the settings file, where keys are strings::

    {
        "formula": {
            "lengthWeights": {"1": {"5": 4}},
            "groupWeights": {"2": {"bebop_cells": 0.5}},
            "repeatTypePenalty": 0.4
        },
        "rhythm": {"landingOrder": {"4": [3, 1]}}
    }
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from .theory import FormulaType

__all__ = [
    "MAX_REPEAT_PENALTY",
    "FormulaPolicyConfig",
    "RhythmPolicyConfig",
    "PolicyConfig",
    "PolicyManager",
    "create_policy_manager",
]

MAX_REPEAT_PENALTY = 0.95


@dataclass
class FormulaPolicyConfig:
    """Multipliers applied to formula weights, keyed by formula type."""

    length_weights: Dict[FormulaType, Dict[int, float]] = field(default_factory=dict)
    group_weights: Dict[FormulaType, Dict[str, float]] = field(default_factory=dict)
    repeat_type_penalty: float = 0.0


@dataclass
class RhythmPolicyConfig:
    """Preferred landing offsets keyed by window length in eighths."""

    landing_order: Dict[int, List[int]] = field(default_factory=dict)


@dataclass
class PolicyConfig:
    formula: FormulaPolicyConfig = field(default_factory=FormulaPolicyConfig)
    rhythm: RhythmPolicyConfig = field(default_factory=RhythmPolicyConfig)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "PolicyConfig":
        """Build a config from JSON-style data with string keys.

        Both camelCase and snake_case field names are accepted.

        Raises
        ------
        ValueError
            If a formula type key is not ``1`` or ``2`` or a value is not numeric.
        """

        if not data:
            return cls()
        if not isinstance(data, Mapping):
            raise ValueError("Policy must be a JSON object")
        formula_raw = _section(data, "formula")
        rhythm_raw = _section(data, "rhythm")

        length_raw = _mapping(_pick(formula_raw, "lengthWeights", "length_weights"), "lengthWeights")
        group_raw = _mapping(_pick(formula_raw, "groupWeights", "group_weights"), "groupWeights")
        penalty_raw = _pick(formula_raw, "repeatTypePenalty", "repeat_type_penalty")
        landing_raw = _mapping(_pick(rhythm_raw, "landingOrder", "landing_order"), "landingOrder")

        try:
            formula = FormulaPolicyConfig(
                length_weights={
                    _formula_type_key(tipo): {
                        int(length): _number(w) for length, w in _mapping(weights, "lengthWeights").items()
                    }
                    for tipo, weights in length_raw.items()
                },
                group_weights={
                    _formula_type_key(tipo): {
                        str(group): _number(w) for group, w in _mapping(weights, "groupWeights").items()
                    }
                    for tipo, weights in group_raw.items()
                },
                repeat_type_penalty=_number(penalty_raw) if penalty_raw else 0.0,
            )
            rhythm = RhythmPolicyConfig(
                landing_order={
                    int(length): [int(o) for o in _offsets(order)] for length, order in landing_raw.items()
                }
            )
        except TypeError as exc:
            raise ValueError(f"Malformed policy: {exc}") from exc
        return cls(formula=formula, rhythm=rhythm)


def _section(data: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    return _mapping(data.get(name) or {}, name)


def _mapping(value: Any, name: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ValueError(f"Policy entry '{name}' must be a JSON object")
    return value


def _offsets(value: Any) -> List[Any]:
    if not isinstance(value, list):
        raise ValueError("Policy landingOrder values must be lists of offsets")
    return value


def _number(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError(f"Policy weight must be numeric, got {value!r}")
    return float(value)


def _pick(data: Mapping[str, Any], camel: str, snake: str) -> Any:
    value = data.get(camel)
    if value is None:
        value = data.get(snake)
    return value if value is not None else {}


def _formula_type_key(raw: Any) -> FormulaType:
    try:
        resolved = FormulaType.coerce(int(raw))
    except (TypeError, ValueError):
        resolved = None
    if resolved is None:
        raise ValueError(f"Unsupported formula type in policy: {raw!r}")
    return resolved


def _clamp(value: float, low: float, high: float) -> float:
    return min(max(value, low), high)


class PolicyManager:
    """Stateful weighting policy scoped to one scheduling run."""

    def __init__(self, config: Optional[PolicyConfig] = None) -> None:
        self.config = config or PolicyConfig()
        self.last_type: Optional[FormulaType] = None

    def evaluate_formula_weight(self, formula_type: FormulaType, candidate: Any, base_weight: float) -> float:
        """Return ``base_weight`` adjusted for ``candidate``.

        ``candidate`` needs ``pattern`` and ``group`` attributes.  The repeat
        penalty is clamped to ``[0, MAX_REPEAT_PENALTY]`` and only applies when
        ``formula_type`` matches the type registered on the previous call.
        """

        formula_cfg = self.config.formula
        weight = base_weight
        length_weight = formula_cfg.length_weights.get(formula_type, {}).get(len(candidate.pattern))
        if length_weight is not None:
            weight *= length_weight
        group_weight = formula_cfg.group_weights.get(formula_type, {}).get(candidate.group)
        if group_weight is not None:
            weight *= group_weight
        penalty = _clamp(formula_cfg.repeat_type_penalty or 0.0, 0.0, MAX_REPEAT_PENALTY)
        if penalty > 0 and self.last_type == formula_type:
            weight *= 1 - penalty
        return weight

    def register_selected_type(self, formula_type: FormulaType) -> None:
        self.last_type = formula_type

    def get_landing_preferences(self, window_length: int) -> Optional[List[int]]:
        """Return a copy of the preferred landing offsets for ``window_length``."""

        preferences = self.config.rhythm.landing_order.get(window_length)
        if not preferences:
            return None
        return list(preferences)


def create_policy_manager(config: Optional[PolicyConfig] = None) -> PolicyManager:
    return PolicyManager(config)
