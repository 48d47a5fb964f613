"""Tests for formula and landing policies.

Policies arrive from JSON settings files, so the loader is checked with the
string keys and camelCase names such files contain.
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from bebop_targeting.policies import PolicyConfig, PolicyManager  # noqa: E402  # isort:skip
from bebop_targeting.scheduler import FormulaCandidate  # noqa: E402  # isort:skip
from bebop_targeting.theory import FormulaType  # noqa: E402  # isort:skip


ENCLOSURE = FormulaCandidate(pattern=(2, -1, 0), group="enclosures")
BEBOP_CELL = FormulaCandidate(pattern=(4, 2, 1, -1, 0), group="bebop_cells")


def test_from_dict_camel_case():
    """camelCase keys with string numbers are converted to typed values."""
    config = PolicyConfig.from_dict(
        {
            "formula": {
                "lengthWeights": {"1": {"5": 4}},
                "groupWeights": {"2": {"bebop_cells": 0.5}},
                "repeatTypePenalty": 0.4,
            },
            "rhythm": {"landingOrder": {"4": [3, 1]}},
        }
    )
    assert config.formula.length_weights == {FormulaType.TYPE_1: {5: 4.0}}
    assert config.formula.group_weights == {FormulaType.TYPE_2: {"bebop_cells": 0.5}}
    assert config.formula.repeat_type_penalty == 0.4
    assert config.rhythm.landing_order == {4: [3, 1]}


def test_from_dict_snake_case_and_empty():
    """snake_case names are accepted and empty input gives defaults."""
    config = PolicyConfig.from_dict({"rhythm": {"landing_order": {"8": ["5"]}}})
    assert config.rhythm.landing_order == {8: [5]}
    assert PolicyConfig.from_dict(None) == PolicyConfig()


def test_from_dict_rejects_unknown_formula_type():
    """Only formula types 1 and 2 may be configured."""
    with pytest.raises(ValueError, match="Unsupported formula type"):
        PolicyConfig.from_dict({"formula": {"lengthWeights": {"3": {"5": 2}}}})


@pytest.mark.parametrize(
    "data",
    [
        ["not", "a", "mapping"],
        {"formula": ["x"]},
        {"formula": {"lengthWeights": {"1": {"5": None}}}},
        {"formula": {"lengthWeights": {"1": [5]}}},
        {"formula": {"groupWeights": {"2": {"bebop_cells": [0.5]}}}},
        {"formula": {"repeatTypePenalty": {"value": 1}}},
        {"rhythm": {"landingOrder": {"8": 5}}},
        {"rhythm": {"landingOrder": {"8": [None]}}},
        {"rhythm": "fast"},
    ],
)
def test_from_dict_rejects_malformed_values(data):
    """Wrongly shaped entries are reported as ``ValueError``."""
    with pytest.raises(ValueError):
        PolicyConfig.from_dict(data)


def test_default_policy_keeps_base_weight():
    """Without configuration the weight passes through unchanged."""
    manager = PolicyManager()
    assert manager.evaluate_formula_weight(FormulaType.TYPE_1, ENCLOSURE, 2) == 2


def test_length_and_group_multipliers():
    """Length and group multipliers compound for a matching candidate."""
    config = PolicyConfig.from_dict(
        {"formula": {"lengthWeights": {"1": {"5": 3}}, "groupWeights": {"1": {"bebop_cells": 0.5}}}}
    )
    manager = PolicyManager(config)
    assert manager.evaluate_formula_weight(FormulaType.TYPE_1, BEBOP_CELL, 4) == pytest.approx(6.0)
    assert manager.evaluate_formula_weight(FormulaType.TYPE_1, ENCLOSURE, 2) == 2
    assert manager.evaluate_formula_weight(FormulaType.TYPE_2, BEBOP_CELL, 4) == 4


def test_repeat_penalty_applies_after_same_type():
    """The penalty only applies when the previous chord used the same type."""
    manager = PolicyManager(PolicyConfig.from_dict({"formula": {"repeatTypePenalty": 0.5}}))
    assert manager.evaluate_formula_weight(FormulaType.TYPE_1, ENCLOSURE, 2) == 2
    manager.register_selected_type(FormulaType.TYPE_1)
    assert manager.evaluate_formula_weight(FormulaType.TYPE_1, ENCLOSURE, 2) == pytest.approx(1.0)
    assert manager.evaluate_formula_weight(FormulaType.TYPE_2, ENCLOSURE, 2) == 2


def test_repeat_penalty_is_clamped():
    """Penalties above the maximum never zero out a weight."""
    manager = PolicyManager(PolicyConfig.from_dict({"formula": {"repeatTypePenalty": 2.0}}))
    manager.register_selected_type(FormulaType.TYPE_1)
    assert manager.evaluate_formula_weight(FormulaType.TYPE_1, ENCLOSURE, 1) == pytest.approx(0.05)


def test_landing_preferences_are_copies():
    """Callers may mutate the returned list without touching the config."""
    manager = PolicyManager(PolicyConfig.from_dict({"rhythm": {"landingOrder": {"8": [5, 3]}}}))
    preferences = manager.get_landing_preferences(8)
    assert preferences == [5, 3]
    preferences.append(7)
    assert manager.get_landing_preferences(8) == [5, 3]
    assert manager.get_landing_preferences(4) is None
