"""Bebop Targeting: melodic lines that land chord tones on the offbeat.

Given a chord progression such as ``"| Dm9  G13 | C∆ |"`` the package builds a
monophonic eighth-note line in which every chord receives a *target* note on
an offbeat, approached by a short chromatic or scalar formula.  Approach
figures may start in the previous chord (anticipation) and the phrase ends
with a closing note one eighth after the last target.  Output is
deterministic for a given seed.

The line can be rendered as text, MIDI (via ``mido``) and MusicXML, either
from Python, from the ``bebop-targeting`` command or through the Flask API in
:mod:`bebop_targeting.web_api`.

Example
-------
>>> from bebop_targeting import SchedulerRequest, generate_from_request
>>> response = generate_from_request(SchedulerRequest("| Dm9 G13 | C∆ |", seed=1))
>>> response.notes[-1].src.value
'closure'

Settings
--------
User defaults are stored as JSON in ``~/.bebop_targeting_settings.json`` or
the path named by ``BEBOP_SETTINGS_FILE``.  Recognised keys are
``tempo_bpm``, ``swing``, ``contour_slider``, ``key`` and ``policy`` (see
:meth:`bebop_targeting.policies.PolicyConfig.from_dict`).
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Mapping, Optional

__version__ = "0.1.0"

env_path = os.environ.get("BEBOP_SETTINGS_FILE")
if env_path:
    DEFAULT_SETTINGS_FILE = Path(env_path).expanduser()
else:
    DEFAULT_SETTINGS_FILE = Path.home() / ".bebop_targeting_settings.json"

from .errors import (  # noqa: E402
    BebopError,
    ContourError,
    EmptyCatalogError,
    InvalidFormulaLengthError,
    InvalidRegisterError,
    MissingTargetDataError,
    ProgressionSyntaxError,
    ProgressionValidationError,
    TheoryDataError,
    UnknownChordError,
    UnknownChordIssue,
)
from .parser import ChordWindow, parse_progression  # noqa: E402
from .theory import FormulaType, TheoryStore, available_chord_qualities, get_chord_profile  # noqa: E402
from .rng import SeededRandom, make_rng  # noqa: E402
from .policies import PolicyConfig, PolicyManager  # noqa: E402
from .contour import ContourGenerator, ContourTarget  # noqa: E402
from .scheduler import (  # noqa: E402
    NoteSource,
    ScheduledNote,
    SchedulerRequest,
    schedule_progression,
    schedule_request,
)
from .api import (  # noqa: E402
    GeneratorOptions,
    generate_from_request,
    generate_midi_stream,
    generate_variants_from_request,
)

logger = logging.getLogger(__name__)


def load_settings(path: Path = DEFAULT_SETTINGS_FILE) -> dict:
    """Load saved user settings from ``path`` if it exists.

    Returns an empty dictionary when the file is missing, unreadable or does
    not hold a JSON object.
    """

    path = Path(path)
    if path.is_file():
        try:
            with open(path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as exc:
            logger.error("Could not load settings: %s", exc)
            return {}
        if isinstance(data, dict):
            return data
        logger.error("Settings file %s does not contain a JSON object", path)
    return {}


def save_settings(settings: dict, path: Path = DEFAULT_SETTINGS_FILE) -> None:
    """Save user ``settings`` to ``path`` as JSON.

    Failures are logged and otherwise ignored so a read-only home directory
    never prevents generation.
    """

    try:
        with open(path, "w", encoding="utf-8") as fh:
            json.dump(settings, fh, indent=2, ensure_ascii=False)
    except OSError as exc:
        logger.error("Could not save settings: %s", exc)


def options_from_settings(settings: Optional[Mapping[str, Any]]) -> GeneratorOptions:
    """Build :class:`GeneratorOptions` from a settings mapping.

    Raises
    ------
    ValueError
        If the ``policy`` entry is malformed.
    """

    settings = settings or {}
    options = GeneratorOptions()
    tempo = settings.get("tempo_bpm")
    if isinstance(tempo, (int, float)) and not isinstance(tempo, bool) and tempo > 0:
        options.default_tempo_bpm = tempo
    if settings.get("policy"):
        options.policy = PolicyConfig.from_dict(settings["policy"])
    return options


def main():
    from .cli import main as _main
    _main()


__all__ = [
    "__version__",
    "DEFAULT_SETTINGS_FILE",
    "load_settings",
    "save_settings",
    "options_from_settings",
    "main",
    "BebopError",
    "ContourError",
    "EmptyCatalogError",
    "InvalidFormulaLengthError",
    "InvalidRegisterError",
    "MissingTargetDataError",
    "ProgressionSyntaxError",
    "ProgressionValidationError",
    "TheoryDataError",
    "UnknownChordError",
    "UnknownChordIssue",
    "ChordWindow",
    "parse_progression",
    "FormulaType",
    "TheoryStore",
    "available_chord_qualities",
    "get_chord_profile",
    "SeededRandom",
    "make_rng",
    "PolicyConfig",
    "PolicyManager",
    "ContourGenerator",
    "ContourTarget",
    "NoteSource",
    "ScheduledNote",
    "SchedulerRequest",
    "schedule_progression",
    "schedule_request",
    "GeneratorOptions",
    "generate_from_request",
    "generate_midi_stream",
    "generate_variants_from_request",
]


if __name__ == "__main__":
    main()
