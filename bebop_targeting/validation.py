"""Up-front validation of chord symbols in a progression.

Scheduling stops at the first chord it cannot resolve.  The helpers here check
every window before that happens so the CLI and the web API can report all
unknown chords at once.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Union

from .errors import ProgressionValidationError, UnknownChordIssue
from .parser import ChordWindow, parse_progression
from .theory import TheoryStore, default_store

__all__ = ["ValidationSummary", "detect_unknown_chords", "assert_known_chords"]


@dataclass
class ValidationSummary:
    windows: List[ChordWindow]
    issues: List[UnknownChordIssue] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.issues


def detect_unknown_chords(
    progression: Union[str, Sequence[ChordWindow]],
    store: Optional[TheoryStore] = None,
) -> ValidationSummary:
    """Return the parsed windows with one issue per unrecognised chord.

    Issues keep the order of the windows and carry the index of the window
    they refer to.
    """

    windows = parse_progression(progression) if isinstance(progression, str) else list(progression)
    store = store or default_store()
    issues: List[UnknownChordIssue] = []
    for index, window in enumerate(windows):
        if store.lookup_chord_profile(window.chord_symbol) is None:
            issues.append(
                UnknownChordIssue(
                    chord_symbol=window.chord_symbol,
                    index=index,
                    message=f'Unrecognised chord quality in "{window.chord_symbol}"',
                )
            )
    return ValidationSummary(windows=windows, issues=issues)


def assert_known_chords(
    progression: Union[str, Sequence[ChordWindow]],
    store: Optional[TheoryStore] = None,
) -> List[ChordWindow]:
    """Return the windows of ``progression`` when every chord is known.

    Raises
    ------
    ProgressionValidationError
        Listing every unknown chord symbol.
    """

    summary = detect_unknown_chords(progression, store)
    if summary.issues:
        raise ProgressionValidationError(summary.issues)
    return summary.windows
