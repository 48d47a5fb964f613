"""Exception hierarchy shared by the scheduling engine and its collaborators.

Every error raised by the library derives from :class:`BebopError`, which in
turn subclasses :class:`ValueError`.  Callers that already guard generation
with ``except ValueError`` (the CLI and the web API do) therefore keep
working, while code that needs to distinguish the failure can catch the
specific subclass.

None of these errors are retried internally.  A scheduling run either returns
the complete note list or raises one of the classes below.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence

__all__ = [
    "BebopError",
    "UnknownChordError",
    "MissingTargetDataError",
    "EmptyCatalogError",
    "InvalidFormulaLengthError",
    "InvalidRegisterError",
    "ContourError",
    "ProgressionSyntaxError",
    "TheoryDataError",
    "UnknownChordIssue",
    "ProgressionValidationError",
]


class BebopError(ValueError):
    """Base class for all library errors."""


class UnknownChordError(BebopError):
    """Raised when a chord symbol has no theory profile."""

    def __init__(self, symbol: str, quality: str | None = None) -> None:
        self.symbol = symbol
        self.quality = quality
        if quality is None:
            message = f'Unrecognised chord quality in "{symbol}"'
        else:
            message = f'No chord profile for "{symbol}" (quality "{quality}")'
        super().__init__(message)


class MissingTargetDataError(BebopError):
    """Raised when a profile lacks a degree or names an unsupported formula type."""


class EmptyCatalogError(BebopError):
    """Raised when a formula type resolves to zero candidates."""


class InvalidFormulaLengthError(BebopError):
    """Raised when rhythm placement is requested for an empty formula."""


class InvalidRegisterError(BebopError):
    """Raised for a degenerate register where the lower bound exceeds the upper."""


class ContourError(BebopError):
    """Raised when no harmonic degree of a chord fits the active register."""


class ProgressionSyntaxError(BebopError):
    """Raised by the progression parser for malformed bars."""


class TheoryDataError(BebopError):
    """Raised when a theory document fails validation at load time."""


@dataclass(frozen=True)
class UnknownChordIssue:
    """One unrecognised chord found while validating a progression."""

    chord_symbol: str
    index: int
    message: str

    def to_dict(self) -> dict:
        return {"chordSymbol": self.chord_symbol, "index": self.index, "message": self.message}


class ProgressionValidationError(BebopError):
    """Aggregate error listing every unknown chord of a progression."""

    def __init__(self, issues: Sequence[UnknownChordIssue]) -> None:
        self.issues: List[UnknownChordIssue] = list(issues)
        labels = ", ".join(f'"{issue.chord_symbol}"' for issue in self.issues)
        detail = f": {labels}" if labels else ""
        super().__init__(f"Unknown chords found{detail}")
