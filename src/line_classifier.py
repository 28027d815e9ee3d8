"""Decide whether a line from the Arduino is loggable data or diagnostic noise."""
from __future__ import annotations

import enum
from dataclasses import dataclass

_DIGITS = "0123456789"


class LineKind(enum.Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"


@dataclass(frozen=True)
class Classification:
    kind: LineKind
    text: str

    @property
    def accepted(self) -> bool:
        return self.kind is LineKind.ACCEPTED


def classify(line: str) -> Classification:
    """Accept a line iff its first non-blank character is an ASCII digit.

    Accepted lines carry the trimmed text; rejected ones keep the original
    text for diagnostics.
    """
    trimmed = line.strip()
    if trimmed and trimmed[0] in _DIGITS:
        return Classification(LineKind.ACCEPTED, trimmed)
    return Classification(LineKind.REJECTED, line)
