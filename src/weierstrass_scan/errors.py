"""
Error types and structured diagnostics.

Fatal conditions are exceptions:
- InvalidRangeError: rejected scan range or series parameters (raised before any work)
- SinkError: the record sink cannot accept further writes
- ResultFormatError: a result file line does not read as `f(<x>) = <value>`

Recoverable numeric conditions are not raised. They are delivered as
Diagnostic events to a caller-supplied callback, and the computation continues.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional


class InvalidRangeError(ValueError):
    """Scan range or series parameters that cannot produce a meaningful run."""


class SinkError(OSError):
    """The record sink failed to accept a write or a flush."""


class ResultFormatError(ValueError):
    """A result file does not follow the `f(<x>) = <value>` line format."""


class DiagnosticKind(Enum):
    NUMERIC_TRUNCATION = "numeric_truncation"
    NUMERIC_DIVERGENCE = "numeric_divergence"


@dataclass(frozen=True)
class Diagnostic:
    kind: DiagnosticKind
    message: str
    x: Optional[float] = None
    term_index: Optional[int] = None
    requested_terms: Optional[int] = None
    effective_terms: Optional[int] = None


DiagnosticCallback = Callable[[Diagnostic], None]


def emit(callback: Optional[DiagnosticCallback], diagnostic: Diagnostic) -> None:
    if callback is not None:
        callback(diagnostic)
