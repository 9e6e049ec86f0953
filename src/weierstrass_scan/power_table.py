"""
Coefficient power tables for the series f(x) = Σ a^i cos(b^i π x).

The tables are built once per run and lent read-only to every worker:
    a_pow[i]    = a^i
    b_scaled[i] = b^i · π
Construction stops at the first index where max_abs_x · b_scaled[i] overflows,
so every term the evaluator reads has a finite cosine argument.
"""

import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .errors import (
    Diagnostic,
    DiagnosticCallback,
    DiagnosticKind,
    InvalidRangeError,
    emit,
)


@dataclass(frozen=True, eq=False)
class PowerTable:
    a_pow: np.ndarray
    b_scaled: np.ndarray
    requested_terms: int
    effective_terms: int
    max_abs_x: float

    @property
    def truncated(self) -> bool:
        return self.effective_terms < self.requested_terms


def _check_finite(value: float, name: str) -> float:
    value = float(value)
    if not math.isfinite(value):
        raise InvalidRangeError(f"{name} must be a finite float (not NaN/Inf), got {value}")
    return value


def build_power_table(a: float, b: float, term_count: int, max_abs_x: float,
                      on_diagnostic: Optional[DiagnosticCallback] = None) -> tuple[PowerTable, int]:
    """
    Build the aligned power tables for `term_count + 1` terms.

    For i = 1..term_count the entries are extended by one multiplication each.
    As soon as max_abs_x * b_scaled[i] is not finite the loop stops: the
    effective term count becomes i - 1 and entries from i on stay NaN.
    Truncation is reported as a NUMERIC_TRUNCATION diagnostic, never raised.

    Returns (table, effective_term_count).
    """
    a = _check_finite(a, "a")
    b = _check_finite(b, "b")
    max_abs_x = _check_finite(max_abs_x, "max_abs_x")
    if max_abs_x < 0:
        raise InvalidRangeError(f"max_abs_x must be non-negative, got {max_abs_x}")
    if isinstance(term_count, bool) or int(term_count) != term_count or term_count < 0:
        raise InvalidRangeError(f"term_count must be a non-negative integer, got {term_count}")
    term_count = int(term_count)
    if math.isinf(max_abs_x * math.pi):
        raise InvalidRangeError(f"max_abs_x * pi overflows even for the first term, got max_abs_x={max_abs_x}")

    a_pow = np.full(term_count + 1, np.nan, dtype=np.float64)
    b_scaled = np.full(term_count + 1, np.nan, dtype=np.float64)

    a_i = 1.0
    b_i = math.pi
    a_pow[0] = a_i
    b_scaled[0] = b_i
    effective = term_count

    for i in range(1, term_count + 1):
        a_i *= a
        b_i *= b
        if not math.isfinite(max_abs_x * b_i):
            effective = i - 1
            break
        a_pow[i] = a_i
        b_scaled[i] = b_i

    a_pow.flags.writeable = False
    b_scaled.flags.writeable = False
    table = PowerTable(a_pow, b_scaled, term_count, effective, max_abs_x)

    if table.truncated:
        emit(on_diagnostic, Diagnostic(
            kind=DiagnosticKind.NUMERIC_TRUNCATION,
            message=(f"b^{effective + 1}·π·{max_abs_x!r} overflows; summing {effective + 1} "
                     f"of {term_count + 1} terms"),
            term_index=effective + 1,
            requested_terms=term_count,
            effective_terms=effective,
        ))

    return table, effective
