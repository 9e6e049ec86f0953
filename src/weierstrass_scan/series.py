# =============================================================================
#
#   Series kernels for the truncated Weierstrass-type series
#
#       f(x) = Σ_{i=0}^{n} a^i · cos(b^i · π · x)
#
#   Two evaluation strategies are provided:
#   - table: sums a precomputed, overflow-truncated power table (default);
#   - lazy : recomputes a^i and b^i per term and stops at the first NaN term.
#
#   Kernels are compiled with numba without fastmath, so results are plain
#   IEEE-754 double precision and identical for every chunking of a scan.
#
# =============================================================================

import math
from typing import Optional

import numpy as np
from numba import jit

from .power_table import PowerTable

NO_DIVERGENCE = -1


# =============================================================================
# CORE KERNELS
# =============================================================================

@jit(nopython=True)
def series_value(x: float, a_pow, b_scaled, effective_terms: int) -> float:
    """
    Sum the table prefix [0, effective_terms] in index order:
        Σ a_pow[i] · cos(b_scaled[i] · x)
    """
    total = 0.0
    for i in range(effective_terms + 1):
        total += a_pow[i] * math.cos(b_scaled[i] * x)
    return total


@jit(nopython=True)
def series_value_lazy(x: float, a: float, b: float, term_count: int):
    """
    Per-point evaluation without a shared table. Each term a^i · cos(b^i · x · π)
    is computed from scratch; once b^i overflows the cosine argument is no
    longer finite and the term turns NaN. Summation stops there and the
    partial sum is returned together with the index of the offending term
    (NO_DIVERGENCE if every term was usable).
    """
    total = 0.0
    for i in range(term_count + 1):
        term = a ** i * math.cos(b ** i * x * math.pi)
        if math.isnan(term):
            return total, i
        total += term
    return total, NO_DIVERGENCE


@jit(nopython=True)
def series_block(xs, a_pow, b_scaled, effective_terms: int):
    values = np.empty(xs.shape[0], dtype=np.float64)
    for k in range(xs.shape[0]):
        values[k] = series_value(xs[k], a_pow, b_scaled, effective_terms)
    return values


@jit(nopython=True)
def series_block_lazy(xs, a: float, b: float, term_count: int):
    values = np.empty(xs.shape[0], dtype=np.float64)
    stops = np.empty(xs.shape[0], dtype=np.int64)
    for k in range(xs.shape[0]):
        value, stop = series_value_lazy(xs[k], a, b, term_count)
        values[k] = value
        stops[k] = stop
    return values, stops


# =============================================================================
# PYTHON ENTRY POINTS
# =============================================================================

def evaluate(x: float, table: PowerTable, effective_terms: Optional[int] = None) -> float:
    """Evaluate f(x) from a power table, using at most its effective term count."""
    if effective_terms is None:
        effective_terms = table.effective_terms
    if effective_terms < 0 or effective_terms > table.effective_terms:
        raise ValueError(
            f"effective_terms must lie in [0, {table.effective_terms}], got {effective_terms}"
        )
    return series_value(float(x), table.a_pow, table.b_scaled, int(effective_terms))


def evaluate_lazy(x: float, a: float, b: float, term_count: int) -> tuple[float, int]:
    """Evaluate f(x) term by term; returns (value, stop_index)."""
    if term_count < 0:
        raise ValueError(f"term_count must be non-negative, got {term_count}")
    value, stop = series_value_lazy(float(x), float(a), float(b), int(term_count))
    return float(value), int(stop)
