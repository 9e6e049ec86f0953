# =============================================================================
#
#   Verification and benchmark suite for the series scanner.
#
#   [TEST A] engine vs. naive double summation vs. mpmath reference
#   [TEST B] byte-identical output for different chunk sizes and worker counts
#   [TEST C] finiteness of emitted values and monotonic truncation threshold
#
#   The mpmath evaluation is a reference only; the engine itself always
#   works in double precision.
#
# =============================================================================

import io
import math
import time

import mpmath
import numpy as np

from .config import Config
from .power_table import build_power_table
from .scan import ScanRange, SeriesParameters, evaluate_range
from .series import evaluate
from .sink import TextRecordSink, parse_record

# =============================================================================
# REFERENCE IMPLEMENTATIONS
# =============================================================================

def reference_value(x: float, a: float, b: float, term_count: int) -> float:
    """
    Naive double-precision reference: every power is taken directly,
        Σ_{i=0}^{n} a^i · cos(b^i · π · x),
    independent of the power tables used by the engine.
    """
    total = 0.0
    with np.errstate(over="ignore", invalid="ignore"):
        for i in range(term_count + 1):
            total += float(np.float64(a) ** i * np.cos(np.float64(b) ** i * np.pi * x))
    return total


def reference_value_mp(x: float, a: float, b: float, term_count: int,
                       precision: int = Config.MPMATH_PRECISION) -> float:
    """
    High-precision reference with mpmath. The double inputs are taken as exact
    and every intermediate carries `precision` decimal digits.
    """
    mpmath.mp.dps = precision
    x_mp, a_mp, b_mp = mpmath.mpf(x), mpmath.mpf(a), mpmath.mpf(b)
    total = mpmath.mpf(0)
    for i in range(term_count + 1):
        total += a_mp ** i * mpmath.cos(b_mp ** i * mpmath.pi * x_mp)
    return float(total)


def conditioned_terms(b: float, max_abs_x: float, term_count: int, limit: float) -> int:
    """
    Largest i <= term_count with |b|^i · π · max_abs_x <= limit (at least 0).
    Beyond it a double-precision cosine argument carries too few correct
    digits for a meaningful comparison against the high-precision reference.
    """
    argument = math.pi * max_abs_x
    i = 0
    while i < term_count:
        argument *= abs(b)
        if argument > limit:
            break
        i += 1
    return i


def _scan_to_text(scan, params, **kwargs) -> str:
    buffer = io.StringIO()
    evaluate_range(scan, params, TextRecordSink(buffer), **kwargs)
    return buffer.getvalue()


# =============================================================================
# VERIFICATION SUITE
# =============================================================================

class Verifier:
    """Runs the consistency checks of the engine for one parameter set."""

    def __init__(self, config: Config):
        self.config = config

    def run_all_tests(self, params: SeriesParameters, scan: ScanRange) -> bool:
        print("\n--- Starting Verification Suite ---")
        results = [
            self.run_reference_consistency(params, scan),
            self.run_chunk_order_invariance(params, scan),
            self.run_finiteness_and_truncation(params, scan),
        ]
        print("\n--- Verification Suite Finished ---\n")
        return all(results)

    def _probe_points(self, scan: ScanRange) -> np.ndarray:
        count = scan.count_samples(self.config.SAMPLE_SNAP_RTOL)
        samples = min(count, int(self.config.REFERENCE_SAMPLES))
        indices = np.unique(np.linspace(0, count - 1, samples).round().astype(np.int64))
        return np.array([scan.sample_points(int(k), int(k) + 1)[0] for k in indices])

    def _ordering_scan(self, scan: ScanRange) -> ScanRange:
        count = scan.count_samples(self.config.SAMPLE_SNAP_RTOL)
        limit = int(self.config.ORDERING_MAX_SAMPLES)
        if count <= limit:
            return scan
        last = float(scan.sample_points(limit - 1, limit)[0])
        return ScanRange(scan.start, last, scan.increment)

    def run_reference_consistency(self, params: SeriesParameters, scan: ScanRange) -> bool:
        """[TEST A] Engine vs naive double summation vs mpmath on the well-conditioned prefix."""
        print("\n[TEST A] Verifying engine against naive and high-precision references ...")
        table, effective = build_power_table(params.a, params.b, params.term_count, scan.max_abs_x)
        terms = min(effective, conditioned_terms(params.b, scan.max_abs_x, params.term_count,
                                                 self.config.REFERENCE_ARGUMENT_LIMIT))
        coefficient_mass = sum(abs(params.a) ** i for i in range(terms + 1))
        tol = self.config.REFERENCE_ABS_TOL * max(1.0, coefficient_mass)
        print(f"  INFO: Comparing the first {terms + 1} of {params.term_count + 1} terms "
              f"(arguments <= {self.config.REFERENCE_ARGUMENT_LIMIT:g}), tolerance {tol:.3e}.")

        worst_naive = (0.0, None)
        worst_mp = (0.0, None)
        failures = []
        start_time = time.time()
        for x in self._probe_points(scan):
            x = float(x)
            value = evaluate(x, table, terms)
            naive = reference_value(x, params.a, params.b, terms)
            high = reference_value_mp(x, params.a, params.b, terms, self.config.MPMATH_PRECISION)
            err_naive = abs(value - naive)
            err_mp = abs(value - high)
            if err_naive > worst_naive[0]:
                worst_naive = (err_naive, x)
            if err_mp > worst_mp[0]:
                worst_mp = (err_mp, x)
            if err_naive > tol or err_mp > tol:
                failures.append((x, value, naive, high))
        elapsed = time.time() - start_time
        print(f"  INFO: Reference comparison took {elapsed:.2f} seconds.")

        if worst_naive[1] is not None:
            print(f"  INFO: Largest deviation from naive summation: {worst_naive[0]:.3e} at x={worst_naive[1]!r}")
        if worst_mp[1] is not None:
            print(f"  INFO: Largest deviation from mpmath reference: {worst_mp[0]:.3e} at x={worst_mp[1]!r}")

        if not failures:
            print("   -> VERDICT: [PASS] Engine matches both references within tolerance.")
            return True
        print(f"   -> VERDICT: [FAIL] {len(failures)} points deviate beyond tolerance:")
        for x, value, naive, high in failures[:5]:
            print(f"        - At x={x!r}: engine={value!r}, naive={naive!r}, mpmath={high!r}")
        if len(failures) > 5:
            print(f"        ... and {len(failures) - 5} more.")
        return False

    def run_chunk_order_invariance(self, params: SeriesParameters, scan: ScanRange) -> bool:
        """[TEST B] Output must not depend on chunk size or worker count."""
        print("\n[TEST B] Verifying chunk-order invariance of the written records ...")
        sub_scan = self._ordering_scan(scan)
        count = sub_scan.count_samples(self.config.SAMPLE_SNAP_RTOL)
        chunk_sizes = tuple(self.config.ORDERING_CHUNK_SIZES) + (count,)
        print(f"  INFO: {count} samples, chunk sizes {chunk_sizes}.")

        baseline = _scan_to_text(sub_scan, params, config=self.config, chunk_size=count, processes=0)
        mismatches = []
        for chunk_size in chunk_sizes:
            text = _scan_to_text(sub_scan, params, config=self.config, chunk_size=chunk_size, processes=0)
            if text != baseline:
                mismatches.append(f"chunk_size={chunk_size}, sequential")
        if int(self.config.NUM_PROCESSES) > 0:
            pooled_chunk = chunk_sizes[min(1, len(chunk_sizes) - 1)]
            text = _scan_to_text(sub_scan, params, config=self.config, chunk_size=pooled_chunk,
                                 processes=self.config.NUM_PROCESSES)
            if text != baseline:
                mismatches.append(f"chunk_size={pooled_chunk}, processes={self.config.NUM_PROCESSES}")

        lines = baseline.splitlines()
        xs = [parse_record(line)[0] for line in lines]
        expected = sub_scan.sample_points(0, count).tolist()
        if xs != expected:
            mismatches.append("x values differ from start + i * increment")

        if not mismatches:
            print(f"   -> VERDICT: [PASS] {len(lines)} records identical across all chunkings.")
            return True
        print(f"   -> VERDICT: [FAIL] {len(mismatches)} configurations disagree:")
        for msg in mismatches:
            print(f"        - {msg}")
        return False

    def run_finiteness_and_truncation(self, params: SeriesParameters, scan: ScanRange) -> bool:
        """[TEST C] No non-finite value leaks from the table path; truncation is monotonic in |x|."""
        print("\n[TEST C] Verifying finiteness and truncation monotonicity ...")
        reasons = []

        sub_scan = self._ordering_scan(scan)
        text = _scan_to_text(sub_scan, params, config=self.config, processes=0, strategy="table")
        values = np.array([parse_record(line)[1] for line in text.splitlines()])
        non_finite = int(np.count_nonzero(~np.isfinite(values)))
        if non_finite:
            reasons.append(f"{non_finite} non-finite values emitted")

        previous = -1
        max_abs_x = scan.max_abs_x
        for _ in range(16):
            _, effective = build_power_table(params.a, params.b, params.term_count, max_abs_x)
            if effective < previous:
                reasons.append(f"effective term count dropped to {effective} at max_abs_x={max_abs_x!r}")
            previous = effective
            max_abs_x /= 2.0
        print(f"  INFO: Effective term count at max_abs_x={scan.max_abs_x!r}: "
              f"{build_power_table(params.a, params.b, params.term_count, scan.max_abs_x)[1]}.")

        if not reasons:
            print("   -> VERDICT: [PASS] All values finite; truncation threshold monotonic.")
            return True
        print("   -> VERDICT: [FAIL] " + "; ".join(reasons))
        return False


# =============================================================================
# BENCHMARKS
# =============================================================================

def run_benchmarks(config: Config) -> dict:
    """Times a single evaluation and the configured scans; returns seconds per run."""
    print("\n--- Starting Benchmarks ---")
    timings = {}

    x, a, b, n = config.BENCH_POINT
    table, _ = build_power_table(a, b, n, abs(x))
    evaluate(x, table)  # first call triggers numba compilation
    repeats = int(config.BENCH_POINT_REPEATS)
    start_time = time.time()
    for _ in range(repeats):
        evaluate(x, table)
    per_call = (time.time() - start_time) / repeats
    timings[f"n={n}"] = per_call
    print(f"  INFO: n={n}: {per_call * 1e6:.3f} µs per evaluation ({repeats} runs).")

    for start, end, increment, a, b, n in config.BENCH_SCANS:
        scan = ScanRange(start, end, increment)
        params = SeriesParameters(a, b, n)
        count = scan.count_samples(config.SAMPLE_SNAP_RTOL)
        runs = []
        for _ in range(int(config.BENCH_SCAN_REPEATS)):
            buffer = io.StringIO()
            start_time = time.time()
            evaluate_range(scan, params, TextRecordSink(buffer), config)
            runs.append(time.time() - start_time)
        best = min(runs)
        timings[f"n={n}, {count} computations"] = best
        print(f"  INFO: n={n}, {count} computations: best of {len(runs)} = {best:.3f} seconds.")

    print("--- Benchmarks Finished ---\n")
    return timings
