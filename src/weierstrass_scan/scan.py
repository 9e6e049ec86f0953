# =============================================================================
#
#   Batch evaluation of the series over a dense, ordered scan of x values.
#
#   The sample indices [0, N) are cut into contiguous chunks. Each chunk is
#   split into one sub-block per worker, dispatched to a fixed process pool
#   and joined; the joined results are written to the sink in index order
#   before the next chunk is dispatched. Workers receive the read-only power
#   tables once, through the pool initializer, and never touch the sink.
#
# =============================================================================

import math
import time
from contextlib import nullcontext
from dataclasses import dataclass
from multiprocessing import Pool
from typing import Optional

import numpy as np
from tqdm import tqdm

from .config import Config
from .errors import (
    Diagnostic,
    DiagnosticCallback,
    DiagnosticKind,
    InvalidRangeError,
    emit,
)
from .power_table import build_power_table
from .series import NO_DIVERGENCE, series_block, series_block_lazy
from .sink import RecordSink

STRATEGIES = ("table", "lazy")

# x_i = start + i * increment is exact in the index only up to 2**53
MAX_SAMPLES = 2 ** 53

# Largest step-count offset ever snapped; keeps the last sample inside [start, end]
MAX_SNAP_OFFSET = 1e-3


@dataclass(frozen=True)
class SeriesParameters:
    a: float
    b: float
    term_count: int

    def __post_init__(self):
        for name in ("a", "b"):
            value = getattr(self, name)
            if not math.isfinite(value):
                raise InvalidRangeError(f"{name} must be a finite float (not NaN/Inf), got {value}")
        if isinstance(self.term_count, bool) or int(self.term_count) != self.term_count \
           or self.term_count < 0:
            raise InvalidRangeError(f"term_count must be a non-negative integer, got {self.term_count}")


@dataclass(frozen=True)
class ScanRange:
    start: float
    end: float
    increment: float

    def __post_init__(self):
        for name in ("start", "end", "increment"):
            value = getattr(self, name)
            if not math.isfinite(value):
                raise InvalidRangeError(f"{name} must be a finite float (not NaN/Inf), got {value}")
        if self.increment <= 0:
            raise InvalidRangeError(f"Increment must be a positive number, got {self.increment}")
        if self.start >= self.end:
            raise InvalidRangeError(f"Start must be less than end, got start={self.start}, end={self.end}")

    @property
    def max_abs_x(self) -> float:
        return max(abs(self.start), abs(self.end))

    def count_samples(self, snap_rtol: float = Config.SAMPLE_SNAP_RTOL) -> int:
        """
        Number of grid points x_i = start + i * increment with x_i <= end.

        The quotient (end - start) / increment is snapped to the nearest
        integer when it lies within snap_rtol of it (relative, and never more
        than MAX_SNAP_OFFSET steps), so that a grid whose last step lands on
        `end` (up to rounding) includes the endpoint:
        0.0 .. 1.0 by 0.5 gives the 3 samples {0.0, 0.5, 1.0}.
        """
        steps = (self.end - self.start) / self.increment
        if not math.isfinite(steps) or steps >= MAX_SAMPLES:
            raise InvalidRangeError(
                f"Range [{self.start}, {self.end}] by {self.increment} yields too many samples ({steps})"
            )
        nearest = round(steps)
        if abs(steps - nearest) <= min(snap_rtol * max(1.0, nearest), MAX_SNAP_OFFSET):
            steps = nearest
        count = int(math.floor(steps)) + 1
        if count < 1:
            raise InvalidRangeError(f"Range [{self.start}, {self.end}] by {self.increment} yields no samples")
        return count

    def sample_points(self, lo: int, hi: int) -> np.ndarray:
        return self.start + np.arange(lo, hi, dtype=np.float64) * self.increment


@dataclass(frozen=True)
class ScanReport:
    samples: int
    chunks: int
    strategy: str
    requested_terms: int
    effective_terms: int
    divergences: int
    elapsed: float

    @property
    def truncated(self) -> bool:
        return self.effective_terms < self.requested_terms


@dataclass(frozen=True, eq=False)
class ScanContext:
    """Everything a worker needs to evaluate any sub-block of the scan."""
    scan: ScanRange
    params: SeriesParameters
    strategy: str
    a_pow: Optional[np.ndarray] = None
    b_scaled: Optional[np.ndarray] = None
    effective_terms: int = 0


def evaluate_block(context: ScanContext, lo: int, hi: int):
    """
    Evaluate samples [lo, hi). Returns (xs, values, stops); `stops` is None on
    the table path and holds the per-point NaN stop index on the lazy path.
    """
    xs = context.scan.sample_points(lo, hi)
    if context.strategy == "table":
        values = series_block(xs, context.a_pow, context.b_scaled, context.effective_terms)
        return xs, values, None
    params = context.params
    values, stops = series_block_lazy(xs, float(params.a), float(params.b), int(params.term_count))
    return xs, values, stops


# --- Worker-side state (one copy per pool process) ---
_WORKER_CONTEXT = None


def _init_worker(context: ScanContext):
    global _WORKER_CONTEXT
    _WORKER_CONTEXT = context


def _block_worker(bounds):
    lo, hi = bounds
    return evaluate_block(_WORKER_CONTEXT, lo, hi)


def split_bounds(lo: int, hi: int, parts: int) -> list[tuple[int, int]]:
    """Split [lo, hi) into at most `parts` contiguous, non-empty, ordered blocks."""
    size, extra = divmod(hi - lo, max(1, parts))
    bounds = []
    cursor = lo
    for p in range(max(1, parts)):
        step = size + (1 if p < extra else 0)
        if step:
            bounds.append((cursor, cursor + step))
        cursor += step
    return bounds


def _evaluate_chunk(context, lo, hi, pool, processes):
    if pool is None:
        return evaluate_block(context, lo, hi)
    # Blocking map: the chunk is complete (and ordered) when it returns
    parts = pool.map(_block_worker, split_bounds(lo, hi, processes))
    xs = np.concatenate([part[0] for part in parts])
    values = np.concatenate([part[1] for part in parts])
    stops = None if parts[0][2] is None else np.concatenate([part[2] for part in parts])
    return xs, values, stops


def _report_divergences(xs, stops, on_diagnostic) -> int:
    if stops is None:
        return 0
    diverged = np.nonzero(stops != NO_DIVERGENCE)[0]
    for k in diverged:
        x, term_index = float(xs[k]), int(stops[k])
        emit(on_diagnostic, Diagnostic(
            kind=DiagnosticKind.NUMERIC_DIVERGENCE,
            message=f"Computation resulted in NaN for x = {x!r}, n = {term_index}; returned the partial sum",
            x=x,
            term_index=term_index,
        ))
    return len(diverged)


def evaluate_range(scan: ScanRange, params: SeriesParameters, sink: RecordSink,
                   config: Optional[Config] = None, *,
                   chunk_size: Optional[int] = None,
                   processes: Optional[int] = None,
                   strategy: Optional[str] = None,
                   on_diagnostic: Optional[DiagnosticCallback] = None,
                   progress: bool = False) -> ScanReport:
    """
    Evaluate f(x) at every sample of `scan` and stream the records to `sink`.

    - The range is validated and the sample count fixed before any work.
    - On the table path the power table is built once with
      max_abs_x = max(|start|, |end|); truncation is reported via on_diagnostic.
    - Chunks are written in ascending index order; any chunk size >= 1 and any
      worker count produce identical records.
    - A sink failure propagates at once and the sink is not finalized;
      on success sink.finalize() is called exactly once.
    """
    config = config if config is not None else Config()
    chunk_size = int(chunk_size if chunk_size is not None else config.CHUNK_SIZE)
    processes = int(processes if processes is not None else config.NUM_PROCESSES)
    strategy = strategy if strategy is not None else config.STRATEGY
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
    if processes < 0:
        raise ValueError(f"processes must be >= 0, got {processes}")
    if strategy not in STRATEGIES:
        raise ValueError(f"strategy must be one of {STRATEGIES}, got {strategy!r}")

    count = scan.count_samples(config.SAMPLE_SNAP_RTOL)

    if strategy == "table":
        table, effective = build_power_table(params.a, params.b, params.term_count,
                                             scan.max_abs_x, on_diagnostic=on_diagnostic)
        context = ScanContext(scan, params, strategy, table.a_pow, table.b_scaled, effective)
    else:
        effective = int(params.term_count)
        context = ScanContext(scan, params, strategy, effective_terms=effective)

    # Fewer workers than samples per chunk would leave processes idle
    processes = max(0, min(processes, chunk_size, count))
    pool_cm = (Pool(processes=processes, initializer=_init_worker, initargs=(context,))
               if processes > 0 else nullcontext(None))

    divergences = 0
    chunks = 0
    start_time = time.time()
    with tqdm(total=count, desc="   Series scan", unit=" x", ncols=100, disable=not progress) as progress_bar:
        with pool_cm as pool:
            for lo in range(0, count, chunk_size):
                hi = min(lo + chunk_size, count)
                xs, values, stops = _evaluate_chunk(context, lo, hi, pool, processes)
                sink.write_block(xs, values)
                divergences += _report_divergences(xs, stops, on_diagnostic)
                chunks += 1
                progress_bar.update(hi - lo)

    sink.finalize()
    elapsed = time.time() - start_time

    return ScanReport(
        samples=count,
        chunks=chunks,
        strategy=strategy,
        requested_terms=int(params.term_count),
        effective_terms=effective,
        divergences=divergences,
        elapsed=elapsed,
    )
