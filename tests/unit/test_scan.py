"""
Tests for the batch evaluator.

Checks:
1. Scan range validation and the inclusive-endpoint sample count
2. Ordering: byte-identical output for every chunk size and worker count
3. Sink protocol: ordered blocks, finalize exactly once, failures propagate
4. Overflow scenarios on the table path and divergence on the lazy path
"""

import io
import math

import numpy as np
import pytest

from weierstrass_scan.config import Config
from weierstrass_scan.errors import DiagnosticKind, InvalidRangeError, SinkError
from weierstrass_scan.scan import ScanRange, SeriesParameters, evaluate_range, split_bounds
from weierstrass_scan.sink import TextRecordSink, parse_record


def scan_text(scan, params, **kwargs) -> str:
    buffer = io.StringIO()
    kwargs.setdefault("processes", 0)
    evaluate_range(scan, params, TextRecordSink(buffer), **kwargs)
    return buffer.getvalue()


class RecordingSink:
    """Keeps every block and counts finalize calls."""

    def __init__(self):
        self.blocks = []
        self.finalize_calls = 0

    def write_block(self, xs, ys):
        self.blocks.append((np.array(xs), np.array(ys)))

    def finalize(self):
        self.finalize_calls += 1


class FailingSink(RecordingSink):
    """Fails on the n-th write, like a full disk."""

    def __init__(self, fail_on: int):
        super().__init__()
        self.fail_on = fail_on
        self.attempts = 0

    def write_block(self, xs, ys):
        self.attempts += 1
        if self.attempts == self.fail_on:
            raise SinkError("No space left on device")
        super().write_block(xs, ys)


# =============================================================================
# SCAN RANGE
# =============================================================================


class TestScanRange:
    """Validation and sample grid of ScanRange."""

    @pytest.mark.parametrize("start,end,increment", [
        (0.0, 1.0, 0.0),
        (0.0, 1.0, -0.1),
        (1.0, 1.0, 0.1),
        (2.0, 1.0, 0.1),
        (float("nan"), 1.0, 0.1),
        (0.0, float("inf"), 0.1),
    ])
    def test_invalid_ranges_rejected(self, start, end, increment) -> None:
        with pytest.raises(InvalidRangeError):
            ScanRange(start, end, increment)

    def test_exact_endpoint_included(self) -> None:
        """0.0 .. 1.0 by 0.5 gives exactly {0.0, 0.5, 1.0}."""
        scan = ScanRange(0.0, 1.0, 0.5)
        assert scan.count_samples() == 3
        assert scan.sample_points(0, 3).tolist() == [0.0, 0.5, 1.0]

    def test_endpoint_reached_up_to_rounding(self) -> None:
        """0.1 is not exact in binary; the last step still lands on 1.0."""
        scan = ScanRange(0.0, 1.0, 0.1)
        assert scan.count_samples() == 11
        assert scan.sample_points(10, 11)[0] == pytest.approx(1.0)

    def test_off_grid_endpoint_is_ceiling(self) -> None:
        scan = ScanRange(0.0, 1.0, 0.3)
        assert scan.count_samples() == 4
        assert scan.sample_points(0, 4)[-1] == pytest.approx(0.9)

    def test_increment_wider_than_range(self) -> None:
        assert ScanRange(0.0, 1.0, 5.0).count_samples() == 1

    @pytest.mark.parametrize("end", [1e9 + 0.6, 2e9 - 0.4])
    def test_large_grid_stays_inside_range(self, end) -> None:
        """With ~1e9 steps a fractional remainder is floored, never rounded up past end."""
        scan = ScanRange(0.0, end, 1.0)
        count = scan.count_samples()
        assert count == math.floor(end) + 1
        assert scan.sample_points(count - 1, count)[0] <= end

    def test_large_grid_endpoint_still_snapped(self) -> None:
        scan = ScanRange(0.0, 1e9, 1.0)
        assert scan.count_samples() == 1_000_000_001
        assert scan.sample_points(1_000_000_000, 1_000_000_001)[0] == 1e9

    def test_too_many_samples_rejected(self) -> None:
        with pytest.raises(InvalidRangeError, match="too many samples"):
            ScanRange(-1e300, 1e300, 1e-300).count_samples()

    def test_max_abs_x(self) -> None:
        assert ScanRange(-3.0, 2.0, 0.5).max_abs_x == 3.0
        assert ScanRange(-1.0, 2.0, 0.5).max_abs_x == 2.0

    def test_invalid_parameters_rejected(self) -> None:
        with pytest.raises(InvalidRangeError):
            SeriesParameters(float("nan"), 2.0, 3)
        with pytest.raises(InvalidRangeError):
            SeriesParameters(0.5, 2.0, -1)


class TestSplitBounds:
    def test_covers_range_in_order(self) -> None:
        assert split_bounds(10, 20, 3) == [(10, 14), (14, 17), (17, 20)]

    def test_more_parts_than_items(self) -> None:
        assert split_bounds(0, 2, 5) == [(0, 1), (1, 2)]


# =============================================================================
# ORDERING
# =============================================================================


class TestOrdering:
    """Records are written in ascending sample index for any chunking."""

    scan = ScanRange(-0.5, 0.5, 0.01)
    params = SeriesParameters(0.5, 3.0, 20)

    def test_records_follow_sample_grid(self) -> None:
        lines = scan_text(self.scan, self.params, chunk_size=7).splitlines()
        xs = [parse_record(line)[0] for line in lines]
        assert len(xs) == 101
        assert xs == self.scan.sample_points(0, 101).tolist()
        assert all(b > a for a, b in zip(xs, xs[1:]))

    def test_chunk_sizes_byte_identical(self) -> None:
        """Chunk sizes 1, 7 and N produce the same file."""
        count = self.scan.count_samples()
        outputs = {size: scan_text(self.scan, self.params, chunk_size=size) for size in (1, 7, count)}
        assert outputs[1] == outputs[7] == outputs[count]

    def test_worker_pool_byte_identical(self) -> None:
        """Parallel evaluation inside each chunk does not change the output."""
        sequential = scan_text(self.scan, self.params, chunk_size=7)
        pooled = scan_text(self.scan, self.params, chunk_size=7, processes=2)
        assert pooled == sequential

    def test_lazy_strategy_byte_identical_across_chunks(self) -> None:
        first = scan_text(self.scan, self.params, chunk_size=1, strategy="lazy")
        second = scan_text(self.scan, self.params, chunk_size=50, strategy="lazy")
        assert first == second


# =============================================================================
# SINK PROTOCOL
# =============================================================================


class TestSinkProtocol:
    """Interaction between the evaluator and its sink."""

    def test_blocks_in_order_and_single_finalize(self) -> None:
        sink = RecordingSink()
        report = evaluate_range(ScanRange(0.0, 1.0, 0.01), SeriesParameters(0.5, 3.0, 5), sink,
                                chunk_size=30, processes=0)
        assert report.samples == 101
        assert report.chunks == 4
        assert [len(xs) for xs, _ in sink.blocks] == [30, 30, 30, 11]
        assert sink.finalize_calls == 1
        xs = np.concatenate([xs for xs, _ in sink.blocks])
        assert np.all(np.diff(xs) > 0)

    def test_sink_failure_aborts_run(self) -> None:
        """The error surfaces at once; no further chunks and no finalize."""
        sink = FailingSink(fail_on=2)
        with pytest.raises(SinkError):
            evaluate_range(ScanRange(0.0, 1.0, 0.01), SeriesParameters(0.5, 3.0, 5), sink,
                           chunk_size=10, processes=0)
        assert sink.attempts == 2
        assert len(sink.blocks) == 1
        assert sink.finalize_calls == 0

    def test_closed_stream_is_sink_error(self) -> None:
        buffer = io.StringIO()
        buffer.close()
        with pytest.raises(SinkError):
            evaluate_range(ScanRange(0.0, 1.0, 0.5), SeriesParameters(0.5, 3.0, 5),
                           TextRecordSink(buffer), processes=0)

    def test_invalid_range_fails_before_any_write(self) -> None:
        sink = RecordingSink()
        with pytest.raises(InvalidRangeError):
            evaluate_range(ScanRange(-1e300, 1e300, 1e-300), SeriesParameters(0.5, 3.0, 5), sink,
                           processes=0)
        assert sink.blocks == []
        assert sink.finalize_calls == 0

    def test_invalid_chunk_size(self) -> None:
        with pytest.raises(ValueError, match="chunk_size"):
            evaluate_range(ScanRange(0.0, 1.0, 0.5), SeriesParameters(0.5, 3.0, 5), RecordingSink(),
                           chunk_size=0, processes=0)

    def test_negative_processes_rejected(self) -> None:
        sink = RecordingSink()
        with pytest.raises(ValueError, match="processes"):
            evaluate_range(ScanRange(0.0, 1.0, 0.5), SeriesParameters(0.5, 3.0, 5), sink, processes=-1)
        assert sink.blocks == []
        assert sink.finalize_calls == 0

    def test_unknown_strategy(self) -> None:
        with pytest.raises(ValueError, match="strategy"):
            evaluate_range(ScanRange(0.0, 1.0, 0.5), SeriesParameters(0.5, 3.0, 5), RecordingSink(),
                           strategy="bogus", processes=0)

    def test_defaults_come_from_config(self) -> None:
        config = Config()
        config.NUM_PROCESSES = 0
        config.CHUNK_SIZE = 4
        sink = RecordingSink()
        report = evaluate_range(ScanRange(0.0, 1.0, 0.1), SeriesParameters(0.5, 3.0, 5), sink, config)
        assert report.chunks == 3
        assert report.strategy == "table"


# =============================================================================
# NUMERIC SCENARIOS
# =============================================================================


class TestNumericScenarios:
    """Overflow truncation on the table path, NaN early exit on the lazy path."""

    def test_overflow_scenario_values_finite(self) -> None:
        """a=1, b=9, n=256 on [0, 1]: no non-finite value reaches the output."""
        sink = RecordingSink()
        report = evaluate_range(ScanRange(0.0, 1.0, 0.001), SeriesParameters(1.0, 9.0, 256), sink,
                                processes=0)
        assert report.effective_terms <= 256
        values = np.concatenate([ys for _, ys in sink.blocks])
        assert len(values) == 1001
        assert np.all(np.isfinite(values))

    def test_truncated_run_reports_and_continues(self) -> None:
        events = []
        sink = RecordingSink()
        report = evaluate_range(ScanRange(0.0, 1.0, 0.01), SeriesParameters(1.0, 9.0, 1000), sink,
                                processes=0, on_diagnostic=events.append)
        assert report.truncated
        assert report.effective_terms < 1000
        assert [e.kind for e in events] == [DiagnosticKind.NUMERIC_TRUNCATION]
        assert np.all(np.isfinite(np.concatenate([ys for _, ys in sink.blocks])))
        assert sink.finalize_calls == 1

    def test_lazy_divergence_reported_per_point(self) -> None:
        """Every point hits the overflowing power; each is still emitted with its partial sum."""
        events = []
        sink = RecordingSink()
        report = evaluate_range(ScanRange(0.0, 1.0, 0.25), SeriesParameters(1.0, 9.0, 400), sink,
                                processes=0, strategy="lazy", on_diagnostic=events.append)
        assert report.samples == 5
        assert report.divergences == 5
        assert len(events) == 5
        assert all(e.kind is DiagnosticKind.NUMERIC_DIVERGENCE for e in events)
        assert [e.x for e in events] == [0.0, 0.25, 0.5, 0.75, 1.0]
        assert np.all(np.isfinite(np.concatenate([ys for _, ys in sink.blocks])))

    def test_single_term_scan(self) -> None:
        """term_count = 0 writes cos(π x) at every sample."""
        sink = RecordingSink()
        evaluate_range(ScanRange(0.0, 2.0, 0.5), SeriesParameters(0.5, 9.0, 0), sink, processes=0)
        xs, ys = sink.blocks[0]
        for x, y in zip(xs, ys):
            assert y == pytest.approx(math.cos(math.pi * x), abs=1e-15)
        assert ys[0] == 1.0
