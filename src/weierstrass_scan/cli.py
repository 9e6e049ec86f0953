#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# =============================================================================
#
#   Command line front-end for the Weierstrass series scanner.
#
#   Usage examples:
#   $ weierstrass-scan scan -n 256 -s 0 -e 1 -a 0.5 -b 9 -i 0.0001
#   $ weierstrass-scan scan -n 30 -s -2 -e 2 -a 0.7 -b 3 -i 1e-5 --strategy lazy --no-plot
#   $ weierstrass-scan plot results/results_start_0_end_1_a_0.5_b_9_n_256.txt
#   $ weierstrass-scan verify -n 12 -s 0 -e 1 -a 0.5 -b 9
#   $ weierstrass-scan bench --processes 4
#
#   Outputs:
#   - Result file : <output_dir>/results_start_<s>_end_<e>_a_<a>_b_<b>_n_<n>.txt
#   - Plots       : same stem with .png, _slope.png and _histogram.png
#
# =============================================================================

import argparse
import math
import os
import sys

from tqdm import tqdm

from .config import Config
from .errors import DiagnosticKind, InvalidRangeError, ResultFormatError
from .plotting import Plotter
from .scan import STRATEGIES, ScanRange, SeriesParameters, evaluate_range
from .sink import TextRecordSink
from .verification import Verifier, run_benchmarks


def _name_float(value: float) -> str:
    """Compact float text for file names: 1.0 -> '1', 0.5 -> '0.5'."""
    text = repr(float(value))
    return text[:-2] if text.endswith(".0") else text


def result_stem(config: Config, start, end, a, b, n) -> str:
    return config.RESULT_STEM.format(start=_name_float(start), end=_name_float(end),
                                     a=_name_float(a), b=_name_float(b), n=n)


class DiagnosticReporter:
    """Prints numeric diagnostics; divergence events are capped at MAX_SHOWN lines."""

    MAX_SHOWN = 5

    def __init__(self):
        self.truncations = 0
        self.divergences = 0

    def __call__(self, diagnostic):
        if diagnostic.kind is DiagnosticKind.NUMERIC_TRUNCATION:
            self.truncations += 1
            tqdm.write(f"  WARN: Term series truncated to n = {diagnostic.effective_terms} "
                       f"(requested {diagnostic.requested_terms}): {diagnostic.message}.")
            return
        self.divergences += 1
        if self.divergences <= self.MAX_SHOWN:
            tqdm.write(f"  WARN: {diagnostic.message}.")

    def summarize(self):
        if self.divergences > self.MAX_SHOWN:
            print(f"        ... and {self.divergences - self.MAX_SHOWN} more NaN early returns.")


# =============================================================================
# COMMANDS
# =============================================================================

def _apply_overrides(config: Config, args) -> Config:
    if getattr(args, "processes", None) is not None:
        config.NUM_PROCESSES = args.processes
    if getattr(args, "chunk_size", None) is not None:
        config.CHUNK_SIZE = args.chunk_size
    if getattr(args, "strategy", None) is not None:
        config.STRATEGY = args.strategy
    return config


def _check_scan_args(parser, args) -> float:
    increment = args.increment
    if increment is None:
        increment = math.nextafter(args.end, math.inf) - args.end
    if not all(math.isfinite(v) for v in (args.start, args.end, args.a, args.b, increment)):
        parser.error("start, end, a, b and increment must be finite numbers")
    if increment <= 0.0:
        parser.error("Increment must be a positive number")
    if increment > args.end - args.start:
        parser.error("Increment must be less than the range from start to end")
    if args.start >= args.end:
        parser.error("Start must be less than end")
    if args.sum_nb_terms <= 0:
        parser.error("Number of terms in the sum must be greater than 0")
    return increment


def run_scan(parser, args, config: Config) -> int:
    increment = _check_scan_args(parser, args)
    config = _apply_overrides(config, args)

    print(f"Will do {(args.end - args.start) / increment} computations by increments of "
          f"{increment} from {args.start} to {args.end}")
    print(f"Using a = {args.a}, b = {args.b}, and sum_nb_terms = {args.sum_nb_terms}")
    print(f"Results will be saved in {args.output_dir}")

    stem = result_stem(config, args.start, args.end, args.a, args.b, args.sum_nb_terms)
    output_path = os.path.join(args.output_dir, stem + config.RESULT_SUFFIX)
    try:
        os.makedirs(args.output_dir, exist_ok=True)
        if os.path.exists(output_path):
            os.remove(output_path)
        else:
            print("Output file does not exist, creating a new one.")

        reporter = DiagnosticReporter()
        with TextRecordSink.open(output_path) as sink:
            report = evaluate_range(
                ScanRange(args.start, args.end, increment),
                SeriesParameters(args.a, args.b, args.sum_nb_terms),
                sink,
                config,
                on_diagnostic=reporter,
                progress=not args.no_progress,
            )
        reporter.summarize()
    except (InvalidRangeError, OSError) as exc:
        # SinkError is an OSError
        print(f"ERROR: {exc}")
        return 1

    print(f"  INFO: {report.samples} values in {report.chunks} chunks, strategy '{report.strategy}', "
          f"{report.elapsed:.2f} seconds.")
    print(f"Results saved to {output_path}")
    print("Done!")

    if not args.no_plot:
        return run_plot_file(config, output_path, args.format)
    return 0


def run_plot_file(config: Config, result_file, file_format=None) -> int:
    print("\n--- Generating Plots ---")
    try:
        Plotter(config).run_all_plots(result_file, file_format)
    except (ResultFormatError, OSError) as exc:
        print(f"ERROR: {exc}")
        return 1
    print("--- Plot Generation Finished ---\n")
    return 0


def run_verify(parser, args, config: Config) -> int:
    config = _apply_overrides(config, args)
    increment = args.increment if args.increment is not None else (args.end - args.start) / 1000.0
    try:
        scan = ScanRange(args.start, args.end, increment)
        params = SeriesParameters(args.a, args.b, args.sum_nb_terms)
    except InvalidRangeError as exc:
        parser.error(str(exc))
    return 0 if Verifier(config).run_all_tests(params, scan) else 1


def run_bench(args, config: Config) -> int:
    config = _apply_overrides(config, args)
    run_benchmarks(config)
    return 0


# =============================================================================
# ARGUMENT PARSING
# =============================================================================

def _add_series_args(sub, increment_help):
    sub.add_argument("-n", "--sum-nb-terms", type=int, required=True, help="Number of terms in the sum")
    sub.add_argument("-s", "--start", type=float, required=True, help="Start of the interval")
    sub.add_argument("-e", "--end", type=float, required=True, help="End of the interval")
    sub.add_argument("-a", "--a", type=float, required=True, help="The a coefficient")
    sub.add_argument("-b", "--b", type=float, required=True, help="The b coefficient")
    sub.add_argument("-i", "--increment", type=float, default=None, help=increment_help)


def _add_engine_args(sub):
    sub.add_argument("--processes", type=int, default=None,
                     help="Worker processes (0 disables multiprocessing; default: all cores)")
    sub.add_argument("--chunk-size", type=int, default=None, help="Samples written per chunk")
    sub.add_argument("--strategy", choices=STRATEGIES, default=None,
                     help="Power evaluation strategy (default: table)")


def build_parser(config: Config) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="weierstrass-scan",
        description="Evaluate f(x) = sum_{i=0}^{n} a^i cos(b^i pi x) over a dense range of x.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    scan = commands.add_parser("scan", help="Compute and save (x, f(x)) pairs, then plot them")
    _add_series_args(scan, "The increment to use for the computations "
                           "(default: spacing from end to the next representable float)")
    scan.add_argument("-o", "--output-dir", default=config.DEFAULT_OUTPUT_DIR,
                      help="Output directory of the results")
    _add_engine_args(scan)
    scan.add_argument("--no-plot", action="store_true", help="Skip plot generation")
    scan.add_argument("--no-progress", action="store_true", help="Hide the progress bar")
    scan.add_argument("--format", default=None, help="Plot file format (default: png)")

    plot = commands.add_parser("plot", help="Plot an existing result file")
    plot.add_argument("result_file", help="File of 'f(x) = y' lines")
    plot.add_argument("--format", default=None, help="Plot file format (default: png)")

    verify = commands.add_parser("verify", help="Run the verification suite for one parameter set")
    _add_series_args(verify, "Grid spacing for the checks (default: (end - start) / 1000)")
    _add_engine_args(verify)

    bench = commands.add_parser("bench", help="Time single evaluations and full scans")
    _add_engine_args(bench)
    return parser


def main(argv=None) -> int:
    config = Config()
    parser = build_parser(config)
    args = parser.parse_args(argv)

    if getattr(args, "processes", None) is not None and args.processes < 0:
        parser.error("Number of processes must be 0 or greater")
    if getattr(args, "chunk_size", None) is not None and args.chunk_size < 1:
        parser.error("Chunk size must be greater than 0")

    if args.command == "scan":
        return run_scan(parser, args, config)
    if args.command == "plot":
        return run_plot_file(config, args.result_file, args.format)
    if args.command == "verify":
        return run_verify(parser, args, config)
    return run_bench(args, config)


if __name__ == "__main__":
    sys.exit(main())
