# =============================================================================
#
#   Central configuration for the Weierstrass series scanner.
#
#   All thresholds, chunk sizes, output naming and plotting parameters live
#   here. Library entry points accept a Config instance and explicit keyword
#   overrides; the command line maps its flags onto the same attributes.
#
# =============================================================================

from multiprocessing import cpu_count


class Config:
    # --- Evaluation Strategy ---
    # "table": shared power tables with precomputed overflow truncation.
    # "lazy" : per-point powers with an early exit on the first NaN term.
    STRATEGY = "table"

    # --- Sample Grid ---
    # (end - start) / increment within this relative distance of an integer
    # is snapped to it, so a grid that lands on `end` includes it.
    SAMPLE_SNAP_RTOL = 1e-9

    # --- Performance ---
    # Set to 0 to disable multiprocessing for easier debugging.
    NUM_PROCESSES = cpu_count()
    CHUNK_SIZE = 200_000  # number of x-points written per chunk

    # --- Output Files ---
    DEFAULT_OUTPUT_DIR = "results"
    RESULT_STEM = "results_start_{start}_end_{end}_a_{a}_b_{b}_n_{n}"
    RESULT_SUFFIX = ".txt"

    # --- Plotting Configuration ---
    PLOT_DPI = 100
    PLOT_FIGSIZE = (19.2, 10.8)  # 1920x1080 at PLOT_DPI
    PLOT_FILE_FORMAT = 'png'  # alternatives: 'pdf', 'jpg' or 'svg'
    PLOT_LINE_COLOR = 'black'
    PLOT_LINE_WIDTH = 0.6
    PLOT_HISTOGRAM_BINS = 200

    # --- Verification ---
    MPMATH_PRECISION = 50
    REFERENCE_SAMPLES = 64
    REFERENCE_ABS_TOL = 1e-9
    REFERENCE_ARGUMENT_LIMIT = 1e5  # max |b|^i * pi * |x| for well-conditioned terms
    ORDERING_CHUNK_SIZES = (1, 7)
    ORDERING_MAX_SAMPLES = 2_000

    # --- Benchmarks ---
    BENCH_POINT = (1.0, 0.5, 9.0, 256)              # (x, a, b, n)
    BENCH_POINT_REPEATS = 10_000
    BENCH_SCANS = (
        (0.0, 1.0, 0.0001, 0.5, 9.0, 256),          # 10 000 computations
        (0.0, 1.0, 0.000005, 0.5, 9.0, 256),        # 200 000 computations
    )
    BENCH_SCAN_REPEATS = 3
