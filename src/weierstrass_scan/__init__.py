"""
Dense scans of the truncated Weierstrass-type series

    f(x) = Σ_{i=0}^{n} a^i · cos(b^i · π · x)

in double precision, with overflow-aware power tables and chunked,
order-preserving parallel evaluation.
"""

from .config import Config
from .errors import (
    Diagnostic,
    DiagnosticKind,
    InvalidRangeError,
    ResultFormatError,
    SinkError,
)
from .power_table import PowerTable, build_power_table
from .scan import ScanRange, ScanReport, SeriesParameters, evaluate_range
from .series import evaluate, evaluate_lazy
from .sink import RecordSink, TextRecordSink, format_record, parse_record, read_records

__version__ = "1.0.0"
