"""
Record sinks and the `f(<x>) = <value>` result format.

The batch evaluator hands each finished chunk to `write_block` in ascending
sample order and calls `finalize` once after the last chunk. The text format
is shared with the plotting suite, which parses it back with `parse_record`.
Floats are written with Python's shortest round-trip repr, so every line reads
back to the exact doubles that were computed.
"""

import re
from pathlib import Path
from typing import Protocol, TextIO, Union

import numpy as np

from .errors import ResultFormatError, SinkError

_FLOAT = r"[+-]?(?:nan|inf|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)"
_RECORD_RE = re.compile(rf"^f\(({_FLOAT})\) = ({_FLOAT})$")


class RecordSink(Protocol):
    def write_block(self, xs: np.ndarray, ys: np.ndarray) -> None: ...

    def finalize(self) -> None: ...


def format_record(x: float, value: float) -> str:
    return f"f({float(x)!r}) = {float(value)!r}\n"


def parse_record(line: str) -> tuple[float, float]:
    """Parse one `f(<x>) = <value>` line back into floats."""
    stripped = line.rstrip("\r\n")
    match = _RECORD_RE.match(stripped)
    if match is None:
        raise ResultFormatError(
            f"Invalid data in line: '{stripped}'. Expected format: 'f(x) = y'"
        )
    return float(match.group(1)), float(match.group(2))


def read_records(path: Union[str, Path]) -> tuple[np.ndarray, np.ndarray]:
    """Read a whole result file into (xs, ys) arrays."""
    xs, ys = [], []
    with open(path, "r", encoding="utf-8") as handle:
        for line in handle:
            if not line.strip():
                continue
            x, y = parse_record(line)
            xs.append(x)
            ys.append(y)
    if not xs:
        raise ResultFormatError(f"No valid data found in the result file '{path}'")
    return np.array(xs, dtype=np.float64), np.array(ys, dtype=np.float64)


class TextRecordSink:
    """Writes records line by line to a text stream it may or may not own."""

    def __init__(self, stream: TextIO, owns_stream: bool = False):
        self._stream = stream
        self._owns_stream = owns_stream
        self.records_written = 0
        self.finalized = False

    @classmethod
    def open(cls, path: Union[str, Path]) -> "TextRecordSink":
        try:
            stream = open(path, "w", encoding="utf-8", newline="\n")
        except OSError as exc:
            raise SinkError(exc.errno, f"Cannot open result file: {exc.strerror}", str(path)) from exc
        return cls(stream, owns_stream=True)

    def write_block(self, xs: np.ndarray, ys: np.ndarray) -> None:
        if self.finalized:
            raise SinkError("Sink already finalized; no further records accepted")
        # tolist() yields Python floats, whose repr is the round-trip text
        text = "".join(map(format_record, np.asarray(xs).tolist(), np.asarray(ys).tolist()))
        try:
            self._stream.write(text)
        except (OSError, ValueError) as exc:
            # ValueError: write to a closed file
            raise SinkError(f"Failed to write {len(xs)} records: {exc}") from exc
        self.records_written += len(xs)

    def finalize(self) -> None:
        if self.finalized:
            raise SinkError("Sink already finalized")
        try:
            self._stream.flush()
        except (OSError, ValueError) as exc:
            raise SinkError(f"Failed to flush results: {exc}") from exc
        self.finalized = True

    def close(self) -> None:
        if self._owns_stream and not self._stream.closed:
            self._stream.close()

    def __enter__(self) -> "TextRecordSink":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
