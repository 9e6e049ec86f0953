# =============================================================================
# PLOTTING SUITE
# =============================================================================
#
#   Renders a result file written by the scanner:
#   - the series itself as a line chart,
#   - its slope transform Δy/Δx between consecutive samples,
#   - a histogram of the attained values.
#
# =============================================================================

from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np

from .config import Config
from .errors import ResultFormatError
from .sink import read_records


def slope_transform(x: np.ndarray, y: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """
    Finite-difference slopes between consecutive records, placed at the
    midpoints of their intervals. Returns (midpoints, slopes), one shorter than x.
    """
    dx = np.diff(x)
    with np.errstate(divide="ignore", invalid="ignore"):
        slopes = np.diff(y) / dx
    return x[:-1] + 0.5 * dx, slopes


class Plotter:
    """Generates the line, slope and histogram plots for one result file."""

    def __init__(self, config: Config):
        self.config = config
        plt.style.use('seaborn-v0_8-whitegrid')

    def _load(self, result_file):
        x, y = read_records(result_file)
        if len(x) != len(y):
            raise ResultFormatError("Mismatched lengths of x and y values")
        if len(x) < 2:
            raise ResultFormatError("Not enough data points to plot")
        return x, y

    def _filename(self, result_file, suffix: str, file_format) -> Path:
        fmt = file_format or self.config.PLOT_FILE_FORMAT
        path = Path(result_file)
        return path.with_name(f"{path.stem}{suffix}.{fmt}")

    def run_all_plots(self, result_file, file_format=None) -> list[Path]:
        """Generates the complete set of plots for a result file."""
        x, y = self._load(result_file)
        return [
            self.generate_series_plot(result_file, x, y, file_format),
            self.generate_slope_plot(result_file, x, y, file_format),
            self.generate_histogram_plot(result_file, y, file_format),
        ]

    def generate_series_plot(self, result_file, x, y, file_format=None) -> Path:
        """Line chart of f(x) over the scanned range."""
        fig, ax = plt.subplots(figsize=self.config.PLOT_FIGSIZE)
        ax.plot(x, y, lw=self.config.PLOT_LINE_WIDTH, color=self.config.PLOT_LINE_COLOR, label=r"$f(x)$")
        ax.set_title(r"$f(x) = \sum_{i=0}^{n} a^i \cos(b^i \pi x)$", fontsize=18)
        ax.set_xlabel(r"$x$", fontsize=14)
        ax.set_ylabel(r"$f(x)$", fontsize=14)
        ax.set_xlim(x[0], x[-1])
        ax.tick_params(axis='both', labelsize=12)
        ax.legend(fontsize=12)
        filename = self._filename(result_file, "", file_format)
        plt.savefig(filename, dpi=self.config.PLOT_DPI, bbox_inches='tight')
        print(f"   Generated series plot to '{filename}'.")
        plt.close(fig)
        return filename

    def generate_slope_plot(self, result_file, x, y, file_format=None) -> Path:
        """Slope transform: difference quotients between neighbouring samples."""
        mid, slopes = slope_transform(x, y)
        fig, ax = plt.subplots(figsize=self.config.PLOT_FIGSIZE)
        ax.plot(mid, slopes, lw=self.config.PLOT_LINE_WIDTH, color='darkviolet', label=r"$\Delta f / \Delta x$")
        ax.axhline(0, color='black', lw=0.7)
        ax.set_title(r"Slope Transform $\Delta f(x) / \Delta x$", fontsize=18)
        ax.set_xlabel(r"$x$", fontsize=14)
        ax.set_ylabel(r"$\Delta f / \Delta x$", fontsize=14)
        ax.set_xlim(x[0], x[-1])
        ax.tick_params(axis='both', labelsize=12)
        ax.legend(fontsize=12)
        filename = self._filename(result_file, "_slope", file_format)
        plt.savefig(filename, dpi=self.config.PLOT_DPI, bbox_inches='tight')
        print(f"   Generated slope plot to '{filename}'.")
        plt.close(fig)
        return filename

    def generate_histogram_plot(self, result_file, y, file_format=None) -> Path:
        """Distribution of the finite values of f(x)."""
        finite = y[np.isfinite(y)]
        fig, ax = plt.subplots(figsize=self.config.PLOT_FIGSIZE)
        if finite.size:
            ax.hist(finite, bins=self.config.PLOT_HISTOGRAM_BINS, color='royalblue', alpha=0.85)
        skipped = y.size - finite.size
        ax.set_title(rf"Histogram of $f(x)$ ({finite.size} values, {skipped} non-finite skipped)", fontsize=18)
        ax.set_xlabel(r"$f(x)$", fontsize=14)
        ax.set_ylabel("Count", fontsize=14)
        ax.tick_params(axis='both', labelsize=12)
        filename = self._filename(result_file, "_histogram", file_format)
        plt.savefig(filename, dpi=self.config.PLOT_DPI, bbox_inches='tight')
        print(f"   Generated histogram plot to '{filename}'.")
        plt.close(fig)
        return filename
