"""
Tests for the plotting suite (Agg backend, see conftest).
"""

import numpy as np
import pytest

from weierstrass_scan.config import Config
from weierstrass_scan.errors import ResultFormatError
from weierstrass_scan.plotting import Plotter, slope_transform
from weierstrass_scan.scan import ScanRange, SeriesParameters, evaluate_range
from weierstrass_scan.sink import TextRecordSink


@pytest.fixture
def small_config():
    config = Config()
    config.PLOT_DPI = 20
    config.PLOT_HISTOGRAM_BINS = 10
    return config


@pytest.fixture
def result_file(tmp_path):
    path = tmp_path / "results_start_0_end_1_a_0.5_b_3_n_6.txt"
    with TextRecordSink.open(path) as sink:
        evaluate_range(ScanRange(0.0, 1.0, 0.01), SeriesParameters(0.5, 3.0, 6), sink, processes=0)
    return path


class TestSlopeTransform:
    def test_linear_data_has_constant_slope(self) -> None:
        x = np.array([0.0, 0.5, 1.0, 1.5])
        mid, slopes = slope_transform(x, 3.0 * x + 1.0)
        assert mid.tolist() == [0.25, 0.75, 1.25]
        assert slopes.tolist() == pytest.approx([3.0, 3.0, 3.0])

    def test_one_shorter_than_input(self) -> None:
        x = np.linspace(0.0, 1.0, 11)
        mid, slopes = slope_transform(x, np.cos(x))
        assert len(mid) == len(slopes) == 10


class TestPlotter:
    def test_all_plots_written(self, small_config, result_file) -> None:
        files = Plotter(small_config).run_all_plots(result_file)
        names = [f.name for f in files]
        assert names == [
            "results_start_0_end_1_a_0.5_b_3_n_6.png",
            "results_start_0_end_1_a_0.5_b_3_n_6_slope.png",
            "results_start_0_end_1_a_0.5_b_3_n_6_histogram.png",
        ]
        for f in files:
            assert f.exists()
            assert f.stat().st_size > 0

    def test_alternative_format(self, small_config, result_file) -> None:
        files = Plotter(small_config).run_all_plots(result_file, file_format="svg")
        assert all(f.suffix == ".svg" and f.exists() for f in files)

    def test_histogram_skips_non_finite(self, small_config, tmp_path) -> None:
        path = tmp_path / "mixed.txt"
        path.write_text("f(0.0) = 1.0\nf(0.5) = nan\nf(1.0) = -1.0\n")
        files = Plotter(small_config).run_all_plots(path)
        assert all(f.exists() for f in files)

    def test_single_point_rejected(self, small_config, tmp_path) -> None:
        path = tmp_path / "single.txt"
        path.write_text("f(0.0) = 1.0\n")
        with pytest.raises(ResultFormatError, match="Not enough data points"):
            Plotter(small_config).run_all_plots(path)
