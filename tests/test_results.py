import contextlib
from multiprocessing.pool import ThreadPool

import numpy as np
import pytest

from peakfit_smt.models import CircularGaussian, EllipticalGaussian
from peakfit_smt.results import SIGMA_TO_FWHM, FitRecord, ResultsTable, read_results


def elliptical_record(frame=0, x=5.0, y=6.0):
    return FitRecord(
        EllipticalGaussian(),
        [10.0, 200.0, x, y, -1.5, 2.0],
        [1.0, 2.0, 0.1, 0.2, 0.03, 0.04],
        0.95,
        frame,
        12.5,
    )


def test_elliptical_row_columns():
    row = elliptical_record().as_row()

    assert list(row) == [
        "baseline", "height", "x", "y", "sigma_x", "sigma_y",
        "fwhm_x", "fwhm_y", "fwhm",
        "error_baseline", "error_height", "error_x", "error_y", "error_sigma_x", "error_sigma_y",
        "error_fwhm_x", "error_fwhm_y", "error_fwhm",
        "slice", "r_squared", "residual_ssq",
    ]
    assert row["sigma_x"] == 1.5
    assert row["fwhm_x"] == pytest.approx(1.5 * 2.3548, rel=1e-4)
    assert row["error_fwhm"] == pytest.approx(np.hypot(0.03, 0.04) * SIGMA_TO_FWHM / 2)
    assert row["slice"] == 0
    assert row["residual_ssq"] == 12.5


def test_circular_row_columns():
    record = FitRecord(CircularGaussian(), [10.0, 200.0, 5.0, 6.0, 1.2], [1.0, 2.0, 0.1, 0.2, 0.05], 0.9, 7)
    row = record.as_row()

    assert list(row) == [
        "baseline", "height", "x", "y", "sigma", "fwhm",
        "error_baseline", "error_height", "error_x", "error_y", "error_sigma", "error_fwhm",
        "slice", "r_squared", "residual_ssq",
    ]
    assert row["fwhm"] == 1.2 * SIGMA_TO_FWHM
    assert row["slice"] == 7
    assert np.isnan(row["residual_ssq"])


def test_record_is_read_only():
    record = elliptical_record()

    assert record["sigma_x"] == 1.5
    assert record.error("y") == 0.2
    with pytest.raises(ValueError):
        record.parameters[0] = 0.0
    with pytest.raises(ValueError):
        record.errors[0] = 0.0


def test_record_checks_parameter_count():
    with pytest.raises(ValueError):
        FitRecord(CircularGaussian(), [1.0, 2.0, 3.0], [1.0, 2.0, 3.0], 0.5, 0)


def test_write_and_read_back(tmp_path):
    table = ResultsTable()
    table.add_frame([elliptical_record(0), elliptical_record(1, x=9.0)], 3, 2)
    filename = tmp_path / "fits.csv"

    table.write(filename)
    loaded = read_results(filename)

    assert loaded.columns == table.columns
    assert len(loaded) == 2
    np.testing.assert_allclose(loaded.column("x"), [5.0, 9.0])
    np.testing.assert_array_equal(loaded.column("slice"), [0, 1])
    assert filename.read_text().splitlines()[0].split("\t")[:2] == ["baseline", "height"]


def test_column_access():
    table = ResultsTable()
    table.add_frame([elliptical_record()], 1, 1)

    with pytest.raises(KeyError):
        table.column("missing")
    with pytest.raises(ValueError):
        table.set_column("label", [1, 2])

    table.set_column("label", [4])
    assert table.columns[-1] == "label"
    assert table.column("label")[0] == 4


def test_reset_clears_counts():
    table = ResultsTable()
    table.add_frame([elliptical_record()], 5, 1)

    table.reset()

    assert len(table) == 0
    assert (table.num_found, table.num_accepted) == (0, 0)
    assert table.columns == []


def test_concurrent_frames_are_never_torn():
    num_frames = 200
    per_frame = 7

    def worker(frame):
        records = []
        for i in range(per_frame):
            value = frame * 1000.0 + i
            records.append(FitRecord(CircularGaussian(), [value, 1.0, value, value, 1.0], np.zeros(5), 1.0, frame))
        return records

    table = ResultsTable()

    def fit_and_add(frame):
        table.add_frame(worker(frame), per_frame + 1, per_frame)

    with contextlib.closing(ThreadPool(processes=8)) as pool:
        pool.map(fit_and_add, range(num_frames))

    assert len(table) == num_frames * per_frame
    assert table.num_found == num_frames * (per_frame + 1)
    assert table.num_accepted == num_frames * per_frame

    # Every row is internally consistent
    for row in table.rows:
        assert row["x"] == row["y"] == row["baseline"]
        assert row["slice"] == row["x"] // 1000

    # Each frame's rows are contiguous and in order
    slices = table.column("slice")
    for start in range(0, len(slices), per_frame):
        block = table.rows[start:start + per_frame]
        assert len({row["slice"] for row in block}) == 1
        assert [row["x"] % 1000 for row in block] == list(range(per_frame))

    assert sorted(set(slices)) == list(range(num_frames))
