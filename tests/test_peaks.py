import numpy as np
import pytest

from conftest import gaussian_frame
from peakfit_smt.acceptance import RSquaredPolicy
from peakfit_smt.fitting import fit_frame
from peakfit_smt.images import ImageData
from peakfit_smt.models import CircularGaussian
from peakfit_smt.peaks import FitSettings, Peaks, fit_window
from peakfit_smt.regions import Regions
from peakfit_smt.results import SIGMA_TO_FWHM
from peakfit_smt.simulation import render_spots

TRUE_ELLIPTICAL = [100.0, 1000.0, 15.3, 16.2, 1.4, 2.0]


def frame_of(pixels, saturation=None):
    return ImageData.from_array(pixels, saturation=saturation)[0]


def three_peak_frame(rng, noise=5.0):
    pixels = 100.0 + render_spots((48, 32), [(10.2, 15.7), (24.6, 16.1), (38.4, 15.2)], 1000.0, 1.5)
    return pixels + rng.normal(0, noise, pixels.shape)


def test_noiseless_elliptical_peak_recovered(params):
    params.subarray_halfwidth = 5
    params.tolerance = 1e-9
    frame = frame_of(gaussian_frame((32, 32), *TRUE_ELLIPTICAL))

    records, num_found, num_accepted = fit_frame(frame, 0, params, candidates=[(15, 16)])

    assert (num_found, num_accepted) == (1, 1)
    np.testing.assert_allclose(records[0].parameters, TRUE_ELLIPTICAL, rtol=1e-6)
    assert records[0].r_squared == pytest.approx(1.0, abs=1e-9)


def test_noiseless_circular_peak_recovered_with_centroid_guess(params):
    params.model = "circular"
    params.initial_guess = "centroid"
    params.acceptance = "r_squared"
    params.subarray_halfwidth = 5
    params.tolerance = 1e-9
    frame = frame_of(gaussian_frame((32, 32), 20.0, 500.0, 16.4, 15.8, 1.6))

    records, num_found, num_accepted = fit_frame(frame, 3, params, candidates=[(16, 16)])

    assert num_accepted == 1
    np.testing.assert_allclose(records[0].parameters, [20.0, 500.0, 16.4, 15.8, 1.6], rtol=1e-6)
    assert records[0].frame == 3
    assert np.isfinite(records[0].residual_ssq)


def test_widths_reported_positive(params):
    params.subarray_halfwidth = 5
    params.tolerance = 1e-9
    params.psf_width = -1.2
    frame = frame_of(gaussian_frame((32, 32), *TRUE_ELLIPTICAL))

    records, _, num_accepted = fit_frame(frame, 0, params, candidates=[(15, 16)])

    assert num_accepted == 1
    row = records[0].as_row()
    assert row["sigma_x"] == pytest.approx(1.4, rel=1e-6)
    assert row["sigma_y"] == pytest.approx(2.0, rel=1e-6)


def test_fwhm_identities(params, rng):
    frame = frame_of(three_peak_frame(rng))

    records, _, num_accepted = fit_frame(frame, 0, params, candidates=[(10, 16), (25, 16), (38, 15)])

    assert num_accepted == 3
    for record in records:
        row = record.as_row()
        assert row["sigma_x"] >= 0 and row["sigma_y"] >= 0
        assert row["fwhm_x"] == row["sigma_x"] * SIGMA_TO_FWHM
        assert row["fwhm_y"] == row["sigma_y"] * SIGMA_TO_FWHM
        assert row["fwhm"] == (row["fwhm_x"] + row["fwhm_y"]) / 2
        assert row["error_fwhm"] == np.sqrt(row["error_fwhm_x"] ** 2 + row["error_fwhm_y"] ** 2) / 2


def test_circular_fwhm_identity(params, rng):
    params.model = "circular"
    frame = frame_of(three_peak_frame(rng))

    records, _, num_accepted = fit_frame(frame, 0, params, candidates=[(10, 16), (25, 16)])

    assert num_accepted == 2
    for record in records:
        row = record.as_row()
        assert row["fwhm"] == row["sigma"] * SIGMA_TO_FWHM
        assert row["error_fwhm"] == row["error_sigma"] * SIGMA_TO_FWHM
        assert "fwhm_x" not in row


def test_saturated_value_does_not_change_fit(params, rng):
    pixels = 100.0 + render_spots((32, 32), [(15.3, 16.2)], 1000.0, 1.5)
    pixels += rng.normal(0, 5.0, pixels.shape)

    at_ceiling = pixels.copy()
    at_ceiling[16, 16] = 1500.0
    far_above = pixels.copy()
    far_above[16, 16] = 1e9

    results = []
    for data in (at_ceiling, far_above):
        records, _, num_accepted = fit_frame(frame_of(data, saturation=1500.0), 0, params, candidates=[(15, 16)])
        assert num_accepted == 1
        results.append(records[0])

    np.testing.assert_array_equal(results[0].parameters, results[1].parameters)
    np.testing.assert_array_equal(results[0].errors, results[1].errors)
    assert results[0].r_squared == results[1].r_squared


def test_zero_error_ceiling_rejects_everything(params, rng):
    frame = frame_of(three_peak_frame(rng))
    candidates = [(10, 16), (25, 16), (38, 15)]

    _, num_found, num_accepted = fit_frame(frame, 0, params, candidates=candidates)
    assert (num_found, num_accepted) == (3, 3)

    params.max_error_x = 0.0
    records, num_found, num_accepted = fit_frame(frame, 0, params, candidates=candidates)
    assert (num_found, num_accepted) == (3, 0)
    assert records == []


def test_unreachable_r_squared_rejects_everything(params, rng):
    params.acceptance = "r_squared"
    params.min_r_squared = 1.01
    frame = frame_of(three_peak_frame(rng))

    records, num_found, num_accepted = fit_frame(frame, 0, params, candidates=[(10, 16), (25, 16), (38, 15)])

    assert (num_found, num_accepted) == (3, 0)


def test_region_filter_applies_before_fitting(params, rng):
    frame = frame_of(three_peak_frame(rng))
    regions = Regions.from_rectangles([(0, 0, 18, 32)])

    records, num_found, num_accepted = fit_frame(
        frame, 0, params, candidates=[(10, 16), (25, 16), (38, 15)], regions=regions
    )

    assert (num_found, num_accepted) == (3, 1)
    assert records[0]["x"] == pytest.approx(10.2, abs=0.2)


def test_cell_mask_filter(params, rng):
    image = ImageData.from_array(three_peak_frame(rng))
    mask = np.zeros((32, 48))
    mask[:, 30:] = 1
    image.set_mask(mask)

    records, num_found, num_accepted = fit_frame(image[0], 0, params, candidates=[(10, 16), (25, 16), (38, 15)])

    assert (num_found, num_accepted) == (3, 1)
    assert records[0]["x"] == pytest.approx(38.4, abs=0.2)


def test_edge_windows_clamped_or_rejected(params):
    params.model = "circular"
    params.tolerance = 1e-9
    frame = frame_of(gaussian_frame((32, 32), 50.0, 800.0, 3.0, 15.0, 1.2))

    records, num_found, num_accepted = fit_frame(frame, 0, params, candidates=[(3, 15)])
    assert (num_found, num_accepted) == (1, 1)
    assert records[0]["x"] == pytest.approx(3.0, rel=1e-6)

    params.edge_mode = "reject"
    records, num_found, num_accepted = fit_frame(frame, 0, params, candidates=[(3, 15)])
    assert (num_found, num_accepted) == (1, 0)


def test_fully_saturated_window_is_rejected(params):
    frame = frame_of(np.full((32, 32), 300.0), saturation=255.0)

    records, num_found, num_accepted = fit_frame(frame, 0, params, candidates=[(16, 16)])

    assert (num_found, num_accepted) == (1, 0)


def test_fit_window_on_explicit_region():
    pixels = gaussian_frame((32, 32), 20.0, 500.0, 16.4, 15.8, 1.6)
    settings = FitSettings(CircularGaussian(), RSquaredPolicy(0.8), initial_guess="centroid", tolerance=1e-9)

    record = fit_window(pixels, (10, 10, 13, 13), np.inf, settings)

    assert record is not None
    np.testing.assert_allclose(record.parameters, [20.0, 500.0, 16.4, 15.8, 1.6], rtol=1e-6)


def test_fit_settings_rejects_unknown_names():
    with pytest.raises(ValueError):
        FitSettings(CircularGaussian(), RSquaredPolicy(0.8), edge_mode="wrap")
    with pytest.raises(ValueError):
        FitSettings(CircularGaussian(), RSquaredPolicy(0.8), initial_guess="moments")


def test_detector_finds_separated_peaks(params, rng):
    params.use_discoidal = True
    truth = np.array([(15.3, 20.6), (45.1, 15.8), (30.7, 45.2)])
    pixels = 500.0 + render_spots((64, 64), truth, 2000.0, 1.5) + rng.normal(0, 20.0, (64, 64))

    frame_peaks = Peaks(frame=0)
    frame_peaks.find_in_frame(pixels, params)

    assert frame_peaks.num_peaks == 3
    for x, y in truth:
        distances = np.hypot(frame_peaks.positions[:, 0] - x, frame_peaks.positions[:, 1] - y)
        assert distances.min() < 1.5


def test_detector_absolute_threshold(params):
    pixels = render_spots((40, 40), [(10, 10), (30, 30)], 100.0, 1.2)
    pixels += render_spots((40, 40), [(30, 10)], 40.0, 1.2)

    frame_peaks = Peaks()
    params.threshold_value = 60.0
    frame_peaks.find_in_frame(pixels, params)

    assert frame_peaks.num_peaks == 2
    assert {tuple(p) for p in frame_peaks.positions} == {(10, 10), (30, 30)}


def test_minimum_distance_keeps_brightest():
    maxima = np.array([(10, 10), (12, 10), (30, 30), (31, 31)])

    kept = Peaks._enforce_distance(maxima, 5)

    np.testing.assert_array_equal(kept, [(10, 10), (30, 30)])


def test_regions_contain_points():
    regions = Regions([[(0, 0), (10, 0), (0, 10)]])

    assert regions.contains(2, 2)
    assert not regions.contains(8, 8)
    np.testing.assert_array_equal(regions.contains_points([(1, 1), (9, 9)]), [True, False])
    assert len(Regions()) == 0


@pytest.mark.parametrize("x, y, accepted", [(27, 15, 1), (28, 15, 0), (15, 27, 1), (15, 28, 0), (4, 4, 1), (4, 3, 0)])
def test_reject_mode_needs_the_whole_window(params, x, y, accepted):
    params.model = "circular"
    params.edge_mode = "reject"
    frame = frame_of(gaussian_frame((32, 32), 50.0, 800.0, x, y, 1.2))

    _, num_found, num_accepted = fit_frame(frame, 0, params, candidates=[(x, y)])

    assert (num_found, num_accepted) == (1, accepted)
    assert frame.window_inside(x, y, params.subarray_halfwidth) == bool(accepted)


def test_fit_settings_rejects_bad_percentile():
    with pytest.raises(ValueError):
        FitSettings(CircularGaussian(), RSquaredPolicy(0.8), percentile=150.0)
    with pytest.raises(ValueError):
        FitSettings(CircularGaussian(), RSquaredPolicy(0.8), percentile=0.0)
