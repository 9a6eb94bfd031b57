# #! /usr/bin/env python3
# # -*- coding: utf-8 -*-
# # vim:fenc=utf-8
# #
# # Copyright © 2020 Edward Higgins <ed.higgins@york.ac.uk>
# #
# # Distributed under terms of the MIT license.

""" PEAKS - Peak finding and Gaussian fitting module

Description:
    peaks.py contains the Peaks class holding the candidate peaks of one frame
    and the records of those whose Gaussian fit was accepted, together with
    the per-peak worker that extracts a window, estimates a starting point,
    runs the solver and applies the acceptance policy.

Contains:
    class    Peaks
    class    FitSettings
    function fit_window

Version: 0.2.1
"""

# --- Core library imports ---
import numpy as np

# --- SciPy imports ---
from scipy.spatial import KDTree

# --- Local module imports ---
from . import algorithms
from . import levenberg_marquardt
from .acceptance import get_policy
from .models import get_model
from .results import FitRecord

ESTIMATORS = ("extremum", "centroid")
EDGE_MODES = ("clamp", "reject")


# --- Everything a worker needs to fit one window ---
class FitSettings:
    def __init__(self, model, policy, radius=4, psf_width=1.0, initial_guess="extremum",
                 percentile=5.0, tolerance=1e-3, max_iterations=100, edge_mode="clamp"):
        if initial_guess not in ESTIMATORS:
            raise ValueError(f"Unknown initial guess '{initial_guess}', expected one of {ESTIMATORS}")
        if edge_mode not in EDGE_MODES:
            raise ValueError(f"Unknown edge mode '{edge_mode}', expected one of {EDGE_MODES}")
        if not 0 < percentile <= 50:
            raise ValueError(f"percentile must be in (0, 50], got {percentile}")
        self.model = model
        self.policy = policy
        self.radius = radius
        self.psf_width = psf_width
        self.initial_guess = initial_guess
        self.percentile = percentile
        self.tolerance = tolerance
        self.max_iterations = max_iterations
        self.edge_mode = edge_mode

    @classmethod
    def from_params(cls, params):
        return cls(
            model=get_model(params.model),
            policy=get_policy(params),
            radius=params.subarray_halfwidth,
            psf_width=params.psf_width,
            initial_guess=params.initial_guess,
            percentile=params.guess_percentile,
            tolerance=params.tolerance,
            max_iterations=params.max_iterations,
            edge_mode=params.edge_mode,
        )


# Fit a set of samples, starting from `initial` (NaN = estimate), into a FitRecord
def _fit_samples(samples, initial, settings, frame):
    model = settings.model

    # Too few usable pixels: same outcome as a failed solve
    if samples.intensities.size < model.num_parameters:
        nans = np.full(model.num_parameters, np.nan)
        return FitRecord(model, nans, nans, np.nan, frame)

    if settings.initial_guess == "extremum":
        p0 = algorithms.estimate_extremum(samples, initial, settings.psf_width)
    else:
        p0 = algorithms.estimate_centroid(samples, initial, settings.psf_width, settings.percentile)

    r_squared, p, e = levenberg_marquardt.solve(
        samples, model, p0, tolerance=settings.tolerance, max_iterations=settings.max_iterations
    )

    # Residual sum of squares at the solution
    if np.all(np.isfinite(p)):
        with np.errstate(all="ignore"):
            ssq = levenberg_marquardt.chi_squared(samples, model, p)
    else:
        ssq = np.nan

    return FitRecord(model, p, e, r_squared, frame, ssq)


# --- Worker func: fit a single candidate peak ---
def _fit_single_peak_worker(args):
    # Unpack inputs
    position, frame_data, image_pixels, settings, frame = args
    r = settings.radius
    x_int, y_int = int(position[0]), int(position[1])

    # Window crossing the frame edge
    if settings.edge_mode == "reject" and not frame_data.window_inside(x_int, y_int, r):
        return None

    samples = algorithms.extract_samples(image_pixels, (x_int, y_int), r, frame_data.saturation)

    # Candidate is the starting centre, everything else is estimated
    initial = np.full(settings.model.num_parameters, np.nan)
    initial[2] = x_int
    initial[3] = y_int

    record = _fit_samples(samples, initial, settings, frame)
    return record if settings.policy(record) else None


def fit_window(image_pixels, bounds, saturation, settings, frame=0):
    """Fit a single Gaussian to an explicit (x, y, width, height) window.

    All parameters are estimated from the window. Returns the FitRecord if it
    passes the acceptance policy, otherwise None.
    """
    samples = algorithms.extract_region(image_pixels, bounds, saturation)
    initial = np.full(settings.model.num_parameters, np.nan)
    record = _fit_samples(samples, initial, settings, frame)
    return record if settings.policy(record) else None


# --- Main class for the peaks of one frame ---
class Peaks:
    # Initialise Peaks object
    def __init__(self, frame=0):
        self.frame = frame
        self.num_peaks = 0
        self.num_found = 0
        self.positions = np.zeros((0, 2), dtype=int)
        self.records = []

    # Set candidate positions, e.g. from an external detector
    def set_positions(self, positions):
        positions = np.asarray(positions, dtype=int).reshape(-1, 2)
        self.positions = positions.copy()
        self.num_peaks = len(positions)
        self.num_found = self.num_peaks
        self.records = []

    # Default detector: filtered frame, threshold, local maxima, minimum spacing
    def find_in_frame(self, frame, params):
        if params.use_discoidal:
            filtered = algorithms.discoidal_average(frame, params.inner_radius, params.outer_radius)
        else:
            filtered = np.asarray(frame, dtype=np.float64)

        # Absolute threshold, or mean + n standard deviations
        if params.threshold_value > 0:
            threshold = params.threshold_value
        else:
            threshold = np.mean(filtered) + params.threshold * np.std(filtered)

        maxima = algorithms.find_local_maxima_scipy(filtered)
        if len(maxima) > 0:
            heights = filtered[maxima[:, 1], maxima[:, 0]]
            keep = heights > threshold
            maxima, heights = maxima[keep], heights[keep]
            # Brightest first so weaker neighbours are the ones dropped
            maxima = maxima[np.argsort(-heights, kind="stable")]

        self.set_positions(self._enforce_distance(maxima, params.minimum_distance))

    # Greedily drop peaks within min_distance of a brighter accepted one
    @staticmethod
    def _enforce_distance(maxima, min_distance):
        if len(maxima) < 2 or min_distance <= 0:
            return maxima

        tree = KDTree(maxima)
        suppressed = np.zeros(len(maxima), dtype=bool)
        kept = []
        for i in range(len(maxima)):
            if suppressed[i]:
                continue
            kept.append(i)
            for j in tree.query_ball_point(maxima[i], r=min_distance):
                if j != i:
                    suppressed[j] = True
        return maxima[kept]

    # Drop candidates outside every region and outside the frame's mask
    def filter_regions(self, frame_data, regions=None):
        if self.num_peaks == 0:
            return

        keep_mask = np.ones(self.num_peaks, dtype=bool)

        if regions is not None and len(regions) > 0:
            keep_mask &= regions.contains_points(self.positions)

        # Filter by mask (if frame has one)
        if frame_data.has_mask:
            frame_width, frame_height = frame_data.frame_size
            xs = np.clip(self.positions[:, 0], 0, frame_width - 1)
            ys = np.clip(self.positions[:, 1], 0, frame_height - 1)
            keep_mask &= frame_data.mask_data[ys, xs] != 0

        self.positions = self.positions[keep_mask]
        self.num_peaks = len(self.positions)

    # Fit every remaining candidate, keeping the accepted records
    def fit_peaks(self, frame_data, settings):
        image_pixels = frame_data.as_image()
        task_args = [(position, frame_data, image_pixels, settings, self.frame)
                     for position in self.positions]

        results = [_fit_single_peak_worker(args) for args in task_args]
        self.records = [record for record in results if record is not None]
        return len(self.records)
