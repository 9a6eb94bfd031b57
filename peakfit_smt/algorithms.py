# ! /usr/bin/env python3
# -*- coding: utf-8 -*-
# vim:fenc=utf-8

# Copyright © 2020 Edward Higgins <ed.higgins@york.ac.uk>

# Distributed under terms of the MIT license.

""" ALGORITHMS - Low level algorithms module

Description:
    algorithms.py contains the pixel-level routines used by the peak fitting
    pipeline that don't need any of the data structures defined in other
    modules: gathering the samples of a fitting window, estimating a starting
    parameter vector, and the filters used by the default peak detector.

Contains:
    class    Samples
    function extract_samples
    function extract_region
    function estimate_extremum
    function estimate_centroid
    function find_local_maxima_scipy
    function discoidal_average

Version: 0.2.1
"""

import collections

import cv2
import numpy as np
import scipy.ndimage

# (x, y) sample positions and their intensities from one fitting window
Samples = collections.namedtuple("Samples", ["positions", "intensities"])


def extract_region(pixels, bounds, saturation):
    # Unpack the window and clamp it to the frame
    x0, y0, width, height = bounds
    frame_height, frame_width = pixels.shape
    x_start, x_end = max(x0, 0), min(x0 + width, frame_width)
    y_start, y_end = max(y0, 0), min(y0 + height, frame_height)

    # Window entirely outside the frame
    if x_start >= x_end or y_start >= y_end:
        return Samples(np.zeros((0, 2)), np.zeros(0))

    # Row-major grid of pixel coordinates
    ys, xs = np.mgrid[y_start:y_end, x_start:x_end]
    values = np.asarray(pixels[y_start:y_end, x_start:x_end], dtype=np.float64)

    # Saturated pixels carry no shape information
    keep = (values < saturation).ravel()
    positions = np.column_stack((xs.ravel(), ys.ravel())).astype(np.float64)

    return Samples(positions[keep], values.ravel()[keep])


def extract_samples(pixels, centre, radius, saturation):
    # Square window of side 2r+1 around the (integer) centre
    cx, cy = int(centre[0]), int(centre[1])
    side = 2 * radius + 1
    return extract_region(pixels, (cx - radius, cy - radius, side, side), saturation)


# Fill the NaN slots of a caller supplied vector from an estimate
def _fill_missing(initial, guess):
    initial = np.asarray(initial, dtype=np.float64)
    return np.where(np.isnan(initial), guess, initial)


def estimate_extremum(samples, initial, psf_width):
    """Starting point from the extreme samples of the window.

    Baseline is the smallest sample, amplitude the largest sample above it and
    the centre the position of the largest sample. If ``initial`` already holds
    a centre, the amplitude is taken from the sample at that pixel instead.
    Widths start at ``psf_width``.
    """
    initial = np.asarray(initial, dtype=np.float64)
    values = samples.intensities
    i_min = np.argmin(values)
    i_max = np.argmax(values)

    baseline = values[i_min]
    guess = np.full(initial.size, float(psf_width))
    guess[0] = baseline
    guess[1] = values[i_max] - baseline
    guess[2:4] = samples.positions[i_max]

    # A known centre: amplitude from the pixel under it
    if np.all(np.isfinite(initial[2:4])):
        pixel = np.floor(initial[2:4])
        at_centre = np.flatnonzero(np.all(samples.positions == pixel, axis=1))
        if at_centre.size > 0:
            guess[1] = values[at_centre[0]] - baseline

    return _fill_missing(initial, guess)


def estimate_centroid(samples, initial, psf_width, percentile=5.0):
    """Starting point robust to single hot or cold pixels.

    Baseline and peak level are averaged over the lowest and highest
    ``percentile`` % of samples (at least one sample each), and the centre is
    the intensity weighted centroid of the window.
    """
    if not 0 < percentile <= 50:
        raise ValueError(f"percentile must be in (0, 50], got {percentile}")

    initial = np.asarray(initial, dtype=np.float64)
    values = samples.intensities
    n = values.size

    # Mean of the extreme tails
    m = max(1, int(n * percentile / 100))
    ordered = np.sort(values)
    baseline = np.mean(ordered[:m])
    peak = np.mean(ordered[n - m:])

    # Intensity weighted centre, geometric centre if the weights are unusable
    total = np.sum(values)
    if total > 0:
        centre = values @ samples.positions / total
    else:
        centre = np.mean(samples.positions, axis=0)

    guess = np.full(initial.size, float(psf_width))
    guess[0] = baseline
    guess[1] = peak - baseline
    guess[2:4] = centre

    return _fill_missing(initial, guess)


def find_local_maxima_scipy(img):
    # Return empty if input image is invalid
    if img is None or img.size == 0:
        return np.zeros((0, 2), dtype=int)

    # Find max value in 3x3 neighbourhood for each pixel
    maximum_img = scipy.ndimage.maximum_filter(img, size=3, mode="nearest")

    # Pixels equal to their neighbourhood maximum
    local_max_mask = img == maximum_img

    # Get coordinates (y, x) of maxima and return them as [x, y]
    coords_yx = np.nonzero(local_max_mask)
    return np.stack((coords_yx[1], coords_yx[0]), axis=-1)


def _disk_kernel(radius, size):
    # Filled circle of the given radius, centred in a size x size kernel
    kernel = np.zeros((size, size), dtype=np.uint8)
    cv2.circle(kernel, (size // 2, size // 2), radius, 1, -1)
    return kernel.astype(np.float32)


def discoidal_average(img, inner_radius, outer_radius):
    """Mean over a disk minus the mean over the surrounding ring.

    Flattens slowly varying background while keeping spots about the size of
    the inner disk.
    """
    size = 2 * outer_radius + 1
    inner = _disk_kernel(inner_radius, size)
    ring = _disk_kernel(outer_radius, size) - inner

    kernel = inner / inner.sum()
    if ring.sum() > 0:
        kernel -= ring / ring.sum()

    filtered = cv2.filter2D(img.astype(np.float32), -1, kernel, borderType=cv2.BORDER_REFLECT)
    return filtered.astype(np.float64)
