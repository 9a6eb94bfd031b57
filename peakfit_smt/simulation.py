# ! /usr/bin/env python3
# -*- coding: utf-8 -*-
# vim:fenc=utf-8

# Copyright © 2020 Edward Higgins <ed.higgins@york.ac.uk>

# Distributed under terms of the MIT license.

""" SIMULATION - Dataset simulation module

Description:
    simulation.py contains the code for the simulation task, which renders
    pseudo-experimental stacks of Gaussian spots on a noisy background. The
    true spot positions are written alongside, so fitted results can be
    compared against them.

Contains:
    function render_spots
    function simulate_stack
    function simulate

Version: 0.2.0
"""

# --- Core library imports ---
import sys
import numpy as np

# --- Local module imports ---
from .images import ImageData, saturation_for
from .results import ResultsTable


# Sum of circular Gaussian spots (no background) on a width x height grid
def render_spots(frame_size, positions, height, width):
    x_pos, y_pos = np.meshgrid(np.arange(frame_size[0]), np.arange(frame_size[1]))
    frame_data = np.zeros([frame_size[1], frame_size[0]])
    for x0, y0 in positions:
        frame_data += height * np.exp(-((x_pos - x0) ** 2 + (y_pos - y0) ** 2) / (2 * width ** 2))
    return frame_data


# --- Simulate image data and the true spot positions ---
def simulate_stack(params, rng=None):
    if params.sim_frames < 1:
        sys.exit("ERROR: Cannot simulate image with sim_frames < 1")

    if rng is None:
        rng = np.random.default_rng(params.seed if params.seed >= 0 else None)

    frame_size = params.frame_size
    # Keep spots a fit window away from the edges
    margin = params.subarray_halfwidth + 1
    if frame_size[0] <= 2 * margin or frame_size[1] <= 2 * margin:
        sys.exit(f"ERROR: Frame size {frame_size} too small for fit windows of half width {params.subarray_halfwidth}")

    image = ImageData()
    image.initialise(params.sim_frames, frame_size, np.uint16)
    ceiling = saturation_for(np.uint16)

    truth = []
    for frame in range(params.sim_frames):
        # Random sub-pixel positions inside the margin
        positions = np.column_stack((
            rng.uniform(margin, frame_size[0] - margin, params.num_spots),
            rng.uniform(margin, frame_size[1] - margin, params.num_spots),
        ))
        truth.append(positions)

        # Shot noise on the spots, Gaussian noise on the background
        signal = render_spots(frame_size, positions, params.I_single, params.spot_width)
        frame_data = rng.poisson(signal) + rng.normal(params.bg_mean, params.bg_std, signal.shape)
        image[frame] = np.clip(np.rint(frame_data), 0, ceiling).astype(np.uint16)

    return image, truth


def simulate(params):
    image, truth = simulate_stack(params)

    # Ground truth table, one row per simulated spot
    table = ResultsTable()
    for frame, positions in enumerate(truth):
        for x, y in positions:
            table.add_row({"x": x, "y": y, "height": params.I_single,
                           "sigma": params.spot_width, "slice": frame})

    image.write(params.name + ".tif")
    table.write(params.name + "_simulated.csv")

    if params.verbose:
        print(f"Simulated {params.sim_frames} frames with {params.num_spots} spots each")

    return image, truth
