import sys
from pathlib import Path

import numpy as np
import pytest

# Allow importing peakfit_smt from repository root
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from peakfit_smt.parameters import Parameters


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def params():
    params = Parameters()
    params.use_discoidal = False
    return params


# Noiseless elliptical Gaussian sampled on integer pixels, indexed [y, x]
def gaussian_frame(shape, baseline, height, x0, y0, sigma_x, sigma_y=None):
    if sigma_y is None:
        sigma_y = sigma_x
    ys, xs = np.mgrid[0:shape[0], 0:shape[1]]
    return baseline + height * np.exp(-((xs - x0) ** 2 / (2 * sigma_x ** 2) + (ys - y0) ** 2 / (2 * sigma_y ** 2)))
