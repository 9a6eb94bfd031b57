#! /usr/bin/env python3
# -*- coding: utf-8 -*-
# vim:fenc=utf-8
#
# Copyright © 2020 Edward Higgins <ed.higgins@york.ac.uk>
#
# Distributed under terms of the MIT license.

""" MODELS - Gaussian intensity models

Description:
    models.py contains the 2D Gaussian peak profiles fitted by the solver. Each
    model exposes its value and the closed-form derivative with respect to
    every parameter, evaluated for a whole set of sample positions at once.

Contains:
    class    GaussianModel
    class    CircularGaussian
    class    EllipticalGaussian
    function get_model

Version: 0.1.0
"""

# --- Core library imports ---
import numpy as np
from numba import jit


# --- Compiled kernels (positions split into x and y columns) ---
@jit(nopython=True, error_model="numpy")
def _circular_value(x, y, p):
    dx = x - p[2]
    dy = y - p[3]
    return p[0] + p[1] * np.exp(-(dx * dx + dy * dy) / (2 * p[4] * p[4]))


@jit(nopython=True, error_model="numpy")
def _circular_gradient(x, y, p):
    dx = x - p[2]
    dy = y - p[3]
    s2 = p[4] * p[4]
    r2 = dx * dx + dy * dy

    jac = np.empty((x.size, 5))
    e = np.exp(-r2 / (2 * s2))
    jac[:, 0] = 1.0
    jac[:, 1] = e
    jac[:, 2] = p[1] * e * dx / s2
    jac[:, 3] = p[1] * e * dy / s2
    jac[:, 4] = p[1] * e * r2 / (s2 * p[4])
    return jac


@jit(nopython=True, error_model="numpy")
def _elliptical_value(x, y, p):
    dx = x - p[2]
    dy = y - p[3]
    return p[0] + p[1] * np.exp(-((dx * dx) / (2 * p[4] * p[4]) + (dy * dy) / (2 * p[5] * p[5])))


@jit(nopython=True, error_model="numpy")
def _elliptical_gradient(x, y, p):
    dx = x - p[2]
    dy = y - p[3]
    sx2 = p[4] * p[4]
    sy2 = p[5] * p[5]

    jac = np.empty((x.size, 6))
    e = np.exp(-((dx * dx) / (2 * sx2) + (dy * dy) / (2 * sy2)))
    jac[:, 0] = 1.0
    jac[:, 1] = e
    jac[:, 2] = p[1] * e * dx / sx2
    jac[:, 3] = p[1] * e * dy / sy2
    jac[:, 4] = p[1] * e * dx * dx / (sx2 * p[4])
    jac[:, 5] = p[1] * e * dy * dy / (sy2 * p[5])
    return jac


# --- Base class shared by both Gaussian variants ---
class GaussianModel:
    """Interface used by the Levenberg-Marquardt solver.

    Subclasses set ``names`` (parameter order, also the result column names)
    and ``width_indices`` (the sigma slots, reported as absolute values) and
    provide the two compiled kernels.
    """

    names = ()
    width_indices = ()
    _value_kernel = None
    _gradient_kernel = None

    @property
    def num_parameters(self):
        return len(self.names)

    # Reject parameter vectors of the wrong length
    def check(self, parameters):
        parameters = np.asarray(parameters, dtype=np.float64)
        if parameters.ndim != 1 or parameters.size != self.num_parameters:
            raise ValueError(
                f"{type(self).__name__} takes {self.num_parameters} parameters, "
                f"got an array of shape {parameters.shape}"
            )
        return parameters

    # Model intensity at each (x, y) row of positions
    def value(self, positions, parameters):
        p = self.check(parameters)
        x, y = _split(positions)
        return type(self)._value_kernel(x, y, p)

    # Jacobian, one row per position, one column per parameter
    def gradient(self, positions, parameters):
        p = self.check(parameters)
        x, y = _split(positions)
        return type(self)._gradient_kernel(x, y, p)

    def __repr__(self):
        return f"{type(self).__name__}()"


class CircularGaussian(GaussianModel):
    """f(x,y) = b + A exp(-((x-x0)^2 + (y-y0)^2) / (2 sigma^2))"""

    names = ("baseline", "height", "x", "y", "sigma")
    width_indices = (4,)
    _value_kernel = staticmethod(_circular_value)
    _gradient_kernel = staticmethod(_circular_gradient)


class EllipticalGaussian(GaussianModel):
    """f(x,y) = b + A exp(-((x-x0)^2 / (2 sigma_x^2) + (y-y0)^2 / (2 sigma_y^2)))"""

    names = ("baseline", "height", "x", "y", "sigma_x", "sigma_y")
    width_indices = (4, 5)
    _value_kernel = staticmethod(_elliptical_value)
    _gradient_kernel = staticmethod(_elliptical_gradient)


MODELS = {
    "circular": CircularGaussian,
    "elliptical": EllipticalGaussian,
}


def get_model(name):
    try:
        return MODELS[name]()
    except KeyError:
        raise ValueError(f"Unknown model '{name}', expected one of {sorted(MODELS)}") from None


# Split an (n, 2) position array into contiguous float64 x and y columns
def _split(positions):
    positions = np.asarray(positions, dtype=np.float64).reshape(-1, 2)
    return np.ascontiguousarray(positions[:, 0]), np.ascontiguousarray(positions[:, 1])
