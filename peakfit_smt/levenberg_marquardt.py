#! /usr/bin/env python3
# -*- coding: utf-8 -*-
# vim:fenc=utf-8
#
# Copyright © 2020 Edward Higgins <ed.higgins@york.ac.uk>
#
# Distributed under terms of the MIT license.

""" LEVENBERG_MARQUARDT - Nonlinear least squares solver

Description:
    levenberg_marquardt.py contains a damped Gauss-Newton minimiser that works
    with any model exposing value(positions, p) and gradient(positions, p).
    Numerical failures are reported as NaN in the affected parameter and error
    slots rather than raised, so callers can reject a single peak and carry
    on with the rest of the frame.

Contains:
    function solve
    function chi_squared

Version: 0.1.0
"""

# --- Core library imports ---
import numpy as np

# Damping schedule
INITIAL_DAMPING = 1e-3
DAMPING_FACTOR = 10.0
MAX_RETRIES = 10
MAX_ITERATIONS = 100


# Sum of squared residuals for a parameter vector
def chi_squared(samples, model, parameters):
    residuals = samples.intensities - model.value(samples.positions, parameters)
    return np.dot(residuals, residuals)


def solve(samples, model, parameters, fixed=None, tolerance=1e-3, max_iterations=MAX_ITERATIONS):
    """Refine ``parameters`` so that ``model`` best matches ``samples``.

    Args:
        samples: Samples with ``positions`` (n x 2) and ``intensities`` (n).
        model: a GaussianModel (or anything with the same value/gradient API).
        parameters: initial parameter vector, left untouched.
        fixed: optional boolean mask; True entries are held at their input
            value and get an error of 0.
        tolerance: stop once an accepted step lowers chi-square by a relative
            amount smaller than this.
        max_iterations: upper bound on accepted/attempted outer iterations.

    Returns:
        (r_squared, parameters, errors). Free parameter and error slots are
        NaN, and r_squared is NaN, when the fit could not be carried out.
    """
    p = model.check(parameters).copy()
    num_parameters = p.size

    if tolerance <= 0:
        raise ValueError(f"tolerance must be positive, got {tolerance}")

    # Build the mask of parameters to refine
    if fixed is None:
        fixed = np.zeros(num_parameters, dtype=bool)
    else:
        fixed = np.asarray(fixed, dtype=bool)
        if fixed.shape != (num_parameters,):
            raise ValueError(f"fixed mask must have shape ({num_parameters},), got {fixed.shape}")
    free = ~fixed

    errors = np.zeros(num_parameters)
    y = np.asarray(samples.intensities, dtype=np.float64)
    n = y.size

    # Under-determined window or unusable start point
    if n < num_parameters or not np.all(np.isfinite(p)):
        return _failed(p, errors, free)

    with np.errstate(all="ignore"):
        chi2 = chi_squared(samples, model, p)
        if not np.isfinite(chi2):
            return _failed(p, errors, free)

        damping = INITIAL_DAMPING
        if not np.any(free):
            max_iterations = 0

        for iteration in range(max_iterations):
            # Linearise about the current estimate
            jac = model.gradient(samples.positions, p)[:, free]
            residuals = y - model.value(samples.positions, p)
            hessian = jac.T @ jac
            beta = jac.T @ residuals

            # Increase damping until a step lowers chi-square
            improved = False
            for retry in range(MAX_RETRIES):
                damped = hessian + damping * np.diag(np.diag(hessian))
                try:
                    step = np.linalg.solve(damped, beta)
                except np.linalg.LinAlgError:
                    return _failed(p, errors, free)

                trial = p.copy()
                trial[free] += step
                trial_chi2 = chi_squared(samples, model, trial)

                if np.isfinite(trial_chi2) and trial_chi2 < chi2:
                    improved = True
                    break
                damping *= DAMPING_FACTOR

            # No downhill step left at any damping: converged as far as possible
            if not improved:
                break

            change = (chi2 - trial_chi2) / chi2
            p = trial
            chi2 = trial_chi2
            damping /= DAMPING_FACTOR

            if chi2 == 0 or change < tolerance:
                break

        # Goodness of fit
        tss = np.sum((y - np.mean(y)) ** 2)
        r_squared = 1.0 - chi2 / tss if tss > 0 else np.nan

        # Standard errors from the inverse curvature matrix at the solution
        if not np.any(free):
            return r_squared, p, errors
        jac = model.gradient(samples.positions, p)[:, free]
        dof = n - np.count_nonzero(free)
        try:
            covariance = np.linalg.inv(jac.T @ jac)
        except np.linalg.LinAlgError:
            errors[free] = np.nan
        else:
            if dof > 0:
                errors[free] = np.sqrt(np.diag(covariance) * (chi2 / dof))
            else:
                errors[free] = np.nan

    return r_squared, p, errors


# Mark every refined slot as failed, keeping fixed values untouched
def _failed(p, errors, free):
    p[free] = np.nan
    errors[free] = np.nan
    return np.nan, p, errors
