#! /usr/bin/env python3
# -*- coding: utf-8 -*-
# vim:fenc=utf-8
#
# Copyright © 2020 Edward Higgins <ed.higgins@york.ac.uk>
#
# Distributed under terms of the MIT license.

""" ACCEPTANCE - Fit acceptance policies

Description:
    acceptance.py contains the interchangeable tests deciding whether a fitted
    peak is kept. Each policy takes a FitRecord and answers True or False;
    rejected peaks are simply left out of the results.

Contains:
    class    ErrorBoundPolicy
    class    RSquaredPolicy
    function get_policy

Version: 0.1.0
"""

import numpy as np


class ErrorBoundPolicy:
    """Keep fits whose every standard error is below a per-parameter ceiling.

    ``max_errors`` maps parameter names (as in ``model.names``) to the largest
    allowed absolute error. A non-finite parameter or error always rejects.
    """

    def __init__(self, max_errors):
        self.max_errors = dict(max_errors)

    def __call__(self, record):
        return self.accept(record)

    def accept(self, record):
        for name, value, error in zip(record.model.names, record.parameters, record.errors):
            if not (np.isfinite(value) and np.isfinite(error)):
                return False
            if not abs(error) < self.max_errors[name]:
                return False
        return True

    def __repr__(self):
        return f"ErrorBoundPolicy({self.max_errors!r})"


class RSquaredPolicy:
    """Keep finite fits explaining at least ``min_r_squared`` of the variance."""

    def __init__(self, min_r_squared):
        self.min_r_squared = float(min_r_squared)

    def __call__(self, record):
        return self.accept(record)

    def accept(self, record):
        if not np.all(np.isfinite(record.parameters)):
            return False
        return bool(record.r_squared >= self.min_r_squared)

    def __repr__(self):
        return f"RSquaredPolicy({self.min_r_squared})"


# Build the policy selected in the run parameters
def get_policy(params):
    if params.acceptance == "error_bounds":
        return ErrorBoundPolicy(params.max_errors)
    if params.acceptance == "r_squared":
        return RSquaredPolicy(params.min_r_squared)
    raise ValueError(f"Unknown acceptance policy '{params.acceptance}'")
