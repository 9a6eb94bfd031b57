#! /usr/bin/env python3
# -*- coding: utf-8 -*-
# vim:fenc=utf-8
#
# Copyright © 2020 Edward Higgins <ed.higgins@york.ac.uk>
#
# Distributed under terms of the MIT license.

""" PARAMETERS - Run parameter handling

Description:
    parameters.py contains the table of run parameters with their defaults and
    the Parameters class passed to every task. Values come from the defaults
    and from "key=value" words on the command line; nothing is read from or
    written to disk.

Contains:
    dict  default_parameters
    class Parameters

Version: 0.2.0
"""

import copy
import sys

available_tasks = ["simulate", "fit", "cluster"]

default_parameters = {
    # General
    "task": {
        "description": "Which task(s) to perform in the run",
        "level": "basic",
        "class": "general",
        "default": [],
        "options": available_tasks,
    },
    "name": {
        "description": "Name prefixing all input and output files",
        "level": "basic",
        "class": "general",
        "default": "",
    },
    "verbose": {
        "description": "Print progress and summaries while running",
        "level": "basic",
        "class": "general",
        "default": False,
    },
    "num_procs": {
        "description": "Number of frames to fit concurrently (<= 1 runs serially)",
        "level": "basic",
        "class": "general",
        "default": 1,
    },

    # Image
    "num_frames": {
        "description": "Number of frames to use from the stack (0 = all)",
        "level": "basic",
        "class": "image",
        "default": 0,
    },
    "cell_mask": {
        "description": "TIFF mask; peaks on zero pixels are not fitted",
        "level": "basic",
        "class": "image",
        "default": "",
    },
    "saturation": {
        "description": "Saturation ceiling; pixels at or above it are ignored (0 = from pixel type)",
        "level": "advanced",
        "class": "image",
        "default": 0.0,
    },

    # Peak detection
    "use_discoidal": {
        "description": "Apply the discoidal averaging filter before looking for peaks",
        "level": "basic",
        "class": "detection",
        "default": True,
    },
    "inner_radius": {
        "description": "Inner disk radius of the discoidal averaging filter",
        "level": "advanced",
        "class": "detection",
        "default": 1,
    },
    "outer_radius": {
        "description": "Outer ring radius of the discoidal averaging filter",
        "level": "advanced",
        "class": "detection",
        "default": 3,
    },
    "threshold": {
        "description": "Peak threshold as mean + n times standard deviation",
        "level": "basic",
        "class": "detection",
        "default": 6.0,
    },
    "threshold_value": {
        "description": "Absolute peak threshold (0 = use threshold instead)",
        "level": "basic",
        "class": "detection",
        "default": 0.0,
    },
    "minimum_distance": {
        "description": "Minimum distance between peaks in pixels",
        "level": "basic",
        "class": "detection",
        "default": 8,
    },

    # Fitting
    "model": {
        "description": "Gaussian profile fitted to each peak",
        "level": "basic",
        "class": "fitting",
        "default": "elliptical",
        "options": ["elliptical", "circular"],
    },
    "initial_guess": {
        "description": "Starting point estimator",
        "level": "advanced",
        "class": "fitting",
        "default": "extremum",
        "options": ["extremum", "centroid"],
    },
    "subarray_halfwidth": {
        "description": "Fit window half width; windows are 2r+1 pixels square",
        "level": "basic",
        "class": "fitting",
        "default": 4,
    },
    "psf_width": {
        "description": "Starting sigma of the Gaussian",
        "level": "basic",
        "class": "fitting",
        "default": 1.0,
    },
    "guess_percentile": {
        "description": "Percentage of samples averaged for the centroid estimator baseline and peak",
        "level": "advanced",
        "class": "fitting",
        "default": 5.0,
        "range": (0.0, 50.0),
    },
    "edge_mode": {
        "description": "Windows crossing the frame edge are clamped or rejected",
        "level": "advanced",
        "class": "fitting",
        "default": "clamp",
        "options": ["clamp", "reject"],
    },
    "window": {
        "description": "Fit one Gaussian to this x,y,width,height window of every frame instead of detecting peaks",
        "level": "advanced",
        "class": "fitting",
        "default": (),
    },
    "tolerance": {
        "description": "Relative chi-square change at which the fit stops",
        "level": "advanced",
        "class": "fitting",
        "default": 0.001,
    },
    "max_iterations": {
        "description": "Maximum number of Levenberg-Marquardt iterations",
        "level": "advanced",
        "class": "fitting",
        "default": 100,
    },

    # Acceptance
    "acceptance": {
        "description": "Test deciding which fits are kept",
        "level": "basic",
        "class": "acceptance",
        "default": "error_bounds",
        "options": ["error_bounds", "r_squared"],
    },
    "max_error_baseline": {
        "description": "Largest accepted error on the baseline",
        "level": "basic",
        "class": "acceptance",
        "default": 5000.0,
    },
    "max_error_height": {
        "description": "Largest accepted error on the height",
        "level": "basic",
        "class": "acceptance",
        "default": 5000.0,
    },
    "max_error_x": {
        "description": "Largest accepted error on x",
        "level": "basic",
        "class": "acceptance",
        "default": 1.0,
    },
    "max_error_y": {
        "description": "Largest accepted error on y",
        "level": "basic",
        "class": "acceptance",
        "default": 1.0,
    },
    "max_error_sigma": {
        "description": "Largest accepted error on sigma (circular model)",
        "level": "basic",
        "class": "acceptance",
        "default": 1.0,
    },
    "max_error_sigma_x": {
        "description": "Largest accepted error on sigma_x",
        "level": "basic",
        "class": "acceptance",
        "default": 1.0,
    },
    "max_error_sigma_y": {
        "description": "Largest accepted error on sigma_y",
        "level": "basic",
        "class": "acceptance",
        "default": 1.0,
    },
    "min_r_squared": {
        "description": "Smallest accepted coefficient of determination",
        "level": "basic",
        "class": "acceptance",
        "default": 0.8,
    },

    # Clustering
    "cluster_distance": {
        "description": "Fits closer than this are linked into one cluster",
        "level": "basic",
        "class": "clustering",
        "default": 10.0,
    },
    "cluster_min_size": {
        "description": "Smallest cluster that is reported",
        "level": "basic",
        "class": "clustering",
        "default": 20,
    },

    # Simulation
    "num_spots": {
        "description": "Number of spots per simulated frame",
        "level": "basic",
        "class": "simulation",
        "default": 10,
    },
    "sim_frames": {
        "description": "Number of frames to simulate",
        "level": "basic",
        "class": "simulation",
        "default": 10,
    },
    "frame_size": {
        "description": "Size of a simulated frame (width,height)",
        "level": "basic",
        "class": "simulation",
        "default": (128, 128),
    },
    "spot_width": {
        "description": "Sigma of simulated spots",
        "level": "basic",
        "class": "simulation",
        "default": 1.5,
    },
    "I_single": {
        "description": "Peak height of a simulated spot",
        "level": "basic",
        "class": "simulation",
        "default": 2000.0,
    },
    "bg_mean": {
        "description": "Mean background of simulated frames",
        "level": "basic",
        "class": "simulation",
        "default": 500.0,
    },
    "bg_std": {
        "description": "Standard deviation of simulated background noise",
        "level": "basic",
        "class": "simulation",
        "default": 20.0,
    },
    "seed": {
        "description": "Random seed for simulation (negative = unseeded)",
        "level": "advanced",
        "class": "simulation",
        "default": -1,
    },
}


class Parameters:
    def __init__(self, initial=default_parameters):
        self._params = copy.deepcopy(initial)
        for param in self._params.values():
            param["value"] = copy.deepcopy(param["default"])

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        if name in self._params:
            return self._params[name]["value"]
        raise AttributeError(f"Unknown parameter '{name}'")

    def __setattr__(self, name, value):
        if name.startswith("_"):
            object.__setattr__(self, name, value)
        elif name in self._params:
            param = self._params[name]
            if "options" in param and not isinstance(param["default"], list) and value not in param["options"]:
                raise ValueError(f"Parameter '{name}' must be one of {param['options']}, got '{value}'")
            # Half-open (low, high] interval
            if "range" in param:
                low, high = param["range"]
                if not low < value <= high:
                    raise ValueError(f"Parameter '{name}' must be in ({low}, {high}], got {value}")
            param["value"] = value
        else:
            raise AttributeError(f"Unknown parameter '{name}'")

    # Per-column error ceilings for the error bound acceptance policy
    @property
    def max_errors(self):
        return {
            "baseline": self.max_error_baseline,
            "height": self.max_error_height,
            "x": self.max_error_x,
            "y": self.max_error_y,
            "sigma": self.max_error_sigma,
            "sigma_x": self.max_error_sigma_x,
            "sigma_y": self.max_error_sigma_y,
        }

    # Parse command line words: tasks and key=value assignments
    def read(self, args):
        for arg in args[1:]:
            if arg in ("help", "--help", "-h"):
                self.help()
                sys.exit(0)
            elif "=" in arg:
                key, value = arg.split("=", 1)
                if key not in self._params:
                    sys.exit(f"ERROR: Unrecognised parameter '{key}'")
                try:
                    setattr(self, key, self._convert(key, value))
                except ValueError as e:
                    sys.exit(f"ERROR: {e}")
            elif arg in available_tasks:
                self.task.append(arg)
            else:
                sys.exit(f"ERROR: Unrecognised argument '{arg}'")

    # Convert a command line string to the type of the parameter's default
    def _convert(self, key, value):
        default = self._params[key]["default"]
        if isinstance(default, bool):
            if value.lower() in ("true", "yes", "1"):
                return True
            if value.lower() in ("false", "no", "0"):
                return False
            raise ValueError(f"Parameter '{key}' expects true or false, got '{value}'")
        if isinstance(default, int):
            return int(value)
        if isinstance(default, float):
            return float(value)
        if isinstance(default, tuple):
            return tuple(int(v) for v in value.split(","))
        if isinstance(default, list):
            return [v for v in value.split(",") if v]
        return value

    def help(self):
        print("Usage: peakfit-smt TASK [TASK ...] [key=value ...]\n")
        print(f"Tasks: {', '.join(available_tasks)}\n")
        current_class = None
        for name, param in self._params.items():
            if param["class"] != current_class:
                current_class = param["class"]
                print(f"{current_class.capitalize()}:")
            print(f"    {name:20s} {param['description']} (default: {param['default']})")
