#! /usr/bin/env python3
# -*- coding: utf-8 -*-
# vim:fenc=utf-8
#
# Copyright © 2020 Edward Higgins <ed.higgins@york.ac.uk>
#
# Distributed under terms of the MIT license.

""" REGIONS - Polygonal regions of interest

Description:
    regions.py contains the Regions class, a set of polygons used to restrict
    fitting to peaks lying inside at least one of them.

Contains:
    class Regions

Version: 0.1.0
"""

import numpy as np
from matplotlib.path import Path


class Regions:
    # Each polygon is a sequence of (x, y) vertices
    def __init__(self, polygons=()):
        self.paths = [Path(np.asarray(vertices, dtype=np.float64), closed=False) for vertices in polygons]

    # Axis aligned (x, y, width, height) rectangles
    @classmethod
    def from_rectangles(cls, rectangles):
        polygons = []
        for x, y, width, height in rectangles:
            polygons.append([(x, y), (x + width, y), (x + width, y + height), (x, y + height)])
        return cls(polygons)

    def __len__(self):
        return len(self.paths)

    def contains(self, x, y):
        return any(path.contains_point((x, y)) for path in self.paths)

    # Boolean mask over an (n, 2) array of positions
    def contains_points(self, positions):
        positions = np.asarray(positions, dtype=np.float64).reshape(-1, 2)
        inside = np.zeros(len(positions), dtype=bool)
        for path in self.paths:
            inside |= path.contains_points(positions)
        return inside
