#! /usr/bin/env python3
# -*- coding: utf-8 -*-
# vim:fenc=utf-8
#
# Copyright © 2020 Edward Higgins <ed.higgins@york.ac.uk>
#
# Distributed under terms of the MIT license.

""" CLUSTERING - Spatial clustering of fitted peaks

Description:
    clustering.py groups the fitted positions of a results table into
    clusters, e.g. to collect the repeated localisations of one stationary
    emitter over many frames. Fits closer than a distance threshold are
    linked and every connected group forms a cluster (single linkage).

Contains:
    function cluster_results
    function cluster

Version: 0.1.0
"""

import collections
import os
import sys

import numpy as np
from scipy.spatial import KDTree

from .results import read_results


# Connected components of the "closer than distance" graph, as index lists
def _linked_groups(positions, distance):
    num_points = len(positions)
    tree = KDTree(positions)
    close_pairs = tree.query_pairs(r=distance)

    adj = collections.defaultdict(list)
    for i, j in close_pairs:
        adj[i].append(j)
        adj[j].append(i)

    groups = []
    visited = np.zeros(num_points, dtype=bool)
    for i in range(num_points):
        if visited[i]:
            continue
        # Breadth first walk over linked fits
        group = [i]
        visited[i] = True
        q = collections.deque([i])
        while q:
            u = q.popleft()
            for v in adj[u]:
                if not visited[v]:
                    visited[v] = True
                    group.append(v)
                    q.append(v)
        groups.append(sorted(group))
    return groups


def cluster_results(table, distance, min_size):
    """Label the rows of ``table`` with the cluster they belong to.

    Adds the columns cluster (-1 when the row's group has fewer than
    ``min_size`` members), cluster_x and cluster_y (cluster centroid) and
    cluster_n (cluster size). Returns the number of clusters.
    """
    num_rows = len(table)
    labels = np.full(num_rows, -1)
    centre_x = np.full(num_rows, np.nan)
    centre_y = np.full(num_rows, np.nan)
    sizes = np.zeros(num_rows, dtype=int)

    num_clusters = 0
    if num_rows > 0:
        positions = np.column_stack((table.column("x"), table.column("y")))
        for group in _linked_groups(positions, distance):
            if len(group) < min_size:
                continue
            centroid = positions[group].mean(axis=0)
            labels[group] = num_clusters
            centre_x[group] = centroid[0]
            centre_y[group] = centroid[1]
            sizes[group] = len(group)
            num_clusters += 1

    table.set_column("cluster", labels)
    table.set_column("cluster_x", centre_x)
    table.set_column("cluster_y", centre_y)
    table.set_column("cluster_n", sizes)
    return num_clusters


# --- Cluster task ---
def cluster(params):
    filename = params.name + "_fits.csv"
    if not os.path.isfile(filename):
        sys.exit(f"Unable to find file matching '{filename}'")
    table = read_results(filename)
    num_clusters = cluster_results(table, params.cluster_distance, params.cluster_min_size)

    if params.verbose:
        print(f"Number of clusters: {num_clusters}")

    table.write(params.name + "_clusters.csv")
    return table
