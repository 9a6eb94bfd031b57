#! /usr/bin/env python3
# -*- coding: utf-8 -*-
# vim:fenc=utf-8
#
# Copyright © 2020 Edward Higgins <ed.higgins@york.ac.uk>
#
# Distributed under terms of the MIT license.

""" RESULTS - Fit records and the shared results table

Description:
    results.py contains the FitRecord class holding one accepted peak fit and
    its derived widths, and the ResultsTable that collects the records of a
    whole run. Frames may be fitted on several threads at once; every change
    to the table and its found/accepted counters happens under one lock.

Contains:
    class    FitRecord
    class    ResultsTable
    function read_results

Version: 0.1.0
"""

# --- Core library imports ---
import csv
import threading
import numpy as np

# FWHM = 2 sqrt(2 ln 2) sigma
SIGMA_TO_FWHM = 2.0 * np.sqrt(2.0 * np.log(2.0))


# --- One fitted peak ---
class FitRecord:
    def __init__(self, model, parameters, errors, r_squared, frame, residual_ssq=np.nan):
        parameters = model.check(parameters).copy()
        errors = model.check(errors).copy()

        # Gaussian is symmetric in the sign of sigma
        for i in model.width_indices:
            parameters[i] = abs(parameters[i])

        parameters.flags.writeable = False
        errors.flags.writeable = False

        self.model = model
        self.parameters = parameters
        self.errors = errors
        self.r_squared = float(r_squared)
        self.frame = frame
        self.residual_ssq = float(residual_ssq)

    # Look up a parameter by name, e.g. record["x"]
    def __getitem__(self, name):
        return self.parameters[self.model.names.index(name)]

    def error(self, name):
        return self.errors[self.model.names.index(name)]

    # Table row, in column order
    def as_row(self):
        names = self.model.names
        p = self.parameters
        e = self.errors
        row = {}

        for name, value in zip(names, p):
            row[name] = value

        widths = [p[i] * SIGMA_TO_FWHM for i in self.model.width_indices]
        width_errors = [e[i] * SIGMA_TO_FWHM for i in self.model.width_indices]

        if len(widths) == 1:
            row["fwhm"] = widths[0]
        else:
            row["fwhm_x"] = widths[0]
            row["fwhm_y"] = widths[1]
            row["fwhm"] = (widths[0] + widths[1]) / 2

        for name, value in zip(names, e):
            row["error_" + name] = value

        if len(width_errors) == 1:
            row["error_fwhm"] = width_errors[0]
        else:
            row["error_fwhm_x"] = width_errors[0]
            row["error_fwhm_y"] = width_errors[1]
            row["error_fwhm"] = np.sqrt(width_errors[0] ** 2 + width_errors[1] ** 2) / 2

        row["slice"] = self.frame
        row["r_squared"] = self.r_squared
        row["residual_ssq"] = self.residual_ssq
        return row

    def __repr__(self):
        values = ", ".join(f"{n}={v:.4g}" for n, v in zip(self.model.names, self.parameters))
        return f"FitRecord(frame={self.frame}, {values}, r_squared={self.r_squared:.4g})"


# --- Run-wide table of accepted fits ---
class ResultsTable:
    def __init__(self):
        self._lock = threading.Lock()
        self.columns = []
        self.rows = []
        self.num_found = 0
        self.num_accepted = 0

    def __len__(self):
        return len(self.rows)

    # Clear rows and counters at the start of a run
    def reset(self):
        with self._lock:
            self.columns = []
            self.rows = []
            self.num_found = 0
            self.num_accepted = 0

    # Append one frame's records and counts as a single step
    def add_frame(self, records, num_found, num_accepted):
        new_rows = [record.as_row() for record in records]
        with self._lock:
            for row in new_rows:
                self._add_row(row)
            self.num_found += num_found
            self.num_accepted += num_accepted

    def add_row(self, row):
        with self._lock:
            self._add_row(dict(row))

    # Caller holds the lock
    def _add_row(self, row):
        for name in row:
            if name not in self.columns:
                self.columns.append(name)
        self.rows.append(row)

    # All values of one column, NaN where a row has none
    def column(self, name):
        if name not in self.columns:
            raise KeyError(f"No column '{name}' in results table")
        return np.array([row.get(name, np.nan) for row in self.rows])

    def set_column(self, name, values):
        if len(values) != len(self.rows):
            raise ValueError(f"Column '{name}' needs {len(self.rows)} values, got {len(values)}")
        with self._lock:
            if name not in self.columns:
                self.columns.append(name)
            for row, value in zip(self.rows, values):
                row[name] = value

    # Write the table as tab separated text with a header row
    def write(self, filename):
        with open(filename, "w", newline="") as f:
            writer = csv.writer(f, delimiter="\t")
            writer.writerow(self.columns)
            for row in self.rows:
                writer.writerow([row.get(name, np.nan) for name in self.columns])


# Read a table written by ResultsTable.write
def read_results(filename):
    table = ResultsTable()
    with open(filename, newline="") as f:
        reader = csv.reader(f, delimiter="\t")
        header = next(reader, None)
        if header is None:
            return table
        table.columns = list(header)
        for line in reader:
            if not line:
                continue
            table.rows.append({name: float(value) for name, value in zip(header, line)})
    return table
