#! /usr/bin/env python3
# -*- coding: utf-8 -*-
# vim:fenc=utf-8
#
# Copyright © 2020 Edward Higgins <ed.higgins@york.ac.uk>
#
# Distributed under terms of the MIT license.

""" PEAKFIT-SMT - Gaussian peak fitting for single molecule images

Description:
    Command line entry point. Tasks are given as words and parameters as
    key=value pairs, e.g.

        peakfit-smt simulate fit name=test num_procs=4 verbose=true

Contains:
    function main

Version: 0.1.0
"""

import sys

from . import clustering
from . import fitting
from . import simulation
from .parameters import Parameters


def main(argv=None):
    params = Parameters()
    params.read(sys.argv if argv is None else argv)

    if not params.task:
        params.help()
        sys.exit("ERROR: No task given")
    if not params.name:
        sys.exit("ERROR: No name given (name=...)")

    # Tasks run in the order given on the command line
    for task in params.task:
        if task == "simulate":
            simulation.simulate(params)
        elif task == "fit":
            fitting.fit(params)
        elif task == "cluster":
            clustering.cluster(params)


if __name__ == "__main__":
    main()
