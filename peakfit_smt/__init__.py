""" PEAKFIT-SMT - Gaussian peak fitting for single molecule images """

__version__ = "0.2.1"
