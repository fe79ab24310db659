"""Optimization with finite-difference derivatives, worker-group partitioning and Levenberg-Marquardt."""

__version__ = "0.1.0"

__all__ = [
    "algorithms",
    "partition",
    "recorders",
    "finite_differences",
    "solver",
    "least_squares",
    "problem",
    "levenberg_marquardt",
]