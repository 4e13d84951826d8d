"""Numerical solvers for buckets."""

from .base import AbstractSolver
from .diffrax import DiffraxSolver
from .native import BoundedSolver, Euler, Heun, NativeSolver, RungeKutta4
from .result import SolverFailure, is_failure

__all__ = [
    "AbstractSolver",
    "NativeSolver",
    "DiffraxSolver",
    "Euler",
    "Heun",
    "RungeKutta4",
    "BoundedSolver",
    "SolverFailure",
    "is_failure",
]
