"""hydromodels - Lumped hydrological models on JAX."""

try:
    from importlib.metadata import version
    __version__ = version("hydromodels")
except Exception:
    __version__ = "unknown"

from .bucket import HydroBucket
from .core import (
    Bunch,
    ConstructionError,
    HydroModelError,
    MissingNameError,
    ValidationError,
)
from .fluxes import (
    Flux,
    NeuralFlux,
    StateFlux,
    StepFunc,
    SymbolicFlux,
    parameters,
    variables,
)
from .solvers import (
    BoundedSolver,
    DiffraxSolver,
    Euler,
    Heun,
    RungeKutta4,
    SolverFailure,
    is_failure,
)
from .unit import HydroUnit

__all__ = [
    "Bunch",
    "ConstructionError",
    "HydroModelError",
    "MissingNameError",
    "ValidationError",
    "Flux",
    "NeuralFlux",
    "StateFlux",
    "StepFunc",
    "SymbolicFlux",
    "parameters",
    "variables",
    "HydroBucket",
    "HydroUnit",
    "BoundedSolver",
    "DiffraxSolver",
    "Euler",
    "Heun",
    "RungeKutta4",
    "SolverFailure",
    "is_failure",
]
