"""Flux definitions: plain, symbolic, neural and state fluxes."""

from .base import AbstractFlux, Flux, as_name, as_names
from .neural import NeuralFlux
from .state import StateFlux
from .symbolic import (
    HydroParameter,
    HydroVariable,
    StepFunc,
    SymbolicFlux,
    is_parameter,
    parameters,
    variables,
)

__all__ = [
    "AbstractFlux",
    "Flux",
    "NeuralFlux",
    "StateFlux",
    "SymbolicFlux",
    "HydroParameter",
    "HydroVariable",
    "StepFunc",
    "as_name",
    "as_names",
    "is_parameter",
    "parameters",
    "variables",
]
