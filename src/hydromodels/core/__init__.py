from .bunch import Bunch
from .exceptions import (
    ConstructionError,
    HydroModelError,
    MissingNameError,
    ValidationError,
)

__all__ = [
    "Bunch",
    "ConstructionError",
    "HydroModelError",
    "MissingNameError",
    "ValidationError",
]
