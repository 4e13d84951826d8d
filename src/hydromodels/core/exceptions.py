"""Exception hierarchy for hydromodels.

Construction errors are raised while a flux graph or bucket is being built;
validation errors are raised by a bucket call before any numeric work starts.
Numerical failures of the adaptive solver are not exceptions, see
:class:`hydromodels.solvers.result.SolverFailure`.
"""

from typing import Optional


class HydroModelError(Exception):
    """Base exception for all hydromodels errors."""

    pass


class ConstructionError(HydroModelError, ValueError):
    """Invalid model definition.

    Raised when:
    - fluxes depend on each other cyclically
    - two fluxes produce the same output, or two state fluxes own one state
    - a name is declared both as a flux output and as a state
    - a symbolic expression uses symbols that are neither inputs nor parameters
    """

    pass


class ValidationError(HydroModelError, ValueError):
    """Invalid call arguments: input shape, time index or container layout."""

    pass


class MissingNameError(ValidationError):
    """A name required by a bucket is absent from the supplied container."""

    def __init__(self, name: str, kind: str, where: Optional[str] = None):
        self.name = name
        self.kind = kind
        self.where = where
        location = f" in '{where}'" if where else ""
        super().__init__(f"Missing {kind} '{name}'{location}")
