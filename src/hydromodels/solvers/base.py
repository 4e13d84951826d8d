"""Base solver classes.

Every solver integrates ``du/dt = du_func(u, p, t)`` from an initial state
and reports the state at each point of a time index::

    trajectory = solver(du_func, pas, initstates, timeidx)

``initstates`` has shape [n_states] or [n_states, n_nodes]; the trajectory
appends the time axis last, [n_states, (n_nodes,) n_times]. A solver may
instead return a :class:`~hydromodels.solvers.result.SolverFailure`.
"""

from abc import ABC, abstractmethod
from typing import Callable

import jax.numpy as jnp

from ..core.bunch import Bunch


class AbstractSolver(ABC):
    """Base class for all solver types."""

    @abstractmethod
    def __call__(
        self,
        du_func: Callable,
        pas: Bunch,
        initstates: jnp.ndarray,
        timeidx: jnp.ndarray,
    ):
        """Integrate over ``timeidx``.

        Args:
            du_func: Right-hand side ``(u, p, t) -> du`` with ``du.shape == u.shape``
            pas: Parameter container, passed through to ``du_func``
            initstates: State at ``timeidx[0]``
            timeidx: Strictly increasing time points [n_times]

        Returns:
            Trajectory [*initstates.shape, n_times] or a SolverFailure
        """
        pass
