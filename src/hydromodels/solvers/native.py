"""Native fixed-step solvers.

One step is taken per interval of the time index, ``dt_i = t_{i+1} - t_i``,
inside ``jax.lax.scan``. The trajectory starts with the initial state at
``t_0``, so column ``i`` is the state at ``t_i``. Runs are deterministic and
fully differentiable.
"""

from typing import Callable

import jax
import jax.numpy as jnp

from ..core.bunch import Bunch
from .base import AbstractSolver


class NativeSolver(AbstractSolver):
    """Base class for fixed-step solvers implemented with ``lax.scan``.

    Subclasses implement :meth:`step`; integration over the time index is
    shared.
    """

    def step(
        self,
        du_func: Callable,
        t: float,
        state: jnp.ndarray,
        dt: float,
        pas: Bunch,
    ) -> jnp.ndarray:
        """Single integration step.

        Args:
            du_func: Right-hand side ``(u, p, t) -> du``
            t: Current time
            state: Current state [n_states] or [n_states, n_nodes]
            dt: Time step
            pas: Parameter container

        Returns:
            next_state: State at ``t + dt``, same shape as ``state``
        """
        raise NotImplementedError("Subclasses must implement step()")

    def __call__(self, du_func, pas, initstates, timeidx):
        timeidx = jnp.asarray(timeidx)
        u0 = jnp.asarray(initstates)
        u0 = u0.astype(jnp.result_type(u0.dtype, timeidx.dtype, float))

        def scan_step(state, interval):
            t, dt = interval
            next_state = self.step(du_func, t, state, dt, pas)
            return next_state, next_state

        dts = jnp.diff(timeidx)
        _, states = jax.lax.scan(scan_step, u0, (timeidx[:-1], dts))
        trajectory = jnp.concatenate([u0[None], states], axis=0)
        return jnp.moveaxis(trajectory, 0, -1)


class Euler(NativeSolver):
    """Explicit Euler method, the default solver."""

    def step(self, du_func, t, state, dt, pas):
        """Euler step: ``u_{n+1} = u_n + dt * f(u_n, p, t_n)``."""
        return state + dt * du_func(state, pas, t)


class Heun(NativeSolver):
    """Heun's method (improved Euler).

    Two-stage method with predictor-corrector structure.
    """

    def step(self, du_func, t, state, dt, pas):
        # Predictor
        k1 = du_func(state, pas, t)
        y_pred = state + dt * k1

        # Corrector: average slope at both ends
        k2 = du_func(y_pred, pas, t + dt)
        return state + dt * 0.5 * (k1 + k2)


class RungeKutta4(NativeSolver):
    """Classical 4th order Runge-Kutta method (RK4).

    The two midpoint stages read the forcing at ``t + dt/2`` through the
    input interpolation.
    """

    def step(self, du_func, t, state, dt, pas):
        k1 = du_func(state, pas, t)
        k2 = du_func(state + 0.5 * dt * k1, pas, t + 0.5 * dt)
        k3 = du_func(state + 0.5 * dt * k2, pas, t + 0.5 * dt)
        k4 = du_func(state + dt * k3, pas, t + dt)
        return state + (dt / 6.0) * (k1 + 2.0 * k2 + 2.0 * k3 + k4)


class BoundedSolver(NativeSolver):
    """Wrapper that enforces hard bounds on solver output via clipping.

    Wraps any native solver and clips each new state to the given bounds,
    e.g. to keep storages non-negative. Bounds broadcast against the state:
    a scalar, one value per state [n_states, 1] for multi-node runs, or
    [n_states] for single-node runs.

    Example:
        >>> solver = BoundedSolver(Euler(), low=0.0)
    """

    def __init__(
        self,
        base_solver: NativeSolver,
        low: float | jnp.ndarray = -jnp.inf,
        high: float | jnp.ndarray = jnp.inf,
    ):
        self.base_solver = base_solver
        self.low = low
        self.high = high

    def step(self, du_func, t, state, dt, pas):
        next_state = self.base_solver.step(du_func, t, state, dt, pas)
        return jnp.clip(next_state, self.low, self.high)
