"""Adaptive integration delegated to Diffrax."""

import logging

import diffrax
import jax
import jax.numpy as jnp
from diffrax import SaveAt

from .base import AbstractSolver
from .result import SolverFailure

logger = logging.getLogger(__name__)


class DiffraxSolver(AbstractSolver):
    """Wrapper for Diffrax solvers with adaptive step size control.

    The solution is saved exactly at the time index of the run. Failures
    (step budget exhausted, step size collapse, ...) never raise: called
    eagerly the solver logs an error and returns a :class:`SolverFailure`;
    under ``jit``/``grad`` the trajectory is NaN-filled instead so that any
    loss computed from it is non-finite.

    Example:
        >>> solver = DiffraxSolver(rtol=1e-6, atol=1e-6)
        >>> solver = DiffraxSolver(diffrax.Kvaerno5(), max_steps=16384)
    """

    def __init__(
        self,
        solver=None,
        # Common parameters made explicit
        rtol: float = 1e-3,
        atol: float = 1e-3,
        dt0=None,
        max_steps: int = 4096,
        stepsize_controller=None,
        # Forward everything else
        **kwargs,
    ):
        """Initialize with a Diffrax solver instance and options.

        Args:
            solver: Diffrax solver instance, defaults to ``diffrax.Tsit5()``
            rtol: Relative tolerance of the default PID controller
            atol: Absolute tolerance of the default PID controller
            dt0: Initial step size, None lets Diffrax choose
            max_steps: Maximum number of integration steps
            stepsize_controller: Replaces the default PID controller
            **kwargs: Additional arguments passed to diffeqsolve (e.g. adjoint)
        """
        self.solver = solver if solver is not None else diffrax.Tsit5()
        self.stepsize_controller = (
            stepsize_controller
            if stepsize_controller is not None
            else diffrax.PIDController(rtol=rtol, atol=atol)
        )
        self.dt0 = dt0
        self.max_steps = max_steps

        # Store additional kwargs for diffeqsolve
        self.diffrax_kwargs = kwargs

    def __call__(self, du_func, pas, initstates, timeidx):
        timeidx = jnp.asarray(timeidx)
        u0 = jnp.asarray(initstates)
        u0 = u0.astype(jnp.result_type(u0.dtype, timeidx.dtype, float))

        term = diffrax.ODETerm(lambda t, u, args: du_func(u, args, t))
        sol = diffrax.diffeqsolve(
            term,
            self.solver,
            t0=timeidx[0],
            t1=timeidx[-1],
            dt0=self.dt0,
            y0=u0,
            args=pas,
            saveat=SaveAt(ts=timeidx),
            stepsize_controller=self.stepsize_controller,
            max_steps=self.max_steps,
            throw=False,
            **self.diffrax_kwargs,
        )
        success = sol.result == diffrax.RESULTS.successful
        trajectory = jnp.moveaxis(sol.ys, 0, -1)

        try:
            ok = bool(success)
        except jax.errors.ConcretizationTypeError:
            return jnp.where(success, trajectory, jnp.nan)

        if not ok:
            message = diffrax.RESULTS[sol.result]
            logger.error("Adaptive integration failed: %s", message)
            return SolverFailure(f"diffrax: {message}", sol.result)
        return trajectory
