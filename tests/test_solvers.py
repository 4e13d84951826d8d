"""Tests for native fixed-step solvers and the Diffrax wrapper."""

import unittest

import diffrax
import jax
import jax.numpy as jnp
import numpy.testing as np_testing

jax.config.update("jax_enable_x64", True)

from hydromodels.solvers import (
    BoundedSolver,
    DiffraxSolver,
    Euler,
    Heun,
    RungeKutta4,
    SolverFailure,
    is_failure,
)


def decay(u, p, t):
    return -u


class TestNativeSolvers(unittest.TestCase):
    """Test fixed-step integration on du/dt = -u."""

    def setUp(self):
        self.u0 = jnp.array([1.0])

    def test_trajectory_layout(self):
        """Time axis is last and the first column is the initial state."""
        ts = jnp.arange(5.0)
        traj = Euler()(decay, None, jnp.array([[1.0, 2.0], [3.0, 4.0]]), ts)
        self.assertEqual(traj.shape, (2, 2, 5))
        np_testing.assert_array_equal(traj[..., 0], [[1.0, 2.0], [3.0, 4.0]])

    def test_euler_step(self):
        """One Euler step per interval of the time index."""
        traj = Euler()(decay, None, self.u0, jnp.array([0.0, 0.5, 1.5]))
        np_testing.assert_allclose(traj[0], [1.0, 0.5, 0.0])

    def test_convergence_order(self):
        """Higher-order methods are more accurate on the same grid."""
        ts = jnp.linspace(0.0, 1.0, 11)
        exact = jnp.exp(-1.0)
        errors = [
            abs(float(solver(decay, None, self.u0, ts)[0, -1]) - float(exact))
            for solver in (Euler(), Heun(), RungeKutta4())
        ]
        self.assertGreater(errors[0], errors[1])
        self.assertGreater(errors[1], errors[2])
        self.assertLess(errors[2], 1e-5)

    def test_time_dependent_rhs(self):
        """The solver passes the stage times to the right-hand side."""
        ts = jnp.linspace(0.0, 2.0, 21)
        traj = RungeKutta4()(lambda u, p, t: 2.0 * t * jnp.ones_like(u), None, jnp.zeros(1), ts)
        np_testing.assert_allclose(traj[0], ts ** 2, atol=1e-12)

    def test_parameters_reach_rhs(self):
        traj = Euler()(lambda u, p, t: p["k"] * jnp.ones_like(u), {"k": 2.0}, jnp.zeros(1), jnp.arange(3.0))
        np_testing.assert_allclose(traj[0], [0.0, 2.0, 4.0])

    def test_deterministic(self):
        ts = jnp.linspace(0.0, 3.0, 31)
        a = Heun()(decay, None, self.u0, ts)
        b = Heun()(decay, None, self.u0, ts)
        np_testing.assert_array_equal(a, b)

    def test_single_time_point(self):
        traj = Euler()(decay, None, self.u0, jnp.array([0.0]))
        np_testing.assert_array_equal(traj, [[1.0]])

    def test_bounded_solver(self):
        """States are clipped after every step."""
        drain = lambda u, p, t: -2.0 * jnp.ones_like(u)
        ts = jnp.arange(4.0)
        free = Euler()(drain, None, self.u0, ts)
        bounded = BoundedSolver(Euler(), low=0.0)(drain, None, self.u0, ts)
        self.assertLess(float(free[0, -1]), 0.0)
        np_testing.assert_allclose(bounded[0], [1.0, 0.0, 0.0, 0.0])

    def test_gradient(self):
        """Trajectories are differentiable w.r.t. parameters."""
        ts = jnp.linspace(0.0, 1.0, 11)

        def final(k):
            return RungeKutta4()(lambda u, p, t: -p * u, k, self.u0, ts)[0, -1]

        np_testing.assert_allclose(jax.grad(final)(1.0), -jnp.exp(-1.0), rtol=1e-5)


class TestDiffraxSolver(unittest.TestCase):
    """Test the adaptive solver wrapper."""

    def test_positive_derivative_gives_increasing_state(self):
        """A positive right-hand side integrates successfully and monotonically."""
        ts = jnp.linspace(0.0, 2.0, 21)
        traj = DiffraxSolver()(lambda u, p, t: 1.0 + 0.5 * u, None, jnp.zeros(1), ts)

        self.assertFalse(is_failure(traj))
        self.assertEqual(traj.shape, (1, 21))
        self.assertTrue(bool(jnp.all(jnp.diff(traj[0]) > 0)))
        np_testing.assert_allclose(traj[0], 2.0 * (jnp.exp(ts / 2.0) - 1.0), rtol=1e-2, atol=1e-3)

    def test_accuracy_with_tight_tolerance(self):
        ts = jnp.linspace(0.0, 1.0, 5)
        traj = DiffraxSolver(rtol=1e-8, atol=1e-8)(decay, None, jnp.ones(1), ts)
        np_testing.assert_allclose(traj[0], jnp.exp(-ts), rtol=1e-6)

    def test_custom_solver(self):
        ts = jnp.linspace(0.0, 1.0, 5)
        solver = DiffraxSolver(diffrax.Dopri5(), rtol=1e-6, atol=1e-6)
        traj = solver(decay, None, jnp.ones((2, 3)), ts)
        self.assertEqual(traj.shape, (2, 3, 5))

    def test_failure_is_a_sentinel(self):
        """Exhausting the step budget returns a falsy SolverFailure and logs."""
        ts = jnp.linspace(0.0, 50.0, 51)
        solver = DiffraxSolver(max_steps=2)
        with self.assertLogs("hydromodels.solvers.diffrax", level="ERROR"):
            result = solver(lambda u, p, t: jnp.cos(t) * u, None, jnp.ones(1), ts)
        self.assertIsInstance(result, SolverFailure)
        self.assertFalse(result)
        self.assertTrue(is_failure(result))

    def test_failure_under_jit_is_nan(self):
        """Under tracing a failed run yields a NaN trajectory."""
        ts = jnp.linspace(0.0, 50.0, 51)
        solver = DiffraxSolver(max_steps=2)
        run = jax.jit(lambda u0: solver(lambda u, p, t: jnp.cos(t) * u, None, u0, ts))
        self.assertTrue(bool(jnp.all(jnp.isnan(run(jnp.ones(1))))))


if __name__ == "__main__":
    unittest.main()
