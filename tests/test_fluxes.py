"""Tests for plain, symbolic, neural and state fluxes."""

import unittest

import equinox as eqx
import jax
import jax.numpy as jnp
import numpy.testing as np_testing

jax.config.update("jax_enable_x64", True)

from hydromodels.core import Bunch, ConstructionError, MissingNameError, ValidationError
from hydromodels.fluxes import (
    Flux,
    NeuralFlux,
    StateFlux,
    StepFunc,
    SymbolicFlux,
    parameters,
    variables,
)
from hydromodels.functions import step_func


def two_output_flux():
    return Flux(
        ["a", "b"],
        ["c", "d"],
        ["p1", "p2"],
        func=[
            lambda i, p: i[0] * p[0] + i[1] * p[1],
            lambda i, p: i[0] / p[0] + i[1] / p[1],
        ],
    )


class TestFlux(unittest.TestCase):
    """Test the callable-based flux."""

    def setUp(self):
        self.flux = two_output_flux()
        self.x = jnp.array([2.0, 3.0])
        self.p = jnp.array([3.0, 4.0])

    def test_names(self):
        """Declared names are kept in order."""
        self.assertEqual(self.flux.input_names, ("a", "b"))
        self.assertEqual(self.flux.output_names, ("c", "d"))
        self.assertEqual(self.flux.param_names, ("p1", "p2"))
        self.assertEqual(self.flux.nn_names, ())

    def test_single_sample(self):
        """A vector input gives one value per output."""
        out = self.flux(self.x, self.p)
        np_testing.assert_allclose(out, [18.0, 2.0 / 3.0 + 3.0 / 4.0])

    def test_vectorization_consistency(self):
        """A batch of repeated samples repeats the single-sample output."""
        single = self.flux(self.x, self.p)
        batch = self.flux(jnp.tile(self.x[:, None], (1, 7)), self.p)
        self.assertEqual(batch.shape, (2, 7))
        for k in range(7):
            np_testing.assert_array_equal(batch[:, k], single)

    def test_params_from_container(self):
        """Parameters can be given by name, with or without the params level."""
        expected = self.flux(self.x, self.p)
        flat = Bunch(p1=3.0, p2=4.0)
        nested = Bunch(params=Bunch(p2=4.0, p1=3.0))
        np_testing.assert_allclose(self.flux(self.x, flat), expected)
        np_testing.assert_allclose(self.flux(self.x, nested), expected)

    def test_missing_param_in_container(self):
        """A missing parameter name is reported."""
        with self.assertRaises(MissingNameError) as ctx:
            self.flux(self.x, Bunch(params=Bunch(p1=3.0)))
        self.assertEqual(ctx.exception.name, "p2")

    def test_wrong_input_rows(self):
        """Input row count must match the declared inputs."""
        with self.assertRaises(ValidationError):
            self.flux(jnp.ones(3), self.p)
        with self.assertRaises(ValidationError):
            self.flux(self.x, jnp.ones(3))

    def test_single_function_returning_list(self):
        """One callable may return all outputs."""
        flux = Flux(["a"], ["b", "c"], func=lambda i, p: [2.0 * i[0], -i[0]])
        np_testing.assert_allclose(flux(jnp.array([1.5])), [3.0, -1.5])

    def test_output_count_mismatch(self):
        """Returning the wrong number of outputs is an error."""
        flux = Flux(["a"], ["b", "c"], func=lambda i, p: [i[0]])
        with self.assertRaises(ValidationError):
            flux(jnp.array([1.0]))
        with self.assertRaises(ConstructionError):
            Flux(["a"], ["b", "c"], func=[lambda i, p: i[0]])

    def test_missing_function(self):
        with self.assertRaises(ConstructionError):
            Flux(["a"], ["b"])


class TestSymbolicFlux(unittest.TestCase):
    """Test sympy expressions compiled to JAX."""

    def setUp(self):
        self.a, self.b, self.c, self.d = variables("a b c d")
        self.p1, self.p2 = parameters("p1 p2")

    def test_matches_callable_flux(self):
        """Compiled expressions agree with the equivalent callables."""
        a, b, c, d, p1, p2 = self.a, self.b, self.c, self.d, self.p1, self.p2
        flux = SymbolicFlux(
            [a, b], [c, d], [a * p1 + b * p2, a / p1 + b / p2], params=[p1, p2]
        )
        self.assertEqual(flux.input_names, ("a", "b"))
        self.assertEqual(flux.output_names, ("c", "d"))
        self.assertEqual(flux.param_names, ("p1", "p2"))

        x = jnp.array([[2.0, 1.0, -3.0], [3.0, 0.5, 4.0]])
        p = jnp.array([3.0, 4.0])
        np_testing.assert_allclose(flux(x, p), two_output_flux()(x, p))

    def test_parameter_detection(self):
        """Parameters are found among the free symbols."""
        flux = SymbolicFlux([self.a], [self.c], self.a * self.p2 + self.p1)
        self.assertEqual(set(flux.param_names), {"p1", "p2"})

    def test_undeclared_symbol(self):
        """A free variable that is not an input fails at construction."""
        with self.assertRaises(ConstructionError):
            SymbolicFlux([self.a], [self.c], self.a * self.b)

    def test_expression_count(self):
        with self.assertRaises(ConstructionError):
            SymbolicFlux([self.a], [self.c, self.d], [self.a])

    def test_min_max_and_step(self):
        """Max, Min and the smooth step compile to their JAX counterparts."""
        import sympy

        a, b, c = self.a, self.b, self.c
        flux = SymbolicFlux(
            [a, b],
            [c],
            sympy.Max(0, a - b) + sympy.Min(a, b) * StepFunc(a),
            params=[],
        )
        x = jnp.array([[3.0, -1.0, 0.2], [1.0, 2.0, 0.5]])
        expected = jnp.maximum(0.0, x[0] - x[1]) + jnp.minimum(x[0], x[1]) * step_func(x[0])
        np_testing.assert_allclose(flux(x)[0], expected)

    def test_from_equations(self):
        import sympy

        flux = SymbolicFlux.from_equations(
            [self.a], [sympy.Eq(self.c, 2 * self.a * self.p1)]
        )
        np_testing.assert_allclose(flux(jnp.array([1.5]), Bunch(p1=2.0)), [6.0])

    def test_gradient(self):
        """Compiled fluxes are differentiable w.r.t. parameters."""
        flux = SymbolicFlux([self.a], [self.c], self.a * self.p1 ** 2)
        grad = jax.grad(lambda p: flux(jnp.array([3.0]), p)[0])(jnp.array([2.0]))
        np_testing.assert_allclose(grad, [12.0])


class LinearNet:
    """Minimal network exposing the matrix ``apply`` contract."""

    def apply(self, x, weights):
        return weights[None, :2] @ x + weights[2]

    def init_params(self):
        return jnp.array([1.0, -1.0, 0.5])


class TestNeuralFlux(unittest.TestCase):
    """Test neural fluxes with a flat weight vector."""

    def setUp(self):
        self.mlp = eqx.nn.MLP(
            in_size=2, out_size=1, width_size=4, depth=1, key=jax.random.PRNGKey(0)
        )
        self.flux = NeuralFlux(["S", "temp"], ["q"], self.mlp, name="qnn")
        self.x = jax.random.normal(jax.random.PRNGKey(1), (2, 6))

    def test_names(self):
        self.assertEqual(self.flux.nn_names, ("qnn",))
        self.assertEqual(self.flux.param_names, ())

    def test_matches_module(self):
        """Evaluation with the initial weights equals calling the module."""
        weights = self.flux.init_params()
        out = self.flux(self.x, Bunch(nn=Bunch(qnn=weights)))
        expected = jax.vmap(self.mlp, in_axes=1, out_axes=1)(self.x)
        self.assertEqual(out.shape, (1, 6))
        np_testing.assert_allclose(out, expected, rtol=1e-10)

    def test_explicit_weights(self):
        """Explicit weights override the container."""
        weights = self.flux.init_params()
        np_testing.assert_allclose(
            self.flux(self.x, nn_params=weights),
            self.flux(self.x, Bunch(nn=Bunch(qnn=weights))),
        )

    def test_missing_weights(self):
        with self.assertRaises(MissingNameError):
            self.flux(self.x, Bunch(nn=Bunch()))

    def test_evaluate_without_weights(self):
        """Evaluating without weights is a per-call validation error."""
        with self.assertRaises(ValidationError):
            self.flux.evaluate(self.x[:, 0], jnp.zeros((0,)), None)

    def test_apply_object(self):
        """Objects with apply(matrix, weights) are supported."""
        flux = NeuralFlux(["a", "b"], ["c"], LinearNet(), name="lin")
        x = jnp.array([[1.0, 2.0], [3.0, 5.0]])
        out = flux(x, Bunch(nn=Bunch(lin=flux.init_params())))
        np_testing.assert_allclose(out, [[-1.5, -2.5]])

    def test_invalid_model(self):
        with self.assertRaises(ConstructionError):
            NeuralFlux(["a"], ["b"], object())


class TestStateFlux(unittest.TestCase):
    """Test state fluxes."""

    def test_names(self):
        sflux = StateFlux("S", inflows=["a", "b"], outflows=["c"])
        self.assertEqual(sflux.state_names, ("S",))
        self.assertEqual(sflux.input_names, ("a", "b", "c"))
        self.assertEqual(sflux.output_names, ())

    def test_mass_balance(self):
        """The derivative is sum(inflows) - sum(outflows)."""
        sflux = StateFlux("S", inflows=["a", "b"], outflows=["c"])
        for a, b, c in [(1.0, 2.0, 0.5), (-3.0, 0.0, 0.0), (0.0, 0.0, -4.5), (2.5, -7.0, 1.25)]:
            out = sflux(jnp.array([a, b, c]))
            self.assertEqual(float(out[0]), a + b - c)

    def test_mass_balance_batch(self):
        sflux = StateFlux("S", inflows=["a"], outflows=["b", "c"])
        x = jnp.array([[1.0, 2.0], [0.5, 0.0], [0.25, 3.0]])
        np_testing.assert_allclose(sflux(x), [[0.25, -1.0]])

    def test_symbolic_expression(self):
        """A sympy expression with its own inputs and parameters."""
        S, P, Q = variables("S P Q")
        (k,) = parameters("k")
        sflux = StateFlux(S, inputs=[P, Q], expr=P - k * Q)
        self.assertEqual(sflux.param_names, ("k",))
        out = sflux(jnp.array([3.0, 2.0]), Bunch(params=Bunch(k=0.5)))
        np_testing.assert_allclose(out, [2.0])

    def test_callable_expression(self):
        sflux = StateFlux("S", inputs=["P"], params=["k"], expr=lambda i, p: p[0] * i[0])
        np_testing.assert_allclose(sflux(jnp.array([4.0]), jnp.array([0.25])), [1.0])

    def test_invalid_definitions(self):
        with self.assertRaises(ConstructionError):
            StateFlux("S", inflows=["a"], inputs=["b"], expr=lambda i, p: i[0])
        with self.assertRaises(ConstructionError):
            StateFlux("S", inputs=["a"])


if __name__ == "__main__":
    unittest.main()
