"""Tests for the Bunch container and the exception hierarchy."""

import unittest

import jax
import jax.numpy as jnp
import numpy.testing as np_testing

jax.config.update("jax_enable_x64", True)

from hydromodels.core import (
    Bunch,
    ConstructionError,
    HydroModelError,
    MissingNameError,
    ValidationError,
)


class TestBunch(unittest.TestCase):
    """Test attribute access, merging and PyTree behaviour."""

    def test_attribute_access(self):
        """Keys are readable and writable as attributes."""
        b = Bunch(a=1.0)
        b.c = 3.0
        self.assertEqual(b.a, 1.0)
        self.assertEqual(b["c"], 3.0)
        del b.c
        self.assertNotIn("c", b)
        with self.assertRaises(AttributeError):
            _ = b.missing

    def test_from_nested(self):
        """Nested dicts become nested Bunches."""
        b = Bunch.from_nested({"params": {"k": 0.1}, "x": 2})
        self.assertIsInstance(b.params, Bunch)
        self.assertEqual(b.params.k, 0.1)
        self.assertEqual(b.x, 2)

    def test_merge_is_recursive_and_pure(self):
        """Merge combines nested mappings and leaves inputs untouched."""
        const = Bunch(params=Bunch(c=1.0, k=0.0), initstates=Bunch(S=0.0))
        tunable = Bunch(params=Bunch(k=0.3))
        merged = const.merge(tunable)

        self.assertEqual(merged.params.c, 1.0)
        self.assertEqual(merged.params.k, 0.3)
        self.assertEqual(merged.initstates.S, 0.0)
        self.assertEqual(const.params.k, 0.0)

    def test_pytree_keeps_insertion_order(self):
        """Leaves come out in insertion order, not sorted order."""
        b = Bunch(zeta=1.0, alpha=2.0, mid=3.0)
        self.assertEqual(jax.tree.leaves(b), [1.0, 2.0, 3.0])

        doubled = jax.tree.map(lambda x: x * 2, b)
        self.assertIsInstance(doubled, Bunch)
        self.assertEqual(list(doubled.keys()), ["zeta", "alpha", "mid"])

    def test_gradient_through_bunch(self):
        """Bunch works as a differentiable argument."""

        def f(p):
            return p.params.a ** 2 + 3.0 * p.params.b

        grads = jax.grad(f)(Bunch(params=Bunch(a=2.0, b=1.0)))
        np_testing.assert_allclose(grads.params.a, 4.0)
        np_testing.assert_allclose(grads.params.b, 3.0)

    def test_jit_with_bunch(self):
        """Bunch passes through jit."""
        f = jax.jit(lambda p: p.x + p.y)
        self.assertEqual(float(f(Bunch(x=jnp.array(1.0), y=2.0))), 3.0)


class TestExceptions(unittest.TestCase):
    """Test the exception hierarchy."""

    def test_hierarchy(self):
        """All errors derive from HydroModelError and ValueError."""
        for exc in (ConstructionError, ValidationError, MissingNameError):
            self.assertTrue(issubclass(exc, HydroModelError))
            self.assertTrue(issubclass(exc, ValueError))
        self.assertTrue(issubclass(MissingNameError, ValidationError))

    def test_missing_name_error_carries_name(self):
        """MissingNameError names the missing entry."""
        err = MissingNameError("Smax", "parameter", "params")
        self.assertEqual(err.name, "Smax")
        self.assertEqual(err.kind, "parameter")
        self.assertIn("Smax", str(err))
        self.assertIn("params", str(err))


if __name__ == "__main__":
    unittest.main()
