"""Named container with attribute access and JAX PyTree support.

Parameters, initial states, neural-network weights and run configuration are
all passed around as nested ``Bunch`` objects, e.g.::

    pas = Bunch(
        params=Bunch(Smax=1700.0, Qmax=18.0),
        initstates=Bunch(soilwater=1300.0),
    )
"""

from typing import Any, Mapping, Tuple

import jax


class Bunch(dict):
    """Dictionary with attribute access for parameters and states.

    Keys keep their insertion order, also through JAX transformations, so the
    order of parameter types in a multi-node container is the node order.

    Examples:
        >>> pas = Bunch(params=Bunch(k=0.1), initstates=Bunch(S=0.0))
        >>> pas.params.k
        0.1
        >>> pas["initstates"]["S"]
        0.0
        >>> jax.tree.map(lambda x: x * 2, pas).params.k
        0.2
    """

    def __getattr__(self, key: str) -> Any:
        try:
            return self[key]
        except KeyError:
            raise AttributeError(
                f"'{self.__class__.__name__}' object has no attribute '{key}'"
            )

    def __setattr__(self, key: str, value: Any) -> None:
        self[key] = value

    def __delattr__(self, key: str) -> None:
        try:
            del self[key]
        except KeyError:
            raise AttributeError(
                f"'{self.__class__.__name__}' object has no attribute '{key}'"
            )

    def __repr__(self) -> str:
        items = ", ".join(f"{k}={v!r}" for k, v in self.items())
        return f"{self.__class__.__name__}({items})"

    def copy(self) -> "Bunch":
        """Create a shallow copy of the Bunch."""
        return Bunch(super().copy())

    @classmethod
    def from_nested(cls, mapping: Mapping) -> "Bunch":
        """Convert nested plain dicts into nested Bunch objects."""
        return cls(
            (k, cls.from_nested(v) if isinstance(v, Mapping) else v)
            for k, v in mapping.items()
        )

    def merge(self, other: Mapping) -> "Bunch":
        """Recursively merge ``other`` into a copy of this Bunch.

        Values of ``other`` win, except where both sides hold a mapping, in
        which case the two mappings are merged. Neither input is modified.

        Examples:
            >>> tunable = Bunch(params=Bunch(k=0.3))
            >>> const = Bunch(params=Bunch(c=1.0), initstates=Bunch(S=0.0))
            >>> const.merge(tunable)
            Bunch(params=Bunch(c=1.0, k=0.3), initstates=Bunch(S=0.0))
        """
        merged = self.copy()
        for key, value in other.items():
            current = merged.get(key)
            if isinstance(current, Mapping) and isinstance(value, Mapping):
                merged[key] = Bunch(current).merge(value)
            else:
                merged[key] = value
        return merged


# Register Bunch as a JAX PyTree
def _bunch_tree_flatten(bunch: Bunch) -> Tuple[Tuple[Any, ...], Tuple[str, ...]]:
    """Flatten Bunch into values and keys, keeping insertion order."""
    keys = tuple(bunch.keys())
    values = tuple(bunch[key] for key in keys)
    return values, keys


def _bunch_tree_unflatten(keys: Tuple[str, ...], values: Tuple[Any, ...]) -> Bunch:
    """Reconstruct Bunch from keys and values for JAX PyTree."""
    return Bunch(zip(keys, values))


jax.tree_util.register_pytree_node(Bunch, _bunch_tree_flatten, _bunch_tree_unflatten)
