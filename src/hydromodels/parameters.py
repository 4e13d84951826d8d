"""Parameter and state extraction from named containers.

A bucket resolves its ordered parameter, state and neural-module names
against a container once per call and builds small extractor closures that
turn the container into dense arrays. The closures index by name only, so
they can be applied to a traced copy of the container and gradients flow
back to the named leaves.

Single-node layout::

    Bunch(params=Bunch(k=0.1, Smax=10.0), initstates=Bunch(S=1.0))

Multi-node layout, one entry per parameter/state type::

    Bunch(
        params=Bunch(hill=Bunch(k=0.1, Smax=10.0), valley=Bunch(k=0.2, Smax=5.0)),
        initstates=Bunch(hill=Bunch(S=1.0), valley=Bunch(S=0.0)),
    )
"""

from collections.abc import Mapping
from typing import Callable, Iterable, Optional, Sequence, Tuple

import jax.numpy as jnp
from plum import dispatch

from .core.exceptions import MissingNameError, ValidationError


def check_names(
    required: Iterable[str],
    available: Mapping,
    kind: str,
    where: Optional[str] = None,
) -> None:
    """Raise :class:`MissingNameError` for the first required name not available."""
    for name in required:
        if name not in available:
            raise MissingNameError(name, kind, where)


def _section(pas: Mapping, key: str) -> Mapping:
    if not isinstance(pas, Mapping) or key not in pas:
        raise MissingNameError(key, "container section")
    section = pas[key]
    if not isinstance(section, Mapping):
        raise ValidationError(f"Container section '{key}' must be a mapping")
    return section


def _check_typed(
    names: Sequence[str], section: Mapping, types: Sequence[str], key: str, kind: str
) -> None:
    for type_name in types:
        if type_name not in section:
            raise MissingNameError(type_name, f"{kind} type", key)
        if not isinstance(section[type_name], Mapping):
            raise ValidationError(
                f"'{key}.{type_name}' is not a {kind} type; multi-node runs need "
                f"one mapping of {kind}s per type"
            )
        check_names(names, section[type_name], kind, f"{key}.{type_name}")


def get_param_extractor(
    names: Sequence[str], pas: Mapping, ptypes: Optional[Sequence[str]] = None
) -> Callable:
    """Build ``p -> parameter array`` for the given names.

    Returns a vector [n_params] for a single-node container, or a matrix
    [n_types, n_params] when ``ptypes`` is given.

    Raises:
        MissingNameError: if a parameter or parameter type is absent
    """
    names = tuple(names)
    if ptypes is None:
        if names:
            check_names(names, _section(pas, "params"), "parameter", "params")

        def extract(p):
            if not names:
                return jnp.zeros((0,))
            return jnp.stack([jnp.asarray(p["params"][n]) for n in names])

        return extract

    ptypes = tuple(ptypes)
    if names:
        _check_typed(names, _section(pas, "params"), ptypes, "params", "parameter")

    def extract_typed(p):
        if not names:
            return jnp.zeros((len(ptypes), 0))
        return jnp.stack(
            [
                jnp.stack([jnp.asarray(p["params"][t][n]) for n in names])
                for t in ptypes
            ]
        )

    return extract_typed


def get_nn_extractor(nn_names: Sequence[str], pas: Mapping) -> Callable:
    """Build ``p -> tuple of flat weight vectors`` ordered like ``nn_names``.

    Returns an extractor yielding None when no neural modules are used.
    """
    nn_names = tuple(nn_names)
    if not nn_names:
        return lambda p: None
    check_names(nn_names, _section(pas, "nn"), "neural network", "nn")
    return lambda p: tuple(jnp.asarray(p["nn"][n]) for n in nn_names)


def get_initstates(
    names: Sequence[str], pas: Mapping, stypes: Optional[Sequence[str]] = None
) -> jnp.ndarray:
    """Initial states as [n_states] or, with ``stypes``, [n_states, n_types]."""
    names = tuple(names)
    section = _section(pas, "initstates")
    if stypes is None:
        check_names(names, section, "state", "initstates")
        return jnp.stack([jnp.asarray(section[n]) for n in names])

    stypes = tuple(stypes)
    _check_typed(names, section, stypes, "initstates", "state")
    return jnp.stack(
        [jnp.stack([jnp.asarray(section[t][n]) for t in stypes]) for n in names]
    )


@dispatch
def resolve_param_vector(names: tuple, params: dict) -> jnp.ndarray:
    """Parameter vector from a container, by name.

    Accepts either the parameters themselves or a full container holding them
    under ``params``.
    """
    if not names:
        return jnp.zeros((0,))
    source = params["params"] if isinstance(params.get("params"), Mapping) else params
    check_names(names, source, "parameter", "params")
    return jnp.stack([jnp.asarray(source[n]) for n in names])


@dispatch
def resolve_param_vector(names: tuple, params: object) -> jnp.ndarray:
    """Parameter vector given directly in ``names`` order."""
    vector = jnp.atleast_1d(jnp.asarray(params, dtype=float)) if len(names) else jnp.zeros((0,))
    if vector.shape != (len(names),):
        raise ValidationError(
            f"Expected {len(names)} parameters {names}, got shape {vector.shape}"
        )
    return vector


def resolve_nn_params(
    nn_names: Tuple[str, ...], pas, explicit=None
) -> Optional[Tuple[jnp.ndarray, ...]]:
    """Flat weight vectors for ``nn_names``, from ``explicit`` or ``pas.nn``."""
    if not nn_names:
        return None
    if explicit is not None:
        weights = tuple(explicit) if isinstance(explicit, (list, tuple)) else (explicit,)
        if len(weights) != len(nn_names):
            raise ValidationError(
                f"Expected {len(nn_names)} weight vectors, got {len(weights)}"
            )
        return tuple(jnp.asarray(w) for w in weights)
    check_names(nn_names, _section(pas, "nn"), "neural network", "nn")
    return tuple(jnp.asarray(pas["nn"][n]) for n in nn_names)
