"""Reference models."""

from . import exphydro, simhyd

MODELS = {
    "exphydro": exphydro.build_unit,
    "simhyd": simhyd.build_unit,
}

__all__ = ["exphydro", "simhyd", "MODELS"]
