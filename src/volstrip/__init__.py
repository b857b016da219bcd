"""Volstrip: caplet volatility stripping and surface calibration."""

from __future__ import annotations

import importlib
from typing import Dict

import jax

jax.config.update("jax_enable_x64", True)

__all__ = [
    "calibration",
    "capletstripping",
    "core",
    "market",
    "models",
    "products",
]

_MODULE_ALIASES: Dict[str, str] = {
    "calibration": "volstrip.calibration",
    "capletstripping": "volstrip.calibration.capletstripping",
    "core": "volstrip.core",
    "market": "volstrip.market",
    "models": "volstrip.models",
    "products": "volstrip.products",
}


def __getattr__(name: str):
    if name in _MODULE_ALIASES:
        module = importlib.import_module(_MODULE_ALIASES[name])
        globals()[name] = module
        return module
    raise AttributeError(f"module 'volstrip' has no attribute '{name}'")


def __dir__():
    return sorted(set(globals().keys()) | set(__all__))


__version__ = "0.1.0"
