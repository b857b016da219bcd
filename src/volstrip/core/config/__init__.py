"""Configuration schemas."""
from .schemas import (
    AppConfig,
    ConfigValidationError,
    FiniteDifferenceSettings,
    SolverSettings,
    StripperSettings,
    load_config,
)

__all__ = [
    "AppConfig",
    "ConfigValidationError",
    "FiniteDifferenceSettings",
    "SolverSettings",
    "StripperSettings",
    "load_config",
]
