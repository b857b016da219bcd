"""Pydantic-based configuration schemas and helpers."""
from __future__ import annotations

from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)


class SolverSettings(BaseModel):
    """Controls for the penalized nonlinear least-squares solve."""

    model_config = ConfigDict(extra="forbid")

    method: Literal["trf", "dogbox"] = Field(
        default="trf", description="Bounded trust-region algorithm used by scipy"
    )
    ftol: float = Field(default=1e-10, gt=0.0, description="Relative tolerance on the cost")
    xtol: float = Field(default=1e-10, gt=0.0, description="Relative tolerance on the step")
    gtol: float = Field(default=1e-10, gt=0.0, description="Tolerance on the scaled gradient")
    max_nfev: Optional[int] = Field(
        default=None, gt=0, description="Cap on function evaluations (None: scipy default)"
    )


class FiniteDifferenceSettings(BaseModel):
    """Step and stencil for finite-difference Jacobians."""

    model_config = ConfigDict(extra="forbid")

    eps: float = Field(default=1e-5, gt=0.0, description="Absolute bump size")
    scheme: str = Field(default="central", description="Difference stencil")

    @field_validator("scheme")
    @classmethod
    def validate_scheme(cls, value: str) -> str:
        allowed = {"forward", "backward", "central", "five_point"}
        canonical = value.lower()
        if canonical not in allowed:
            raise ValueError(f"scheme must be one of {sorted(allowed)}")
        return canonical


class StripperSettings(BaseModel):
    """Caplet stripping configuration."""

    model_config = ConfigDict(extra="forbid")

    difference_order: int = Field(
        default=2, ge=1, description="Finite-difference order of the curvature penalty"
    )
    default_error: float = Field(
        default=1.0, gt=0.0, description="Quote error used when none is supplied"
    )
    default_guess: Optional[float] = Field(
        default=None,
        gt=0.0,
        description="Flat starting volatility (None: mean market cap volatility)",
    )
    volatility_type: str = Field(
        default="lognormal", description="Caplet model: lognormal (Black) or normal (Bachelier)"
    )
    solver: SolverSettings = Field(default_factory=SolverSettings)

    @field_validator("volatility_type")
    @classmethod
    def validate_volatility_type(cls, value: str) -> str:
        allowed = {"lognormal", "normal"}
        canonical = value.lower()
        if canonical not in allowed:
            raise ValueError(f"volatility_type must be one of {sorted(allowed)}")
        return canonical


class AppConfig(BaseModel):
    """Top-level configuration container for stripping runs."""

    model_config = ConfigDict(extra="forbid")

    lambda_strike: float = Field(default=0.0, ge=0.0, description="Strike-direction penalty")
    lambda_expiry: Optional[float] = Field(
        default=None, ge=0.0, description="Expiry-direction penalty (None: same as strike)"
    )
    stripper: StripperSettings = Field(default_factory=StripperSettings)
    finite_difference: FiniteDifferenceSettings = Field(default_factory=FiniteDifferenceSettings)

    @model_validator(mode="after")
    def fill_lambda_expiry(self) -> "AppConfig":
        if self.lambda_expiry is None:
            self.lambda_expiry = self.lambda_strike
        return self


class ConfigValidationError(RuntimeError):
    """Raised when a configuration file fails validation."""

    def __init__(self, path: Path, error: ValidationError):
        super().__init__(f"Configuration validation failed:\n- {path}: {error}")
        self.path = path
        self.error = error


def _load_yaml(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration at {path} must contain a mapping")
    return data


def load_config(path: Path | str) -> AppConfig:
    """Load a configuration file into an :class:`AppConfig`."""
    target = Path(path)
    payload = _load_yaml(target)
    try:
        return AppConfig.model_validate(payload)
    except ValidationError as error:
        raise ConfigValidationError(target, error) from error


__all__ = [
    "AppConfig",
    "ConfigValidationError",
    "FiniteDifferenceSettings",
    "SolverSettings",
    "StripperSettings",
    "load_config",
]
