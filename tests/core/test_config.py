"""Tests for YAML configuration loading and validation."""

import pytest

from volstrip.core.config import (
    AppConfig,
    ConfigValidationError,
    FiniteDifferenceSettings,
    SolverSettings,
    StripperSettings,
    load_config,
)


def test_defaults():
    config = AppConfig()

    assert config.lambda_strike == 0.0
    assert config.lambda_expiry == 0.0
    assert config.stripper.difference_order == 2
    assert config.stripper.default_error == 1.0
    assert config.stripper.default_guess is None
    assert config.stripper.volatility_type == "lognormal"
    assert config.stripper.solver.method == "trf"
    assert config.finite_difference.scheme == "central"


def test_lambda_expiry_defaults_to_strike():
    assert AppConfig(lambda_strike=0.4).lambda_expiry == 0.4
    assert AppConfig(lambda_strike=0.4, lambda_expiry=2.0).lambda_expiry == 2.0


def test_load_config_from_yaml(tmp_path):
    path = tmp_path / "strip.yaml"
    path.write_text(
        "lambda_strike: 0.05\n"
        "lambda_expiry: 0.5\n"
        "stripper:\n"
        "  difference_order: 1\n"
        "  default_guess: 0.3\n"
        "  volatility_type: NORMAL\n"
        "  solver:\n"
        "    method: dogbox\n"
        "    max_nfev: 500\n"
        "finite_difference:\n"
        "  eps: 1.0e-4\n"
        "  scheme: Five_Point\n",
        encoding="utf-8",
    )

    config = load_config(path)

    assert config.lambda_strike == 0.05
    assert config.lambda_expiry == 0.5
    assert config.stripper.difference_order == 1
    assert config.stripper.default_guess == 0.3
    assert config.stripper.volatility_type == "normal"
    assert config.stripper.solver == SolverSettings(method="dogbox", max_nfev=500)
    assert config.finite_difference == FiniteDifferenceSettings(eps=1e-4, scheme="five_point")


def test_empty_file_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert load_config(str(path)) == AppConfig()


def test_unknown_key_rejected(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("lambda_strike: 0.1\nsmoothing: 3\n", encoding="utf-8")

    with pytest.raises(ConfigValidationError) as excinfo:
        load_config(path)
    assert excinfo.value.path == path
    assert "smoothing" in str(excinfo.value)


def test_negative_lambda_rejected(tmp_path):
    path = tmp_path / "negative.yaml"
    path.write_text("lambda_strike: -1.0\n", encoding="utf-8")
    with pytest.raises(ConfigValidationError):
        load_config(path)


def test_non_mapping_rejected(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- 1\n- 2\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(path)


@pytest.mark.parametrize(
    "factory,kwargs",
    [
        (FiniteDifferenceSettings, {"scheme": "richardson"}),
        (FiniteDifferenceSettings, {"eps": 0.0}),
        (StripperSettings, {"volatility_type": "sabr"}),
        (StripperSettings, {"difference_order": 0}),
        (StripperSettings, {"default_error": -1.0}),
        (SolverSettings, {"method": "lm"}),
    ],
)
def test_invalid_settings(factory, kwargs):
    with pytest.raises(ValueError):
        factory(**kwargs)
