"""Tests for direct caplet stripping with smoothness penalties."""

import logging

import jax.numpy as jnp
import numpy as np
import pytest

from volstrip.calibration import generalized_least_squares
from volstrip.calibration.capletstripping import (
    CapletStripperDirect,
    MarketDataType,
    MultiCapFloorPricer,
    MultiCapFloorPricerGrid,
    StrippingConvergenceError,
)
from volstrip.core.config import AppConfig, SolverSettings, StripperSettings
from volstrip.products import CapFloor

from tests.calibration.capletstripping.sample_market import true_caplet_vol


def _true_vols(pricer):
    nodes = pricer.caplet_nodes
    return true_caplet_vol(nodes[:, 0], nodes[:, 1])


@pytest.fixture(scope="module")
def pricer(cap_market, curves):
    return MultiCapFloorPricerGrid(cap_market, curves)


@pytest.fixture(scope="module")
def market_vols(pricer):
    return pricer.implied_vols(pricer.price(_true_vols(pricer)))


# ===== Exact recovery =====

def test_round_trip_from_prices(bootstrap_market, curves):
    """With λ = 0 and tiny errors an identified market gives back its caplet vols."""
    pricer = MultiCapFloorPricerGrid(bootstrap_market, curves)
    truth = _true_vols(pricer)
    prices = pricer.price(truth)

    stripper = CapletStripperDirect(pricer, lambda_strike=0.0)
    result = stripper.solve(prices, MarketDataType.PRICE, errors=jnp.full(pricer.num_caps, 1e-8))

    assert pricer.grid_size == pricer.num_caps
    assert result.converged
    assert jnp.allclose(result.caplet_vols(), truth, atol=1e-6)


def test_round_trip_from_vols(bootstrap_market, curves):
    pricer = MultiCapFloorPricerGrid(bootstrap_market, curves)
    truth = _true_vols(pricer)
    cap_vols = pricer.implied_vols(pricer.price(truth))

    result = CapletStripperDirect(pricer, lambda_strike=0.0).solve(
        cap_vols, errors=jnp.full(pricer.num_caps, 1e-6)
    )

    assert jnp.allclose(result.caplet_vols(), truth, atol=1e-6)
    assert jnp.allclose(result.model_cap_vols(), cap_vols, atol=1e-8)


def test_zero_penalty_single_caplet_caps_return_quotes(single_caplet_market, curves):
    """Each cap is one caplet, so the fit reproduces the quoted vols."""
    pricer = MultiCapFloorPricerGrid(single_caplet_market, curves)
    quotes = _true_vols(pricer)

    result = CapletStripperDirect(pricer, lambda_strike=0.0).solve(quotes)

    assert jnp.allclose(result.fit_parameters, quotes, atol=1e-8)
    assert result.chi_sqr == pytest.approx(0.0, abs=1e-14)
    assert result.penalty == 0.0


def test_penalized_single_caplet_caps_match_linear_solution(single_caplet_market, curves):
    """Cap vol = caplet vol here, so the penalized fit is a linear GLS problem."""
    pricer = MultiCapFloorPricerGrid(single_caplet_market, curves)
    rng = np.random.default_rng(3)
    quotes = _true_vols(pricer) + jnp.asarray(rng.normal(0.0, 0.01, pricer.num_caps))
    errors = jnp.full(pricer.num_caps, 0.01)

    stripper = CapletStripperDirect(pricer, lambda_strike=0.5, lambda_expiry=0.2)
    result = stripper.solve(quotes, errors=errors)
    expected = generalized_least_squares(
        jnp.eye(pricer.grid_size), quotes, errors, stripper.penalty_matrix
    )

    assert jnp.allclose(result.fit_parameters, expected.weights, atol=1e-7)
    assert result.chi_sqr == pytest.approx(expected.chi_sqr, rel=1e-6)
    assert result.penalty == pytest.approx(expected.penalty, rel=1e-6)


# ===== Penalized fits =====

def test_reported_chi_sqr_is_unpenalized(pricer, market_vols):
    errors = jnp.linspace(0.001, 0.003, pricer.num_caps)
    stripper = CapletStripperDirect(pricer, lambda_strike=0.03, lambda_expiry=0.01)

    result = stripper.solve(market_vols, MarketDataType.VOL, errors=errors)

    residual = (result.model_cap_vols() - market_vols) / errors
    assert result.get_chi_sqr() == pytest.approx(float(residual @ residual), rel=1e-8)
    penalty = stripper.regularizer.penalty(result.fit_parameters)
    assert result.penalty == pytest.approx(penalty, rel=1e-8)


def test_fit_from_prices(pricer, curves):
    truth = _true_vols(pricer)
    prices = pricer.price(truth)
    # quote errors of one basis point of volatility, expressed in price
    errors = pricer.vega_from_cap_vols(pricer.implied_vols(prices)) * 1e-4

    result = CapletStripperDirect(pricer, lambda_strike=0.01).solve(
        prices, MarketDataType.PRICE, errors=errors
    )

    residual = (result.model_cap_prices() - prices) / errors
    assert result.converged
    assert result.chi_sqr == pytest.approx(float(residual @ residual), rel=1e-8)
    assert result.chi_sqr < pricer.num_caps


def test_chi_sqr_grows_with_lambda(pricer, market_vols):
    errors = jnp.full(pricer.num_caps, 1e-3)
    chi_sqrs = []
    for lam in (1e-4, 1e-2, 1.0):
        stripper = CapletStripperDirect(pricer, lambda_strike=lam)
        result = stripper.solve(market_vols, errors=errors)
        chi_sqrs.append(result.chi_sqr)

    assert chi_sqrs[0] <= chi_sqrs[1] + 1e-9
    assert chi_sqrs[1] <= chi_sqrs[2] + 1e-9


def test_solve_is_idempotent(pricer, market_vols):
    stripper = CapletStripperDirect(pricer, lambda_strike=0.03)

    first = stripper.solve(market_vols)
    second = stripper.solve(market_vols)

    assert jnp.array_equal(first.fit_parameters, second.fit_parameters)
    assert first.chi_sqr == second.chi_sqr


def test_default_guess_is_mean_market_vol(pricer, market_vols):
    stripper = CapletStripperDirect(pricer, lambda_strike=0.03)

    implicit = stripper.solve(market_vols)
    flat = jnp.full(pricer.grid_size, float(jnp.mean(market_vols)))
    explicit = stripper.solve(market_vols, guess=flat)

    assert jnp.allclose(implicit.fit_parameters, explicit.fit_parameters, atol=0.0)


def test_settings_default_guess(pricer, market_vols):
    settings = StripperSettings(default_guess=0.4)
    stripper = CapletStripperDirect(pricer, lambda_strike=0.03, settings=settings)

    implicit = stripper.solve(market_vols)
    explicit = stripper.solve(market_vols, guess=jnp.full(pricer.grid_size, 0.4))

    assert jnp.allclose(implicit.fit_parameters, explicit.fit_parameters, atol=0.0)


def test_fitted_vols_non_negative(pricer, market_vols):
    result = CapletStripperDirect(pricer, lambda_strike=1e-4).solve(market_vols * 0.5)
    assert bool(jnp.all(result.fit_parameters >= 0.0))


# ===== Phantom cells =====

def test_phantom_cells_keep_guess_without_penalty(single_caplet_market, curves):
    """Remove one cell's cap: with λ = 0 nothing moves that cell."""
    caps = single_caplet_market[:7] + single_caplet_market[8:]
    pricer = MultiCapFloorPricerGrid(caps, curves)
    assert int(pricer.phantom_mask.sum()) == 1

    guess = jnp.full(pricer.grid_size, 0.33)
    quotes = _true_vols(pricer)[~pricer.phantom_mask]
    result = CapletStripperDirect(pricer, lambda_strike=0.0).solve(quotes, guess=guess)

    phantom = np.flatnonzero(np.asarray(pricer.phantom_mask))[0]
    assert float(result.fit_parameters[phantom]) == pytest.approx(0.33, abs=1e-8)
    assert result.caplet_volatility_nodes().shape == (pricer.num_caplets, 3)


def test_phantom_cells_filled_by_penalty(single_caplet_market, curves):
    """With a penalty the phantom is interpolated from its neighbours."""
    caps = single_caplet_market[:7] + single_caplet_market[8:]
    pricer = MultiCapFloorPricerGrid(caps, curves)
    guess = jnp.full(pricer.grid_size, 0.33)
    truth = _true_vols(pricer)
    quotes = truth[~pricer.phantom_mask]

    result = CapletStripperDirect(pricer, lambda_strike=1e-3).solve(
        quotes, errors=jnp.full(pricer.num_caps, 1e-3), guess=guess
    )

    phantom = np.flatnonzero(np.asarray(pricer.phantom_mask))[0]
    assert float(result.fit_parameters[phantom]) == pytest.approx(float(truth[phantom]), abs=0.01)


# ===== Penalty layout =====

def test_single_strike_penalizes_expiry_only(curves):
    caps = [CapFloor.from_schedule(0.03, 0.25, m) for m in (1.0, 2.0, 3.0)]
    pricer = MultiCapFloorPricerGrid(caps, curves)
    stripper = CapletStripperDirect(pricer, lambda_strike=0.5)

    assert pricer.grid_shape == (11, 1)
    assert stripper.regularizer.active_axes == (0,)
    assert stripper.regularizer.orders[0] == 2


def test_difference_order_capped_by_grid(curves):
    caps = [CapFloor.from_schedule(k, 0.25, 0.75) for k in (0.02, 0.03, 0.04)]
    pricer = MultiCapFloorPricerGrid(caps, curves)
    stripper = CapletStripperDirect(pricer, 0.1, settings=StripperSettings(difference_order=3))

    assert pricer.grid_shape == (2, 3)
    assert stripper.regularizer.orders == (1, 2)


def test_from_config(pricer):
    config = AppConfig(lambda_strike=0.02, lambda_expiry=0.5)
    stripper = CapletStripperDirect.from_config(pricer, config)

    assert stripper.lambda_strike == 0.02
    assert stripper.lambda_expiry == 0.5
    assert stripper.regularizer.lambdas == (0.5, 0.02)


def test_from_config_checks_volatility_type(cap_market, curves, pricer):
    config = AppConfig(
        lambda_strike=0.02, stripper=StripperSettings(volatility_type="normal")
    )
    with pytest.raises(ValueError):
        CapletStripperDirect.from_config(pricer, config)

    normal_pricer = MultiCapFloorPricerGrid(cap_market, curves, volatility_type="normal")
    stripper = CapletStripperDirect.from_config(normal_pricer, config)
    assert stripper.pricer.volatility_type.value == "normal"


# ===== Failures =====

def test_non_convergence_raises_with_partial_result(pricer, market_vols, caplog):
    settings = StripperSettings(solver=SolverSettings(max_nfev=1))
    stripper = CapletStripperDirect(pricer, lambda_strike=0.03, settings=settings)

    with caplog.at_level(logging.WARNING):
        with pytest.raises(StrippingConvergenceError) as excinfo:
            stripper.solve(market_vols, guess=jnp.full(pricer.grid_size, 0.6))

    partial = excinfo.value.result
    assert isinstance(excinfo.value, RuntimeError)
    assert not partial.converged
    assert partial.fit_parameters.shape == (pricer.grid_size,)
    assert "without converging" in caplog.text


def test_requires_grid_pricer(cap_market, curves):
    with pytest.raises(ValueError):
        CapletStripperDirect(MultiCapFloorPricer(cap_market, curves), lambda_strike=0.1)


@pytest.mark.parametrize("lam", [-0.1, float("nan"), float("inf")])
def test_invalid_lambda(pricer, lam):
    with pytest.raises(ValueError):
        CapletStripperDirect(pricer, lambda_strike=lam)
    with pytest.raises(ValueError):
        CapletStripperDirect(pricer, lambda_strike=0.1, lambda_expiry=lam)


def test_invalid_market_inputs(pricer, market_vols):
    stripper = CapletStripperDirect(pricer, lambda_strike=0.03)
    n = pricer.num_caps

    with pytest.raises(ValueError):
        stripper.solve([])
    with pytest.raises(ValueError):
        stripper.solve(market_vols[:-1])
    with pytest.raises(ValueError):
        stripper.solve(market_vols.at[0].set(jnp.nan))
    with pytest.raises(ValueError):
        stripper.solve(market_vols.at[0].set(-0.2))
    with pytest.raises(ValueError):
        stripper.solve(market_vols, market_type="vol")
    with pytest.raises(ValueError):
        stripper.solve(market_vols, errors=jnp.ones(n - 1))
    with pytest.raises(ValueError):
        stripper.solve(market_vols, errors=jnp.zeros(n))
    with pytest.raises(ValueError):
        stripper.solve(market_vols, guess=jnp.ones(pricer.grid_size + 1))
    with pytest.raises(ValueError):
        stripper.solve(market_vols, guess=-jnp.ones(pricer.grid_size))


def test_solve_logs_summary(pricer, market_vols, caplog):
    with caplog.at_level(logging.INFO, logger="volstrip.calibration.capletstripping.stripper"):
        CapletStripperDirect(pricer, lambda_strike=0.03).solve(market_vols)
    assert "chi2=" in caplog.text


@pytest.mark.parametrize("market_type", [MarketDataType.PRICE, MarketDataType.VOL])
def test_zero_guess_rejected(pricer, market_vols, market_type):
    """Zero vols have no vega, so the fit could never leave them."""
    stripper = CapletStripperDirect(pricer, lambda_strike=0.03)
    quotes = market_vols
    if market_type is MarketDataType.PRICE:
        quotes = pricer.price_from_cap_vols(market_vols)
    errors = jnp.full(pricer.num_caps, 1e-6)

    with pytest.raises(ValueError):
        stripper.solve(quotes, market_type, errors=errors, guess=jnp.zeros(pricer.grid_size))
    with pytest.raises(ValueError):
        stripper.solve(
            quotes, market_type, errors=errors, guess=jnp.full(pricer.grid_size, 0.2).at[3].set(0.0)
        )


def test_zero_default_guess_rejected(pricer):
    """Prices at intrinsic value imply zero vols, which cannot start a fit."""
    intrinsic = pricer.price_from_cap_vols(jnp.zeros(pricer.num_caps))
    stripper = CapletStripperDirect(pricer, lambda_strike=0.03)

    with pytest.raises(ValueError):
        stripper.solve(intrinsic, MarketDataType.PRICE)
