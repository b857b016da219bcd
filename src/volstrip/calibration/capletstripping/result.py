"""Results of a caplet stripping run, with surface sampling and printing."""
from __future__ import annotations

import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Iterable, Optional, TextIO

import jax.numpy as jnp
from jax import Array

from volstrip.market.interpolation import GridInterpolator2D, ScatteredInterpolator2D

from .pricer import MultiCapFloorPricer, MultiCapFloorPricerGrid
from .volatility_provider import DiscreteVolatilityFunctionProvider


class _SurfaceOutput(ABC):
    """Printing and re-sampling shared by single and combined results."""

    @abstractmethod
    def caplet_volatility_nodes(self) -> Array:
        """(expiry, strike, vol) rows, shape (n, 3)."""

    def _interpolator(self):
        nodes = self.caplet_volatility_nodes()
        return ScatteredInterpolator2D(nodes[:, 0], nodes[:, 1], nodes[:, 2])

    def surface(
        self, n_expiry_samples: int = 101, n_strike_samples: int = 101
    ) -> tuple[Array, Array, Array]:
        """Sample the fitted caplet volatility surface on a regular grid.

        Returns:
            (expiries, strikes, vols) with vols of shape
            (n_expiry_samples, n_strike_samples).
        """
        if n_expiry_samples < 1 or n_strike_samples < 1:
            raise ValueError("Sample counts must be positive")
        nodes = self.caplet_volatility_nodes()
        expiries = jnp.linspace(nodes[:, 0].min(), nodes[:, 0].max(), n_expiry_samples)
        strikes = jnp.linspace(nodes[:, 1].min(), nodes[:, 1].max(), n_strike_samples)
        return expiries, strikes, self._interpolator().sample(expiries, strikes)

    def print_caplet_vols(self, stream: Optional[TextIO] = None) -> None:
        """Write one ``expiry<TAB>strike<TAB>vol`` line per fitted caplet."""
        out = stream if stream is not None else sys.stdout
        for expiry, strike, vol in self.caplet_volatility_nodes().tolist():
            out.write(f"{expiry}\t{strike}\t{vol}\n")

    def print_surface(
        self,
        stream: Optional[TextIO] = None,
        n_expiry_samples: int = 101,
        n_strike_samples: int = 101,
    ) -> None:
        """Write the re-sampled surface: a strike header row, then one row per expiry."""
        out = stream if stream is not None else sys.stdout
        expiries, strikes, vols = self.surface(n_expiry_samples, n_strike_samples)
        out.write("\t" + "\t".join(str(k) for k in strikes.tolist()) + "\n")
        for expiry, row in zip(expiries.tolist(), vols.tolist()):
            out.write(str(expiry) + "\t" + "\t".join(str(v) for v in row) + "\n")


@dataclass(frozen=True, eq=False)
class CapletStrippingResult(_SurfaceOutput):
    """Outcome of :meth:`CapletStripperDirect.solve`.

    Attributes:
        fit_parameters: Fitted model parameters (immutable array)
        chi_sqr: Unpenalized weighted residual sum of squares
        penalty: Smoothness penalty θᵗPθ at the fit
        converged: Whether the solver met its tolerances
        n_evaluations: Number of model evaluations used
        pricer: Pricer the fit was made against
        vol_provider: Map from fit parameters to caplet volatilities
    """

    fit_parameters: Array
    chi_sqr: float
    penalty: float
    converged: bool
    n_evaluations: int
    pricer: MultiCapFloorPricer = field(repr=False)
    vol_provider: DiscreteVolatilityFunctionProvider = field(repr=False)

    def get_fit_parameters(self) -> Array:
        return self.fit_parameters

    def get_chi_sqr(self) -> float:
        return self.chi_sqr

    def caplet_vols(self) -> Array:
        return self.vol_provider.evaluate(self.fit_parameters)

    def model_cap_prices(self) -> Array:
        return self.pricer.price(self.caplet_vols())

    def model_cap_vols(self) -> Array:
        return self.pricer.implied_vols(self.model_cap_prices())

    def caplet_volatility_nodes(self) -> Array:
        """(expiry, strike, vol) rows for every caplet backed by a market cap.

        Phantom grid cells are left out.
        """
        nodes = self.pricer.caplet_nodes
        vols = self.caplet_vols()
        keep = ~self.pricer.phantom_mask
        return jnp.column_stack([nodes[keep, 0], nodes[keep, 1], vols[keep]])

    def _interpolator(self):
        if isinstance(self.pricer, MultiCapFloorPricerGrid):
            return GridInterpolator2D(
                self.pricer.caplet_expiries,
                self.pricer.strikes,
                self.caplet_vols().reshape(self.pricer.grid_shape),
            )
        return super()._interpolator()

    def __str__(self) -> str:
        status = "converged" if self.converged else "NOT converged"
        return (
            f"Caplet stripping {status}: chi2={self.chi_sqr:.6g}, "
            f"penalty={self.penalty:.6g}, evaluations={self.n_evaluations}, "
            f"parameters={self.fit_parameters.shape[0]}"
        )


class CombinedCapletStrippingResults(_SurfaceOutput):
    """Caplet volatilities pooled from several independent fits.

    Typical use is a strike-by-strike strip, where each fit covers the caps
    of one strike and the combined nodes form the full surface.
    """

    def __init__(self, results: Iterable[CapletStrippingResult]):
        self.results = tuple(results)
        if not self.results:
            raise ValueError("At least one result is required")

    @property
    def chi_sqr(self) -> float:
        return float(sum(r.chi_sqr for r in self.results))

    @property
    def converged(self) -> bool:
        return all(r.converged for r in self.results)

    def caplet_volatility_nodes(self) -> Array:
        return jnp.concatenate([r.caplet_volatility_nodes() for r in self.results], axis=0)

    def __str__(self) -> str:
        return "\n".join(str(r) for r in self.results)


__all__ = ["CapletStrippingResult", "CombinedCapletStrippingResults"]
