"""Configure test environment for importing the project package."""
import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parent.parent
SRC = REPO_ROOT / "src"

if SRC.exists() and str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from volstrip.market import FlatCurve, MulticurveProvider  # noqa: E402

from tests.calibration.capletstripping.sample_market import (  # noqa: E402
    SINGLE_CAPLET_EXPIRIES,
    STRIKES,
    single_caplet_cap,
    spot_caps,
)


@pytest.fixture(scope="session")
def curves():
    """USD discounting at 2% and a 3M projection curve at 3% (continuous)."""
    return MulticurveProvider(
        discount_curves={"USD": FlatCurve(0.02)},
        forward_curves={"USD-LIBOR-3M": FlatCurve(0.03)},
    )


@pytest.fixture(scope="session")
def cap_market():
    """Nine caps: three strikes by maturities of 1, 2 and 3 years."""
    return spot_caps()


@pytest.fixture(scope="session")
def bootstrap_market():
    """Twelve caps whose caplets can be bootstrapped one expiry at a time."""
    return spot_caps(maturities=(0.5, 0.75, 1.0, 1.25))


@pytest.fixture(scope="session")
def single_caplet_market():
    """One single-caplet cap per cell of a 4 expiry x 3 strike grid, in grid order."""
    return [
        single_caplet_cap(expiry, strike)
        for expiry in SINGLE_CAPLET_EXPIRIES
        for strike in STRIKES
    ]
