import pandas as pd
import pytest

from sim_config import SimConfig


@pytest.fixture
def boundary_emr():
    """One eye per band; the band-4 eye has a one-year VA that the delay override changes."""
    return pd.DataFrame({
        'eye_id':      ['e70', 'e55', 'e40', 'e20'],
        'baseline_va': [70, 55, 40, 20],
        'one_year_va': [70, 55, 40, 50],
    })


@pytest.fixture
def emr():
    """Forty eyes spread over all four bands."""
    baseline = [80, 75, 70, 68, 66, 65, 64, 60, 58, 55,
                52, 50, 49, 47, 45, 40, 38, 36, 35, 34,
                30, 28, 26, 25, 24, 22, 20, 18, 15, 10,
                85, 72, 62, 57, 44, 41, 33, 27, 12, 5]
    one_year = [min(100, v + d) for v, d in zip(baseline, [5, -3, 8, 2, 0, 10, -5, 6, 4, 12] * 4)]
    return pd.DataFrame({
        'eye_id':      [f'eye{i:03d}' for i in range(len(baseline))],
        'baseline_va': baseline,
        'one_year_va': one_year,
    })


@pytest.fixture
def zero_loss():
    return SimConfig("No loss", n_eyes=4, number_simulations=1, delay=True, lower=0, upper=0)
