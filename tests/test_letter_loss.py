import numpy as np
import pytest

from sim_config import SimConfig
from simulation import round_letters, sample_letter_loss


def test_round_half_to_even():
    assert round_letters([0.5, 1.5, 2.5, 3.5, -0.5, -1.5, 2.4999, 2.5001]).tolist() == \
        [0, 2, 2, 4, 0, -2, 2, 3]


def test_uniform_within_bounds():
    cfg = SimConfig("u", lower=3, upper=10)
    losses = sample_letter_loss(5000, cfg, seed=1)
    assert losses.dtype.kind == 'i'
    assert losses.min() >= 3 and losses.max() <= 10
    assert abs(losses.mean() - 6.5) < 0.2


def test_uniform_zero_width_is_constant():
    cfg = SimConfig("u", lower=0, upper=0)
    assert sample_letter_loss(10, cfg, seed=3).tolist() == [0] * 10


def test_uniform_matches_seeded_generator():
    cfg = SimConfig("u", lower=0, upper=15)
    raw = np.random.default_rng(7).uniform(0, 15, size=20)
    assert sample_letter_loss(20, cfg, seed=7).tolist() == np.rint(raw).astype(int).tolist()


def test_normal_never_negative():
    cfg = SimConfig("n", loss_distribution='normal', mean=7, sd=12)
    losses = sample_letter_loss(5000, cfg, seed=11)
    assert (losses >= 0).all()
    # about a quarter of raw draws are negative with mean 7, sd 12
    assert (losses == 0).mean() > 0.2


def test_normal_draws_match_parameters_away_from_floor():
    cfg = SimConfig("n", loss_distribution='normal', mean=60, sd=5)
    losses = sample_letter_loss(20000, cfg, seed=5)
    assert losses.min() > 0
    assert abs(losses.mean() - 60) < 0.2
    # rounding to whole letters adds variance of about 1/12
    assert abs(losses.std() - 5) < 0.15


def test_normal_single_eye_floor_for_fixed_seed():
    cfg = SimConfig("n", n_eyes=1, number_simulations=1, loss_distribution='normal', mean=7, sd=12)
    seed = next(s for s in range(1, 500)
                if np.rint(np.random.default_rng(s).normal(7, 12, size=1))[0] < 0)
    assert sample_letter_loss(1, cfg, seed=seed).tolist() == [0]


def test_normal_positive_draws_kept():
    cfg = SimConfig("n", loss_distribution='normal', mean=7, sd=12)
    raw = np.rint(np.random.default_rng(2).normal(7, 12, size=50)).astype(int)
    assert sample_letter_loss(50, cfg, seed=2).tolist() == np.maximum(raw, 0).tolist()


@pytest.mark.parametrize("dist", ['uniform', 'normal'])
def test_same_seed_same_losses(dist):
    cfg = SimConfig("d", loss_distribution=dist)
    a = sample_letter_loss(100, cfg, seed=42)
    b = sample_letter_loss(100, cfg, seed=42)
    c = sample_letter_loss(100, cfg, seed=43)
    assert a.tolist() == b.tolist()
    assert a.tolist() != c.tolist()
