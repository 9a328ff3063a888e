import numpy as np
import pytest

from simulation import perturb_baseline, resolve_outcomes, summarise_iteration


def _perturbed(emr, losses=None):
    losses = np.zeros(len(emr), dtype=int) if losses is None else np.asarray(losses)
    return perturb_baseline(emr, losses)


def test_delay_holds_ineligible_eyes_static(boundary_emr):
    cohort = resolve_outcomes(['e70', 'e55', 'e40', 'e20'], _perturbed(boundary_emr), delay=True)
    assert cohort['eye_id'].tolist() == ['e70', 'e55', 'e40', 'e20']
    assert cohort['one_year_va'].tolist() == [70, 55, 40, 20]
    assert cohort['one_year_cat'].tolist() == [1, 2, 3, 4]
    assert cohort['worse_than_6_60'].tolist() == [False, False, False, True]


def test_no_delay_keeps_recorded_outcome(boundary_emr):
    cohort = resolve_outcomes(['e20'], _perturbed(boundary_emr), delay=False)
    assert cohort['one_year_va'].tolist() == [50]
    assert cohort['one_year_cat'].tolist() == [2]


def test_override_uses_perturbed_baseline(boundary_emr):
    # e40 loses 20 letters → baseline 20 ≤ 25, one-year becomes 20
    perturbed = _perturbed(boundary_emr, [0, 0, 20, 3])
    cohort = resolve_outcomes(['e40', 'e20', 'e70'], perturbed, delay=True)
    assert cohort['baseline_va'].tolist() == [20, 17, 70]
    assert cohort['one_year_va'].tolist() == [20, 17, 70]


def test_threshold_is_inclusive(boundary_emr):
    perturbed = _perturbed(boundary_emr, [45, 29, 0, 0])   # e70 → 25, e55 → 26
    cohort = resolve_outcomes(['e70', 'e55'], perturbed, delay=True)
    assert cohort['one_year_va'].tolist() == [25, 55]


def test_custom_threshold(boundary_emr):
    cohort = resolve_outcomes(['e40'], _perturbed(boundary_emr), delay=True, threshold=40)
    assert cohort['one_year_va'].tolist() == [40]


def test_duplicates_repeat_rows(emr):
    ids = ['eye000', 'eye000', 'eye025', 'eye000']
    cohort = resolve_outcomes(ids, _perturbed(emr), delay=True)
    assert cohort['eye_id'].tolist() == ids
    assert len(cohort) == 4


def test_eligible_rows_match_real_record(emr):
    rng = np.random.default_rng(3)
    ids = rng.choice(emr['eye_id'].to_numpy(), size=200, replace=True)
    perturbed = _perturbed(emr, rng.integers(0, 10, size=len(emr)))
    cohort = resolve_outcomes(ids, perturbed, delay=True)
    recorded = emr.set_index('eye_id')['one_year_va']

    low = cohort['baseline_va'] <= 25
    assert (cohort.loc[low, 'one_year_va'] == cohort.loc[low, 'baseline_va']).all()
    assert (cohort.loc[~low, 'one_year_va'].to_numpy()
            == recorded.loc[cohort.loc[~low, 'eye_id']].to_numpy()).all()


def test_summarise_iteration(boundary_emr):
    cohort = resolve_outcomes(['e70', 'e55', 'e40', 'e20'], _perturbed(boundary_emr), delay=True)
    rec = summarise_iteration(cohort, iteration=3)
    assert rec['iteration'] == 3
    assert rec['mean_one_year_va'] == pytest.approx((70 + 55 + 40 + 20) / 4)
    assert rec['mean_baseline_va'] == pytest.approx((70 + 55 + 40 + 20) / 4)
    assert rec['prop_worse_than_6_60'] == pytest.approx(0.25)
    assert rec['prop_worse_than_6_24'] == pytest.approx(0.75)
    assert rec['prop_better_than_6_12'] == pytest.approx(0.25)
    for c in (1, 2, 3, 4):
        assert rec[f'prop_baseline_cat_{c}'] == pytest.approx(0.25)
        assert rec[f'prop_one_year_cat_{c}'] == pytest.approx(0.25)


def test_summarise_iteration_counts_duplicates(boundary_emr):
    cohort = resolve_outcomes(['e70', 'e70', 'e70', 'e20'], _perturbed(boundary_emr), delay=False)
    rec = summarise_iteration(cohort, iteration=1)
    assert rec['mean_one_year_va'] == pytest.approx((70 * 3 + 50) / 4)
    assert rec['prop_baseline_cat_1'] == pytest.approx(0.75)
    assert rec['prop_one_year_cat_2'] == pytest.approx(0.25)
    assert rec['prop_better_than_6_12'] == pytest.approx(0.75)
