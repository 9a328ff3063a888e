#!/usr/bin/env python3
# simulation.py
#
# Summary:
# - Takes the cleaned EMR table (one row per eye: baseline and one-year VA)
# - For every iteration, simulates delay-induced letter loss, re-estimates the
#   baseline VA band mix, resamples a synthetic cohort band by band and
#   resolves one-year outcomes (eyes pushed below 6/96 get no treatment benefit)
# - Reduces each cohort to summary scalars, then all iterations of a scenario
#   to bootstrap means, SDs and 95% percentile intervals
#
# Notes:
# - Every random stage of an iteration re-seeds with the iteration number
#   (letter loss, band allocation, each pool draw). Results are reproducible
#   iteration by iteration regardless of how many iterations are run.
# - VA is never clamped after perturbation; bands and flags are total over
#   the integers.

import argparse
import os

import numpy as np
import pandas as pd
from tqdm import tqdm

from sim_config import (
    BASELINE_COL,
    CATEGORIES,
    FLAG_COLS,
    ID_COL,
    INELIGIBLE_VA,
    ONE_YEAR_COL,
    SimConfig,
    SimulationError,
    default_scenarios,
    load_scenarios,
)
from sim_logger import logger, setup_logger

# ────────────────────────────────────────────────────────────────────────────
# 1. VA BANDS & CLINICAL FLAGS
# ────────────────────────────────────────────────────────────────────────────

# (lower edge, band), evaluated high → low; anything below 35 is band 4
VA_BANDS = ((65, 1), (50, 2), (35, 3))

SUMMARY_STATS = (
    ['mean_one_year_va', 'mean_baseline_va']
    + [f'prop_{f}' for f in FLAG_COLS]
    + [f'prop_baseline_cat_{c}' for c in CATEGORIES]
    + [f'prop_one_year_cat_{c}' for c in CATEGORIES]
)


def va_category(va: int) -> int:
    """Band of a single VA score: >=65 → 1, [50,65) → 2, [35,50) → 3, <35 → 4."""
    for lower, band in VA_BANDS:
        if va >= lower:
            return band
    return 4


def classify_va(values) -> np.ndarray:
    """Vectorised va_category over an array or Series."""
    va = np.asarray(values)
    return np.select([va >= lower for lower, _ in VA_BANDS],
                     [band for _, band in VA_BANDS],
                     default=4).astype(int)


def clinical_flags(one_year_va) -> dict:
    """
    Snellen thresholds on one-year VA. Not mutually exclusive.

      worse_than_6_60  : VA <= 35
      worse_than_6_24  : VA <= 55
      better_than_6_12 : VA >= 70
    """
    va = np.asarray(one_year_va)
    return {
        'worse_than_6_60':  va <= 35,
        'worse_than_6_24':  va <= 55,
        'better_than_6_12': va >= 70,
    }


def add_derived(table: pd.DataFrame) -> pd.DataFrame:
    """Copy of `table` with band columns and flags recomputed from the VA columns."""
    out = table.copy()
    out['baseline_cat'] = classify_va(out[BASELINE_COL])
    out['one_year_cat'] = classify_va(out[ONE_YEAR_COL])
    for name, flag in clinical_flags(out[ONE_YEAR_COL]).items():
        out[name] = flag
    return out


# ────────────────────────────────────────────────────────────────────────────
# 2. LETTER LOSS
# ────────────────────────────────────────────────────────────────────────────

def round_letters(x) -> np.ndarray:
    """Round to the nearest whole letter, ties to even (0.5 → 0, 1.5 → 2)."""
    return np.rint(np.asarray(x, dtype=float)).astype(int)


def sample_letter_loss(k: int, cfg: SimConfig, seed: int) -> np.ndarray:
    """
    Draw `k` integer letter losses for one iteration.

    uniform : round(U(lower, upper))
    normal  : max(0, round(N(mean, sd)))  # untreated eyes never improve

    A new Generator is built from `seed` on every call, so the same iteration
    always gets the same losses.
    """
    rng = np.random.default_rng(seed)
    if cfg.loss_distribution == 'uniform':
        return round_letters(rng.uniform(cfg.lower, cfg.upper, size=k))
    if cfg.loss_distribution == 'normal':
        return np.maximum(round_letters(rng.normal(cfg.mean, cfg.sd, size=k)), 0)
    raise SimulationError(f"unknown loss distribution {cfg.loss_distribution!r}", scenario=cfg.name)


# ────────────────────────────────────────────────────────────────────────────
# 3. BAND REWEIGHTING
# ────────────────────────────────────────────────────────────────────────────

def perturb_baseline(emr: pd.DataFrame, losses: np.ndarray) -> pd.DataFrame:
    """Subtract per-eye losses from baseline VA and re-derive bands/flags."""
    if len(losses) != len(emr):
        raise SimulationError(f"got {len(losses)} letter losses for {len(emr)} eyes")
    out = emr[[ID_COL, BASELINE_COL, ONE_YEAR_COL]].copy()
    out['letter_loss'] = np.asarray(losses, dtype=int)
    out[BASELINE_COL] = out[BASELINE_COL].astype(int) - out['letter_loss']
    return add_derived(out)


def category_proportions(perturbed: pd.DataFrame) -> pd.DataFrame:
    """
    Observed share of eyes per baseline band after perturbation.

    Math:
      p  = n_band / n
      sd = sqrt(p * (1 - p) / n)     # normal approximation to the binomial

    Empty bands come out as p = 0, sd = 0.
    """
    n = len(perturbed)
    if n == 0:
        raise SimulationError("cannot estimate band proportions from an empty table")
    cats = classify_va(perturbed[BASELINE_COL])
    counts = np.array([(cats == c).sum() for c in CATEGORIES])
    prop = counts / n
    return pd.DataFrame({
        'category': CATEGORIES,
        'n':        counts,
        'prop':     prop,
        'sd':       np.sqrt(prop * (1 - prop) / n),
    })


def draw_categories(weights, n_draws: int, rng: np.random.Generator) -> np.ndarray:
    """
    Categorical draw of `n_draws` bands with replacement using unnormalised
    weights, returned as counts per band (length 4).
    """
    w = np.asarray(weights, dtype=float)
    total = w.sum()
    if not np.isfinite(total) or total <= 0:
        raise SimulationError(f"band weights must have a positive sum, got {w.tolist()}")
    draws = rng.choice(np.array(CATEGORIES), size=n_draws, replace=True, p=w / total)
    return np.array([(draws == c).sum() for c in CATEGORIES], dtype=int)


def allocate_eyes(proportions: pd.DataFrame, n_eyes: int, seed: int) -> np.ndarray:
    """
    Noisy number of eyes per band for one iteration.

    Each band weight is |N(p, sd)|. The weights are used as they are (they
    need not sum to 1) to spread `n_eyes` draws over the four bands.
    """
    rng = np.random.default_rng(seed)
    weights = np.abs(rng.normal(proportions['prop'].to_numpy(), proportions['sd'].to_numpy()))
    return draw_categories(weights, n_eyes, rng)


# ────────────────────────────────────────────────────────────────────────────
# 4. COHORT SAMPLING
# ────────────────────────────────────────────────────────────────────────────

def build_pools(emr: pd.DataFrame) -> dict[int, np.ndarray]:
    """Eye ids grouped by unperturbed baseline band. Built once per run."""
    cats = classify_va(emr[BASELINE_COL])
    pools = {}
    for c in CATEGORIES:
        ids = emr.loc[cats == c, ID_COL].to_numpy(copy=True)
        ids.setflags(write=False)
        pools[c] = ids
    return pools


def sample_cohort(
    allocation: np.ndarray,
    pools: dict[int, np.ndarray],
    n_eyes: int,
    seed: int
) -> np.ndarray:
    """
    Draw allocation[i] ids with replacement from pool i, bands 1 → 4.

    Each pool draw gets its own Generator seeded with `seed`.
    """
    allocation = np.asarray(allocation, dtype=int)
    assert len(allocation) == len(CATEGORIES), allocation
    assert allocation.sum() == n_eyes, f"allocation {allocation.tolist()} does not sum to {n_eyes}"

    blocks = []
    for c, k in zip(CATEGORIES, allocation):
        if k == 0:
            continue
        pool = pools[c]
        if len(pool) == 0:
            raise SimulationError(f"cannot draw {k} eyes from empty band {c} pool")
        rng = np.random.default_rng(seed)
        blocks.append(rng.choice(pool, size=k, replace=True))

    cohort = np.concatenate(blocks) if blocks else np.array([], dtype=object)
    assert len(cohort) == n_eyes
    return cohort


# ────────────────────────────────────────────────────────────────────────────
# 5. OUTCOME RESOLUTION
# ────────────────────────────────────────────────────────────────────────────

def resolve_outcomes(
    cohort_ids,
    perturbed: pd.DataFrame,
    delay: bool,
    threshold: int = INELIGIBLE_VA
) -> pd.DataFrame:
    """
    Join sampled ids back to their (perturbed) records.

    Repeated ids give repeated rows. With `delay`, eyes whose perturbed
    baseline VA is at or below `threshold` are held static: one-year VA is
    set to that baseline VA. Otherwise the recorded one-year VA stands.
    """
    lookup = perturbed.set_index(ID_COL)
    cohort = lookup.loc[list(cohort_ids)].reset_index()

    if delay:
        ineligible = cohort[BASELINE_COL] <= threshold
        cohort.loc[ineligible, ONE_YEAR_COL] = cohort.loc[ineligible, BASELINE_COL]

    return add_derived(cohort)


# ────────────────────────────────────────────────────────────────────────────
# 6. AGGREGATION
# ────────────────────────────────────────────────────────────────────────────

def summarise_iteration(cohort: pd.DataFrame, iteration: int) -> dict:
    """Means and proportions (count / cohort size) for one resolved cohort."""
    n = len(cohort)
    rec = {
        'iteration':        int(iteration),
        'mean_one_year_va': float(cohort[ONE_YEAR_COL].mean()),
        'mean_baseline_va': float(cohort[BASELINE_COL].mean()),
    }
    for f in FLAG_COLS:
        rec[f'prop_{f}'] = cohort[f].sum() / n
    for c in CATEGORIES:
        rec[f'prop_baseline_cat_{c}'] = (cohort['baseline_cat'] == c).sum() / n
    for c in CATEGORIES:
        rec[f'prop_one_year_cat_{c}'] = (cohort['one_year_cat'] == c).sum() / n
    return rec


def summarise_runs(per_iteration: pd.DataFrame, group_col: str = 'scenario') -> pd.DataFrame:
    """
    One row per scenario: bootstrap estimate, SD and 95% percentile interval.

    For every statistic `s` the row holds s_mean, s_sd (ddof=1), s_lower
    (2.5th percentile) and s_upper (97.5th percentile).
    """
    stats = [s for s in SUMMARY_STATS if s in per_iteration.columns]
    grouped = per_iteration.groupby(group_col, sort=False)[stats]

    parts = {
        'mean':  grouped.mean(),
        'sd':    grouped.std(ddof=1),
        'lower': grouped.quantile(0.025),
        'upper': grouped.quantile(0.975),
    }
    summary = pd.concat(
        {f'{s}_{k}': part[s] for s in stats for k, part in parts.items()},
        axis=1,
    )
    n_iter = per_iteration.groupby(group_col, sort=False)['iteration'].count().rename('n_iterations')
    return pd.concat([n_iter, summary], axis=1).reset_index()


# ────────────────────────────────────────────────────────────────────────────
# 7. RUNS
# ────────────────────────────────────────────────────────────────────────────

def simulate_iteration(
    emr: pd.DataFrame,
    pools: dict[int, np.ndarray],
    cfg: SimConfig,
    iteration: int
) -> dict:
    """One full pass: loss → perturb → reweight → sample → resolve → summarise."""
    losses = sample_letter_loss(len(emr), cfg, seed=iteration)
    perturbed = perturb_baseline(emr, losses)
    props = category_proportions(perturbed)
    allocation = allocate_eyes(props, cfg.n_eyes, seed=iteration)
    ids = sample_cohort(allocation, pools, cfg.n_eyes, seed=iteration)
    cohort = resolve_outcomes(ids, perturbed, cfg.delay, cfg.threshold)
    logger.debug("%s | iteration %d | allocation %s", cfg.name, iteration, allocation.tolist())
    return summarise_iteration(cohort, iteration)


def run_sim(emr: pd.DataFrame, cfg: SimConfig, progress: bool = False) -> pd.DataFrame:
    """
    Run iterations 1..cfg.number_simulations of one scenario in order.

    Returns the per-iteration table tagged with the scenario name. A failing
    iteration aborts the run with the scenario and iteration attached.
    """
    pools = build_pools(emr)
    logger.info(
        "%s: %d iterations × %d eyes (delay=%s, loss=%s)",
        cfg.name, cfg.number_simulations, cfg.n_eyes, cfg.delay, cfg.loss_distribution,
    )

    rows = []
    iterations = range(1, cfg.number_simulations + 1)
    for it in tqdm(iterations, desc=cfg.name, disable=not progress):
        try:
            rows.append(simulate_iteration(emr, pools, cfg, it))
        except (SimulationError, AssertionError) as err:
            raise SimulationError(
                f"scenario {cfg.name!r}, iteration {it}: {err}",
                scenario=cfg.name, iteration=it,
            ) from err

    out = pd.DataFrame(rows, columns=['iteration'] + SUMMARY_STATS)
    out.insert(0, 'scenario', cfg.name)
    logger.info("%s: mean one-year VA %.2f", cfg.name, out['mean_one_year_va'].mean())
    return out


def run_scenarios(
    emr: pd.DataFrame,
    configs: list[SimConfig],
    progress: bool = False
) -> tuple[pd.DataFrame, pd.DataFrame]:
    """Run every scenario; return (per-iteration table, summary table)."""
    names = [c.name for c in configs]
    if len(set(names)) != len(names):
        raise SimulationError(f"scenario names must be unique, got {names}")
    per_iteration = pd.concat([run_sim(emr, cfg, progress=progress) for cfg in configs],
                              ignore_index=True)
    return per_iteration, summarise_runs(per_iteration)


# ────────────────────────────────────────────────────────────────────────────
# 8. MAIN
# ────────────────────────────────────────────────────────────────────────────

def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="nAMD treatment-delay resampling simulation")
    parser.add_argument("--data", default="data.csv", help="EMR CSV (eye_id, baseline_va, one_year_va)")
    parser.add_argument("--scenarios", default=None, help="JSON file of named scenarios")
    parser.add_argument("--n-eyes", type=int, default=None, help="override cohort size")
    parser.add_argument("--sims", type=int, default=None, help="override number of iterations")
    parser.add_argument("--out-dir", default="docs")
    parser.add_argument("--no-report", action="store_true", help="skip the HTML figures")
    parser.add_argument("--log-level", default="INFO")
    return parser.parse_args(argv)


def main(argv=None) -> None:
    from read_data import describe_emr, load_emr
    from viz_sim import write_report

    args = parse_args(argv)
    setup_logger(level=args.log_level)

    configs = load_scenarios(args.scenarios) if args.scenarios else default_scenarios()
    configs = [c.with_overrides(n_eyes=args.n_eyes, number_simulations=args.sims) for c in configs]

    emr = load_emr(args.data)
    describe_emr(emr)

    print("Running simulations...")
    per_iteration, summary = run_scenarios(emr, configs, progress=True)

    os.makedirs(args.out_dir, exist_ok=True)
    iter_fn = os.path.join(args.out_dir, "per_iteration.csv")
    per_iteration.to_csv(iter_fn, index=False)
    print(f"→ wrote {iter_fn}")

    summary_fn = os.path.join(args.out_dir, "summary.csv")
    summary.to_csv(summary_fn, index=False)
    print(f"→ wrote {summary_fn}")

    if not args.no_report:
        for fn in write_report(per_iteration, summary, args.out_dir):
            print(f"→ wrote {fn}")

    print("✅ Done.")


if __name__ == "__main__":
    main()
