#!/usr/bin/env python3
# read_data.py
#
# Loads the EMR extract (one row per eye) and prints a short description of
# what survived cleaning. The simulation only ever sees the cleaned table.

import numpy as np
import pandas as pd

from sim_config import BASELINE_COL, CATEGORIES, ID_COL, ONE_YEAR_COL
from simulation import classify_va

VA_COLS = [BASELINE_COL, ONE_YEAR_COL]


def load_and_clean(df_raw: pd.DataFrame) -> pd.DataFrame:
    """
    Coerce VA columns to integers, drop missing rows and keep 0..100 letters.

    Duplicate eye identifiers are an error: pools and the outcome join are
    keyed on the identifier.
    """
    missing = [c for c in [ID_COL] + VA_COLS if c not in df_raw.columns]
    if missing:
        raise ValueError(f"EMR table is missing column(s): {', '.join(missing)}")

    df = df_raw[[ID_COL] + VA_COLS].copy()
    # drop missing ids before astype(str) turns them into text
    df = df.dropna(subset=[ID_COL])
    df[ID_COL] = df[ID_COL].astype(str).str.strip()
    for c in VA_COLS:
        df[c] = pd.to_numeric(df[c], errors='coerce')

    # drop missing rows (ids blank after stripping come through as '' or 'nan')
    df = df.dropna(subset=VA_COLS)
    df = df[~df[ID_COL].isin(['', 'nan', 'None'])]
    # ETDRS letter range only
    df = df[df[VA_COLS].apply(lambda s: s.between(0, 100)).all(axis=1)]

    if df.empty:
        raise RuntimeError("No rows left after cleaning; check the EMR extract!")

    dupes = df.loc[df[ID_COL].duplicated(), ID_COL].unique()
    if len(dupes):
        raise ValueError(f"duplicate eye identifiers in EMR table: {', '.join(map(str, dupes[:5]))}")

    df[VA_COLS] = df[VA_COLS].round().astype(int)
    return df.reset_index(drop=True)


def load_emr(path: str) -> pd.DataFrame:
    """Read the EMR CSV as strings and clean it."""
    df_raw = pd.read_csv(path, dtype=str)
    df_raw.columns = df_raw.columns.str.strip()
    return load_and_clean(df_raw)


def describe_emr(emr: pd.DataFrame, total_entries: int | None = None) -> dict:
    """Print and return retention, VA means/SDs and baseline band counts."""
    total_entries = total_entries if total_entries is not None else len(emr)
    bands = pd.Series(classify_va(emr[BASELINE_COL])).value_counts()
    stats = {
        'total_entries':  total_entries,
        'valid_eyes':     len(emr),
        'retention_pct':  len(emr) / total_entries * 100 if total_entries else np.nan,
        'baseline_mean':  float(emr[BASELINE_COL].mean()),
        'baseline_sd':    float(emr[BASELINE_COL].std()),
        'one_year_mean':  float(emr[ONE_YEAR_COL].mean()),
        'one_year_sd':    float(emr[ONE_YEAR_COL].std()),
        'baseline_bands': {c: int(bands.get(c, 0)) for c in CATEGORIES},
    }

    print("EMR extract")
    print("--------------------------------------")
    print(f"Total entries:   {stats['total_entries']}")
    print(f"Valid eyes:      {stats['valid_eyes']}")
    print(f"Data retention:  {stats['retention_pct']:.2f}%")
    print(f"Baseline VA:     {stats['baseline_mean']:.2f} (SD {stats['baseline_sd']:.2f})")
    print(f"One-year VA:     {stats['one_year_mean']:.2f} (SD {stats['one_year_sd']:.2f})")
    print("Baseline bands:  " + ", ".join(f"{c}: {n}" for c, n in stats['baseline_bands'].items()))
    print()
    return stats


def main():
    import sys
    path = sys.argv[1] if len(sys.argv) > 1 else 'data.csv'
    df_raw = pd.read_csv(path, dtype=str)
    describe_emr(load_emr(path), total_entries=len(df_raw))


if __name__ == "__main__":
    main()
