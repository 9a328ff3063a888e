# sim_config.py

"""
Scenario configuration for the nAMD treatment-delay simulation.

Each scenario is a named bundle of parameters (cohort size, number of
iterations, delay flag and letter-loss distribution). Scenarios are the unit
of comparison in the final summary table.

Usage
-----
>>> from sim_config import SimConfig
>>> cfg = SimConfig("Delay, normal loss", loss_distribution="normal", mean=7, sd=12)
>>> cfg.n_eyes
1000
"""

from __future__ import annotations

import json
import math
import numbers
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

# ────────────────────────────────────────────────────────────────────────────
# 1. EMR COLUMNS & CONSTANTS
# ────────────────────────────────────────────────────────────────────────────

ID_COL       = 'eye_id'
BASELINE_COL = 'baseline_va'   # ETDRS letters at first visit
ONE_YEAR_COL = 'one_year_va'   # ETDRS letters at 12 months

CATEGORIES = (1, 2, 3, 4)
FLAG_COLS  = ('worse_than_6_60', 'worse_than_6_24', 'better_than_6_12')

# 6/96 Snellen: eyes at or below this were not eligible for funded treatment
INELIGIBLE_VA = 25

LOSS_DISTRIBUTIONS = ('uniform', 'normal')


class ConfigError(ValueError):
    """Raised for a malformed scenario before any sampling starts."""


class SimulationError(RuntimeError):
    """Raised when a run cannot continue (e.g. drawing from an empty pool)."""

    def __init__(self, message: str, scenario: str | None = None, iteration: int | None = None):
        super().__init__(message)
        self.scenario = scenario
        self.iteration = iteration


# ────────────────────────────────────────────────────────────────────────────
# 2. SCENARIO DATACLASS
# ────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class SimConfig:
    name: str

    # ---------- Resampling ----------
    n_eyes: int = 1000               # eyes drawn per iteration
    number_simulations: int = 1000   # iterations (seeds 1..N)

    # ---------- Delay model ----------
    delay: bool = True
    loss_distribution: str = 'uniform'
    lower: float = 0                 # uniform bounds (letters)
    upper: float = 15
    mean: float = 7.0                # normal parameters (letters)
    sd: float = 12.0
    threshold: int = INELIGIBLE_VA

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if not str(self.name).strip():
            raise ConfigError("scenario name must not be empty")
        if self.loss_distribution not in LOSS_DISTRIBUTIONS:
            raise ConfigError(
                f"{self.name}: unknown loss_distribution {self.loss_distribution!r} "
                f"(expected one of {', '.join(LOSS_DISTRIBUTIONS)})"
            )
        for attr in ('n_eyes', 'number_simulations'):
            value = getattr(self, attr)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigError(f"{self.name}: {attr} must be an integer, got {value!r}")
            if value <= 0:
                raise ConfigError(f"{self.name}: {attr} must be > 0, got {value}")
        # JSON scenarios arrive untyped: "false" must not read as True
        if not isinstance(self.delay, bool):
            raise ConfigError(f"{self.name}: delay must be true or false, got {self.delay!r}")
        if isinstance(self.threshold, bool) or not isinstance(self.threshold, numbers.Integral):
            raise ConfigError(f"{self.name}: threshold must be an integer, got {self.threshold!r}")
        for attr in ('lower', 'upper', 'mean', 'sd'):
            value = getattr(self, attr)
            if isinstance(value, bool) or not isinstance(value, numbers.Real) or not math.isfinite(value):
                raise ConfigError(f"{self.name}: {attr} must be a finite number, got {value!r}")
        if self.sd < 0:
            raise ConfigError(f"{self.name}: normal sd must be >= 0, got {self.sd}")
        if self.lower > self.upper:
            raise ConfigError(
                f"{self.name}: uniform lower ({self.lower}) is above upper ({self.upper})"
            )

    @classmethod
    def from_dict(cls, name: str, params: dict[str, Any]) -> 'SimConfig':
        """Build a scenario from a plain parameter dict (as stored in JSON)."""
        known = {f.name for f in fields(cls)} - {'name'}
        unknown = sorted(set(params) - known)
        if unknown:
            raise ConfigError(f"{name}: unknown parameter(s) {', '.join(unknown)}")
        return cls(name=name, **params)

    def with_overrides(self, **kwargs: Any) -> 'SimConfig':
        """Copy with some fields replaced; None values are ignored."""
        params = {f.name: getattr(self, f.name) for f in fields(self)}
        params.update({k: v for k, v in kwargs.items() if v is not None})
        return SimConfig(**params)


# ────────────────────────────────────────────────────────────────────────────
# 3. SCENARIOS
# ────────────────────────────────────────────────────────────────────────────

# scenarios checked
DEFAULT_SCENARIOS = {
    'No delay':                   {'delay': False, 'lower': 0, 'upper': 0},
    'Delay, uniform 0-15 letters': {'delay': True, 'loss_distribution': 'uniform', 'lower': 0, 'upper': 15},
    'Delay, normal 7 (SD 12)':     {'delay': True, 'loss_distribution': 'normal', 'mean': 7.0, 'sd': 12.0},
}


def default_scenarios() -> list[SimConfig]:
    return [SimConfig.from_dict(name, params) for name, params in DEFAULT_SCENARIOS.items()]


def load_scenarios(path: str | Path) -> list[SimConfig]:
    """
    Read scenarios from a JSON file shaped like DEFAULT_SCENARIOS:

        {"Delay, 10 letters": {"lower": 10, "upper": 10}, ...}
    """
    with open(path, encoding="utf-8") as f:
        raw = json.load(f)
    if not isinstance(raw, dict) or not raw:
        raise ConfigError(f"{path}: expected a non-empty JSON object of scenarios")
    configs = []
    for name, params in raw.items():
        if not isinstance(params, dict):
            raise ConfigError(f"{path}: scenario {name!r} must map to an object")
        configs.append(SimConfig.from_dict(name, params))
    return configs


__all__ = [
    "ID_COL", "BASELINE_COL", "ONE_YEAR_COL", "CATEGORIES", "FLAG_COLS",
    "INELIGIBLE_VA", "LOSS_DISTRIBUTIONS",
    "ConfigError", "SimulationError", "SimConfig",
    "DEFAULT_SCENARIOS", "default_scenarios", "load_scenarios",
]
