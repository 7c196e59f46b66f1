# src/cases_from_deaths/simulate/simulate_cases.py
"""
Back-calculate and project cases from a handful of reported deaths.

For each of ``n_sim`` repetitions every death gets an onset date (death date
minus a truncated onset-to-death delay) and a number of primary cases (from
the CFR). Each of those seeds is projected forward to a common end date,
``max(death_dates) + duration``, with ``inner_n_sim`` realizations of the
branching process. The per-death projections are summed within a repetition
and the repetitions are then pooled, giving ``n_sim * inner_n_sim``
trajectories on the axis ``[min(death_dates) - max_delay, end]``.
"""

from dataclasses import dataclass
from typing import Optional
import logging

import joblib
import numpy as np
from joblib import Parallel, delayed
from numpy.random import SeedSequence, default_rng

from .calculate_delays import (
    DEFAULT_MIN_DELAY,
    SI_MEAN,
    SI_SD,
    DiscreteDelay,
    onset_to_death,
    serial_interval,
)
from .generate_projection import project
from .infer_cases import cases_for_deaths, check_cfr
from .projections import (
    ONE_DAY,
    ProjectionEnsemble,
    as_days,
    day_offset,
    merge_additive,
    merge_concatenative,
)

# Start logger
logger = logging.getLogger(__name__)

MIN_R = 1.0
MIN_DURATION = 1
MIN_N_SIM = 10


@dataclass(frozen=True)
class SimulatorConfig:
    """Fixed ingredients of a simulator, built once and reused."""

    serial_interval: DiscreteDelay
    onset_to_death: DiscreteDelay
    min_delay: int = DEFAULT_MIN_DELAY
    max_delay: int = 80
    inner_n_sim: int = 10

    def __post_init__(self):
        if self.min_delay < 0:
            raise ValueError(f"min_delay must be >= 0, got {self.min_delay}")
        if self.max_delay < self.min_delay:
            raise ValueError(f"max_delay ({self.max_delay}) must be >= min_delay ({self.min_delay})")
        if self.inner_n_sim < 1:
            raise ValueError(f"inner_n_sim must be >= 1, got {self.inner_n_sim}")


def make_config(delay="lognormal", inner_n_sim=10, min_delay=DEFAULT_MIN_DELAY, max_delay=None,
                si_mean=SI_MEAN, si_sd=SI_SD):
    """Standard configuration for the "lognormal" or "gamma" onset-to-death delay."""
    otd, bound = onset_to_death(delay)
    if max_delay is None:
        max_delay = bound
    return SimulatorConfig(
        serial_interval=serial_interval(mean=si_mean, sd=si_sd),
        onset_to_death=otd,
        min_delay=int(min_delay),
        max_delay=int(max_delay),
        inner_n_sim=int(inner_n_sim),
    )


@dataclass(frozen=True, eq=False)
class SimulationOutput:
    """Everything one call to ``simulate`` produced.

    ``onset_dates`` and ``case_counts`` are flat, repetition-major: entry
    ``i * n_deaths + k`` belongs to repetition ``i`` and death ``k``.
    R, cfr, n_sim and duration are the values actually used, after clamping.
    """

    death_dates: np.ndarray
    onset_dates: np.ndarray
    case_counts: np.ndarray
    projections: ProjectionEnsemble
    R: float
    cfr: float
    n_sim: int
    duration: int
    inner_n_sim: int

    @property
    def n_deaths(self):
        return int(self.death_dates.size)

    @property
    def end_date(self):
        return self.death_dates.max() + self.duration * ONE_DAY

    @property
    def delays(self):
        """Simulated onset-to-death delays in days, aligned with ``onset_dates``."""
        deaths = np.tile(self.death_dates, self.n_sim)
        return ((deaths - self.onset_dates) // ONE_DAY).astype(int)


def _clamp(name, value, lower):
    if value < lower:
        logger.warning("%s=%s is below %s; using %s=%s instead", name, value, lower, name, lower)
        return lower
    return value


def _run_repetition(death_days, config, R, cfr, start, end, seed_seq):
    """One outer repetition: draw onsets and case counts, project, sum.

    Raises ValueError when an onset falls after ``end``. ``simulate`` never
    passes such an ``end``; callers building their own axis can.
    """
    rng = default_rng(seed_seq)
    n_deaths = death_days.size

    delays = config.onset_to_death.sample_truncated(
        n_deaths, min_delay=config.min_delay, max_delay=config.max_delay, rng=rng
    )
    onsets = death_days - delays.astype("timedelta64[D]")
    cases = cases_for_deaths(cfr, n_deaths, rng=rng)

    per_death = []
    for onset, n_cases in zip(onsets, cases):
        horizon = day_offset(end, onset)
        if horizon < 0:
            raise ValueError(f"onset date {onset} falls after the projection end {end}")
        per_death.append(
            project(onset, n_cases, R, config.serial_interval, config.inner_n_sim, horizon, rng=rng)
        )

    merged = merge_additive(per_death).reindex(start, end)
    return onsets, cases, merged


class CaseSimulator:
    """Reusable simulator bound to one SimulatorConfig.

    Holds no mutable state, so one instance can serve concurrent calls.
    """

    def __init__(self, config: Optional[SimulatorConfig] = None):
        self.config = config if config is not None else make_config()

    def __repr__(self):
        return f"CaseSimulator({self.config!r})"

    def simulate(self, death_dates, R=2.0, cfr=0.02, n_sim=100, duration=1, seed=None, n_jobs=1):
        """Simulate cases behind ``death_dates``.

        Args:
            death_dates: iterable of date-likes; duplicates are separate deaths
            R (float): reproduction number; values below 1 are raised to 1
            cfr (float): case fatality ratio in (0, 1]
            n_sim (int): outer repetitions; values below 10 are raised to 10
            duration (int): days projected beyond the last death; at least 1
            seed: int or SeedSequence; None for fresh entropy
            n_jobs (int): joblib workers for the repetitions
        Returns:
            SimulationOutput
        Raises:
            ValueError
        """
        death_days = as_days(death_dates)
        if death_days.size == 0:
            raise ValueError("death_dates must contain at least one date")
        cfr = check_cfr(cfr)

        R = float(_clamp("R", float(R), MIN_R))
        duration = int(_clamp("duration", int(duration), MIN_DURATION))
        n_sim = int(_clamp("n_sim", int(n_sim), MIN_N_SIM))

        cfg = self.config
        end = death_days.max() + duration * ONE_DAY
        start = death_days.min() - cfg.max_delay * ONE_DAY

        logger.info(
            "Simulating %d death(s): R=%s, cfr=%s, %d repetition(s) x %d realization(s) to %s",
            death_days.size, R, cfr, n_sim, cfg.inner_n_sim, end,
        )

        root = seed if isinstance(seed, SeedSequence) else SeedSequence(seed)
        children = root.spawn(n_sim)
        results = Parallel(n_jobs=n_jobs)(
            delayed(_run_repetition)(death_days, cfg, R, cfr, start, end, child)
            for child in children
        )

        pooled = merge_concatenative([r[2] for r in results])
        onsets = np.concatenate([r[0] for r in results])
        cases = np.concatenate([r[1] for r in results])
        for arr in (death_days, onsets, cases):
            arr.setflags(write=False)

        logger.info("Pooled %d realization(s) on [%s, %s]", pooled.n_sim, pooled.start, pooled.end)
        return SimulationOutput(
            death_dates=death_days,
            onset_dates=onsets,
            case_counts=cases,
            projections=pooled,
            R=R,
            cfr=cfr,
            n_sim=n_sim,
            duration=duration,
            inner_n_sim=cfg.inner_n_sim,
        )


def simulate(death_dates, R=2.0, cfr=0.02, n_sim=100, duration=1, inner_n_sim=10,
             delay="lognormal", seed=None, n_jobs=1):
    """One-off simulation with a default configuration."""
    simulator = CaseSimulator(make_config(delay=delay, inner_n_sim=inner_n_sim))
    return simulator.simulate(
        death_dates, R=R, cfr=cfr, n_sim=n_sim, duration=duration, seed=seed, n_jobs=n_jobs
    )


def save_simulator(simulator, path):
    """Write a configured simulator to ``path`` for later reuse."""
    joblib.dump(simulator, path)
    logger.info("Simulator saved to: %s", path)
    return path


def load_simulator(path):
    simulator = joblib.load(path)
    if not isinstance(simulator, CaseSimulator):
        raise TypeError(f"{path} does not hold a CaseSimulator (got {type(simulator).__name__})")
    return simulator
