# src/cases_from_deaths/simulate/calculate_delays.py
# Discretised delay distributions: the serial interval and the
# onset-to-death delay, both built from continuous scipy families
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Tuple

import numpy as np
from numpy.random import default_rng
from scipy.stats import gamma, lognorm

# Serial interval (days), log-normal
SI_MEAN = 4.7
SI_SD = 2.9

# Onset-to-death, gamma(shape, rate)
ONSET_DEATH_SHAPE = 4.726
ONSET_DEATH_RATE = 0.3151
ONSET_DEATH_GAMMA_MAX = 60

# Onset-to-death, log-normal adjusted for right-censoring
ONSET_DEATH_MEANLOG = 2.839078
ONSET_DEATH_SDLOG = 0.577242
ONSET_DEATH_LNORM_MAX = 80

DEFAULT_MIN_DELAY = 1

# Resampling rounds before truncated sampling gives up
MAX_RESAMPLE_ROUNDS = 1000

FAMILIES = ("gamma", "lognormal")


class TruncationError(ValueError):
    """Truncated sampling cannot produce values inside its bounds."""


def lognormal_params(mean, sd):
    """Convert the mean and sd of a log-normal to (meanlog, sdlog)."""
    if mean <= 0 or sd <= 0:
        raise ValueError("Mean and sd must be > 0")
    sigma2 = np.log(1.0 + (sd / mean) ** 2)
    return float(np.log(mean) - sigma2 / 2.0), float(np.sqrt(sigma2))


@lru_cache(maxsize=32)
def _continuous(family, params):
    p = dict(params)
    if family == "gamma":
        return gamma(a=p["shape"], scale=1.0 / p["rate"])
    if family == "lognormal":
        return lognorm(s=p["sdlog"], scale=np.exp(p["meanlog"]))
    raise ValueError(f"Unknown distribution family: {family}")


@lru_cache(maxsize=64)
def _kernel(family, params, k_max):
    dist = _continuous(family, params)
    edges = np.arange(k_max + 2, dtype=float)
    w = np.diff(dist.cdf(edges))
    w.setflags(write=False)
    return w


@dataclass(frozen=True)
class DiscreteDelay:
    """A continuous delay distribution discretised at unit width.

    Day ``k`` holds the mass of the continuous distribution on ``[k, k + 1)``,
    so ``pmf(k) = F(k + 1) - F(k)`` and a sample is the floor of a continuous
    draw.

    Attributes:
        family (str): "gamma" or "lognormal"
        params (tuple): sorted (name, value) pairs of the family's natural
            parameters, (shape, rate) or (meanlog, sdlog)
        name (str): label used in log and error messages
    """

    family: str
    params: Tuple[Tuple[str, float], ...]
    name: str = "delay"

    @property
    def dist(self):
        return _continuous(self.family, self.params)

    def pmf(self, k):
        """Probability mass at integer day offset(s) ``k``; zero for k < 0."""
        k_arr = np.asarray(k)
        k_float = k_arr.astype(float)
        out = self.dist.cdf(k_float + 1.0) - self.dist.cdf(k_float)
        out = np.where(k_float < 0, 0.0, out)
        if k_arr.ndim == 0:
            return float(out)
        return out

    def weights(self, k_max):
        """Read-only array of pmf(0), ..., pmf(k_max)."""
        if k_max < 0:
            raise ValueError("k_max must be >= 0")
        return _kernel(self.family, self.params, int(k_max))

    def sample(self, n, rng=None):
        """Draw ``n`` non-negative integer delays."""
        if rng is None:
            rng = default_rng()
        draws = self.dist.rvs(size=int(n), random_state=rng)
        return np.floor(draws).astype(int)

    def sample_truncated(self, n, min_delay=DEFAULT_MIN_DELAY, max_delay=ONSET_DEATH_LNORM_MAX, rng=None):
        """Draw ``n`` delays, redrawing every value outside [min_delay, max_delay].

        Values are never clamped to the bounds. If no mass lies between the
        bounds, or the redraws do not settle within ``MAX_RESAMPLE_ROUNDS``,
        a TruncationError is raised.
        """
        if min_delay > max_delay:
            raise ValueError(f"min_delay ({min_delay}) must be <= max_delay ({max_delay})")
        if rng is None:
            rng = default_rng()

        # Mass that floors into [min_delay, max_delay]
        inside = float(self.dist.cdf(max_delay + 1.0) - self.dist.cdf(float(min_delay)))
        if not inside > 0.0:
            raise TruncationError(
                f"{self.name} ({self.family}, {dict(self.params)}) has no mass in "
                f"[{min_delay}, {max_delay}]"
            )

        out = self.sample(n, rng=rng)
        bad = (out < min_delay) | (out > max_delay)
        rounds = 0
        while bad.any():
            rounds += 1
            if rounds > MAX_RESAMPLE_ROUNDS:
                raise TruncationError(
                    f"{self.name} ({self.family}) still has {int(bad.sum())} draws outside "
                    f"[{min_delay}, {max_delay}] after {MAX_RESAMPLE_ROUNDS} resampling rounds"
                )
            out[bad] = self.sample(int(bad.sum()), rng=rng)
            bad = (out < min_delay) | (out > max_delay)
        return out


def build_delay(family, name="delay", **params):
    """Build a DiscreteDelay from a named family and its parameters.

    Args:
        family (str): "gamma" or "lognormal"
        name (str): label for messages
        **params: for gamma either shape & rate, shape & scale, or mean & sd;
            for lognormal either meanlog & sdlog, or mean & sd
    Returns:
        DiscreteDelay
    Raises:
        ValueError
    """
    if family == "gamma":
        if "mean" in params and "sd" in params:
            mean, sd = float(params["mean"]), float(params["sd"])
            if mean <= 0 or sd <= 0:
                raise ValueError("Mean and sd must be > 0")
            natural: Dict[str, float] = {"shape": (mean / sd) ** 2, "rate": mean / sd ** 2}
        elif "shape" in params and "rate" in params:
            natural = {"shape": float(params["shape"]), "rate": float(params["rate"])}
        elif "shape" in params and "scale" in params:
            natural = {"shape": float(params["shape"]), "rate": 1.0 / float(params["scale"])}
        else:
            raise ValueError("gamma needs (shape, rate), (shape, scale) or (mean, sd)")
        if natural["shape"] <= 0 or natural["rate"] <= 0:
            raise ValueError("gamma shape and rate must be > 0")
    elif family == "lognormal":
        if "mean" in params and "sd" in params:
            meanlog, sdlog = lognormal_params(float(params["mean"]), float(params["sd"]))
            natural = {"meanlog": meanlog, "sdlog": sdlog}
        elif "meanlog" in params and "sdlog" in params:
            natural = {"meanlog": float(params["meanlog"]), "sdlog": float(params["sdlog"])}
        else:
            raise ValueError("lognormal needs (meanlog, sdlog) or (mean, sd)")
        if natural["sdlog"] <= 0:
            raise ValueError("lognormal sdlog must be > 0")
    else:
        raise ValueError(f"Unknown distribution family: {family} (expected one of {FAMILIES})")

    return DiscreteDelay(family=family, params=tuple(sorted(natural.items())), name=name)


def serial_interval(mean=SI_MEAN, sd=SI_SD):
    return build_delay("lognormal", name="serial interval", mean=mean, sd=sd)


def onset_to_death(kind="lognormal"):
    """Standard onset-to-death delay and its default upper truncation bound.

    Returns:
        (DiscreteDelay, int)
    """
    if kind == "gamma":
        delay = build_delay(
            "gamma", name="onset-to-death", shape=ONSET_DEATH_SHAPE, rate=ONSET_DEATH_RATE
        )
        return delay, ONSET_DEATH_GAMMA_MAX
    if kind == "lognormal":
        delay = build_delay(
            "lognormal", name="onset-to-death", meanlog=ONSET_DEATH_MEANLOG, sdlog=ONSET_DEATH_SDLOG
        )
        return delay, ONSET_DEATH_LNORM_MAX
    raise ValueError(f"Unknown onset-to-death delay: {kind} (expected 'lognormal' or 'gamma')")

