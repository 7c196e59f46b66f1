# src/cases_from_deaths/simulate/projections.py
# Projection ensembles (daily new cases x independent realizations on a
# contiguous date axis) and the two ways of combining them:
#   - merge_additive: same realizations, different sources -> sum
#   - merge_concatenative: same date axis, different repetitions -> append

from dataclasses import dataclass
from typing import List, Sequence

import numpy as np
import pandas as pd

ONE_DAY = np.timedelta64(1, "D")


class ShapeMismatchError(ValueError):
    """Ensembles to be summed do not have the same number of realizations."""


class AxisMismatchError(ValueError):
    """Ensembles to be concatenated do not share a date axis."""


def as_day(value) -> np.datetime64:
    """Convert a date-like value (date, Timestamp, ISO string, datetime64) to datetime64[D]."""
    return np.datetime64(pd.Timestamp(value).date(), "D")


def as_days(values) -> np.ndarray:
    """Vectorised as_day; keeps order and duplicates."""
    values = list(values)
    if not values:
        return np.array([], dtype="datetime64[D]")
    return pd.to_datetime(values).normalize().to_numpy().astype("datetime64[D]")


def day_offset(later, earlier) -> int:
    """Whole days from ``earlier`` to ``later``."""
    return int((as_day(later) - as_day(earlier)) // ONE_DAY)


@dataclass(frozen=True, eq=False)
class ProjectionEnsemble:
    """Daily new-case counts for ``n_sim`` realizations from ``start`` onwards.

    ``counts`` has shape (n_days, n_sim); row ``i`` is the day ``start + i``.
    The array is copied on construction and made read-only, so an ensemble
    never changes once built. Merges and reindexing return new ensembles.
    """

    start: np.datetime64
    counts: np.ndarray

    def __post_init__(self):
        counts = np.array(self.counts, dtype=np.int64, copy=True)
        if counts.ndim != 2:
            raise ValueError(f"counts must be 2D (n_days, n_sim), got shape {counts.shape}")
        if counts.shape[0] < 1 or counts.shape[1] < 1:
            raise ValueError(f"counts must hold at least one day and one realization, got shape {counts.shape}")
        counts.setflags(write=False)
        object.__setattr__(self, "start", as_day(self.start))
        object.__setattr__(self, "counts", counts)

    @property
    def n_days(self) -> int:
        return int(self.counts.shape[0])

    @property
    def n_sim(self) -> int:
        return int(self.counts.shape[1])

    @property
    def end(self) -> np.datetime64:
        return self.start + (self.n_days - 1) * ONE_DAY

    @property
    def dates(self) -> np.ndarray:
        return self.start + np.arange(self.n_days) * ONE_DAY

    def axis(self):
        return (self.start, self.end)

    def values_at(self, date) -> np.ndarray:
        """Counts of every realization on ``date`` (zeros if off the axis)."""
        i = day_offset(date, self.start)
        if i < 0 or i >= self.n_days:
            return np.zeros(self.n_sim, dtype=np.int64)
        return self.counts[i]

    def reindex(self, start, end) -> "ProjectionEnsemble":
        """Extend the date axis to [start, end], filling added days with zeros."""
        start, end = as_day(start), as_day(end)
        if start > self.start or end < self.end:
            raise ValueError(
                f"reindex can only widen the axis: [{start}, {end}] does not cover "
                f"[{self.start}, {self.end}]"
            )
        n_days = day_offset(end, start) + 1
        out = np.zeros((n_days, self.n_sim), dtype=np.int64)
        lo = day_offset(self.start, start)
        out[lo:lo + self.n_days] = self.counts
        return ProjectionEnsemble(start=start, counts=out)

    def cumulate(self) -> "ProjectionEnsemble":
        """Cumulative cases along the date axis."""
        return ProjectionEnsemble(start=self.start, counts=np.cumsum(self.counts, axis=0))

    def to_frame(self) -> pd.DataFrame:
        index = pd.DatetimeIndex(self.dates, name="date")
        columns = [f"sim_{j}" for j in range(1, self.n_sim + 1)]
        return pd.DataFrame(self.counts.copy(), index=index, columns=columns)


def merge_additive(ensembles: Sequence[ProjectionEnsemble]) -> ProjectionEnsemble:
    """Sum ensembles realization by realization over the union of their axes.

    Realization ``j`` of the output is the sum of realization ``j`` of every
    input; an input contributes zero on days outside its own axis.

    Raises:
        ShapeMismatchError: if the inputs differ in number of realizations
    """
    ensembles = list(ensembles)
    if not ensembles:
        raise ValueError("merge_additive needs at least one ensemble")

    n_sims = sorted({e.n_sim for e in ensembles})
    if len(n_sims) > 1:
        raise ShapeMismatchError(
            f"cannot add ensembles with different realization counts: {[e.n_sim for e in ensembles]}"
        )

    start = min(e.start for e in ensembles)
    end = max(e.end for e in ensembles)
    total = np.zeros((day_offset(end, start) + 1, n_sims[0]), dtype=np.int64)
    for e in ensembles:
        lo = day_offset(e.start, start)
        total[lo:lo + e.n_days] += e.counts
    return ProjectionEnsemble(start=start, counts=total)


def merge_concatenative(ensembles: Sequence[ProjectionEnsemble]) -> ProjectionEnsemble:
    """Pool the realizations of ensembles that share a date axis.

    Realizations keep their values and appear in input order.

    Raises:
        AxisMismatchError: if the inputs' date axes differ
    """
    ensembles = list(ensembles)
    if not ensembles:
        raise ValueError("merge_concatenative needs at least one ensemble")

    axes: List[tuple] = [e.axis() for e in ensembles]
    if len(set(axes)) > 1:
        shown = ", ".join(f"[{a}, {b}]" for a, b in axes)
        raise AxisMismatchError(f"cannot concatenate ensembles with different date axes: {shown}")

    counts = np.concatenate([e.counts for e in ensembles], axis=1)
    return ProjectionEnsemble(start=ensembles[0].start, counts=counts)
