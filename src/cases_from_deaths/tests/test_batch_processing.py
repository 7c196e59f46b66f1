import numpy as np
import pandas as pd
import pytest

from cases_from_deaths.simulate.batch_processing import run_parameter_grid
from cases_from_deaths.simulate.simulate_cases import CaseSimulator, make_config

DEATHS = ["2020-03-18", "2020-03-20"]


def test_grid_shapes_and_csv(tmp_path):
    """
    Basic integration test for run_parameter_grid:
    - one block of rows per (R, cfr) pair, one row per date
    - CSV is written with the same content
    """
    out_csv = tmp_path / "grid.csv"
    simulator = CaseSimulator(make_config(inner_n_sim=2))

    table, csv_path = run_parameter_grid(
        DEATHS,
        R_values=[1.5, 2.0],
        cfr_values=[0.01, 0.05],
        simulator=simulator,
        n_sim=10,
        duration=3,
        seed=123,
        out_path=str(out_csv),
    )

    # axis: min death - 80 .. max death + 3
    n_days = 2 + 80 + 3 + 1
    assert len(table) == 4 * n_days
    assert list(table.columns[:3]) == ["R", "cfr", "date"]
    pairs = table[["R", "cfr"]].drop_duplicates().itertuples(index=False, name=None)
    assert list(pairs) == [(1.5, 0.01), (1.5, 0.05), (2.0, 0.01), (2.0, 0.05)]

    # cumulative summaries never decrease along the date axis
    for _, block in table.groupby(["R", "cfr"]):
        assert np.all(np.diff(block["mean"].to_numpy()) >= 0)

    assert csv_path == out_csv
    assert csv_path.exists()
    df = pd.read_csv(csv_path)
    assert len(df) == len(table)
    assert list(df.columns) == list(table.columns)


def test_grid_is_reproducible_and_reports_effective_R():
    kwargs = dict(R_values=[0.5], cfr_values=[0.02], n_sim=10, duration=1, seed=9)
    a, path_a = run_parameter_grid(DEATHS, **kwargs)
    b, _ = run_parameter_grid(DEATHS, **kwargs)

    assert path_a is None
    assert (a["R"] == 1.0).all()
    pd.testing.assert_frame_equal(a, b)


def test_grid_tempfile():
    table, csv_path = run_parameter_grid(
        DEATHS, R_values=[2.0], cfr_values=[0.02], n_sim=10, seed=1, use_tempfile=True
    )
    try:
        assert csv_path.name.startswith("simulated_cases_")
        assert csv_path.exists()
    finally:
        csv_path.unlink()


def test_empty_grid_raises():
    with pytest.raises(ValueError):
        run_parameter_grid(DEATHS, R_values=[], cfr_values=[0.02])
