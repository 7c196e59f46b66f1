import numpy as np
import pytest

from cases_from_deaths.simulate.calculate_delays import (
    SI_MEAN,
    SI_SD,
    TruncationError,
    build_delay,
    lognormal_params,
    onset_to_death,
    serial_interval,
)


def test_pmf_sums_to_one_and_is_zero_below_zero():
    si = serial_interval()
    k = np.arange(0, 500)
    assert abs(si.pmf(k).sum() - 1.0) < 1e-9
    assert si.pmf(-1) == 0.0
    assert np.all(si.pmf(np.array([-3, -2])) == 0.0)


def test_pmf_is_unit_width_discretisation():
    """pmf(k) is the continuous mass on [k, k+1)."""
    delay, _ = onset_to_death("gamma")
    for k in (0, 1, 10, 25):
        expected = delay.dist.cdf(k + 1) - delay.dist.cdf(k)
        assert delay.pmf(k) == pytest.approx(expected)


def test_weights_match_pmf_and_are_read_only():
    si = serial_interval()
    w = si.weights(30)
    assert w.shape == (31,)
    assert np.allclose(w, si.pmf(np.arange(31)))
    with pytest.raises(ValueError):
        w[0] = 1.0


def test_serial_interval_moments():
    """Log-normal built from mean/sd keeps that mean and sd."""
    si = serial_interval()
    assert si.dist.mean() == pytest.approx(SI_MEAN)
    assert si.dist.std() == pytest.approx(SI_SD)
    meanlog, sdlog = lognormal_params(SI_MEAN, SI_SD)
    assert dict(si.params) == pytest.approx({"meanlog": meanlog, "sdlog": sdlog})


def test_gamma_parameterisations_agree():
    a = build_delay("gamma", shape=4.0, rate=0.5)
    b = build_delay("gamma", shape=4.0, scale=2.0)
    c = build_delay("gamma", mean=8.0, sd=4.0)
    assert a.params == b.params
    assert dict(c.params) == pytest.approx(dict(a.params))


def test_standard_onset_to_death_bounds():
    _, gamma_max = onset_to_death("gamma")
    _, lnorm_max = onset_to_death("lognormal")
    assert gamma_max == 60
    assert lnorm_max == 80


@pytest.mark.parametrize("kind", ["gamma", "lognormal"])
def test_truncated_samples_stay_in_bounds(kind):
    delay, _ = onset_to_death(kind)
    draws = delay.sample_truncated(10_000, min_delay=1, max_delay=60, rng=np.random.default_rng(1))
    assert draws.shape == (10_000,)
    assert draws.dtype.kind == "i"
    assert draws.min() >= 1
    assert draws.max() <= 60


def test_truncation_resamples_instead_of_clamping():
    """
    With a narrow window the sample frequencies follow the pmf renormalised
    to the window; clamping would pile mass onto the two edges.
    """
    delay, _ = onset_to_death("gamma")
    draws = delay.sample_truncated(20_000, min_delay=10, max_delay=12, rng=np.random.default_rng(2))
    assert set(np.unique(draws)) == {10, 11, 12}

    expected = delay.pmf(np.array([10, 11, 12]))
    expected = expected / expected.sum()
    observed = np.bincount(draws, minlength=13)[10:13] / draws.size
    assert np.allclose(observed, expected, atol=0.02)


def test_truncation_without_mass_raises():
    delay = build_delay("gamma", name="tiny delay", shape=1.0, rate=1000.0)
    with pytest.raises(TruncationError) as exc:
        delay.sample_truncated(5, min_delay=500, max_delay=600, rng=np.random.default_rng(0))
    assert "tiny delay" in str(exc.value)
    assert "[500, 600]" in str(exc.value)


def test_truncation_bounds_out_of_order():
    delay, _ = onset_to_death("gamma")
    with pytest.raises(ValueError):
        delay.sample_truncated(5, min_delay=10, max_delay=2)


def test_sampling_is_reproducible():
    delay, _ = onset_to_death("lognormal")
    a = delay.sample_truncated(100, rng=np.random.default_rng(42))
    b = delay.sample_truncated(100, rng=np.random.default_rng(42))
    assert np.array_equal(a, b)


def test_invalid_builders():
    with pytest.raises(ValueError):
        build_delay("weibull", shape=1.0, scale=1.0)
    with pytest.raises(ValueError):
        build_delay("gamma", mean=3.0)
    with pytest.raises(ValueError):
        build_delay("lognormal", meanlog=1.0, sdlog=0.0)
    with pytest.raises(ValueError):
        onset_to_death("exponential")
