import copy
import logging
import math

import numpy as np
import numpy.testing as npt
import pytest
from pynbody.array import SimArray

from binsampling.densities import LambdaDensity, Polynomial, Uniform
from binsampling.errors import ConfigurationError
from binsampling.sampling import BinSamplingDensity, integrate_bins
from binsampling.util.perf import PerfStats
from binsampling.util.tracecache import EvalCacheManager
from binsampling.variables import RealVar


def _errors(caplog):
    return [r for r in caplog.records if r.name == "binsampling" and r.levelno == logging.ERROR]


def test_adapter_init(x, gauss, binned_gauss):
    assert binned_gauss.name == "gauss_binned"
    assert binned_gauss.title == "binned gauss"
    assert binned_gauss.density is gauss
    assert binned_gauss.observable is x
    assert binned_gauss.epsilon == 1e-4
    assert binned_gauss.is_binned_distribution()
    assert binned_gauss.depends_on(x)
    assert binned_gauss.is_shape_dirty()
    assert binned_gauss._integrator is None
    assert isinstance(binned_gauss._perf_stats, PerfStats)
    assert not binned_gauss._perf_stats.enabled


def test_adapter_requires_dependency(y, uniform):
    with pytest.raises(ConfigurationError):
        BinSamplingDensity("bad", "", y, uniform)
    # ConfigurationError is a ValueError
    with pytest.raises(ValueError):
        BinSamplingDensity("bad", "", y, uniform)


def test_adapter_requires_positive_epsilon(x, uniform):
    with pytest.raises(ConfigurationError):
        BinSamplingDensity("bad", "", x, uniform, epsilon=0.0)


def _within_ulps(value, expected, n=8):
    return abs(value - expected) <= n * math.ulp(expected)


def test_constant_density_exact_to_rounding(x, uniform):
    """A constant density averages to the constant, up to a few ulps."""
    binned = BinSamplingDensity("flat_binned", "", x, uniform)
    for v in (0.5, 3.2, 9.99, 10.0):
        x.set_val(v)
        assert _within_ulps(binned.get_val(), 3.0)
        assert _within_ulps(binned.get_val({x}), 0.1)

    # bins whose width is not a power of two
    x.set_binning([0.0, 0.1, 0.2, 0.7, 10.0])
    for c in (3.0, 1.1):
        flat = Uniform("flat", x, c=c)
        binned = BinSamplingDensity("flat_binned", "", x, flat)
        for v in (0.05, 0.15, 0.3, 5.0):
            x.set_val(v)
            assert _within_ulps(binned.get_val(), c)


def test_linear_density_bin_average():
    x = RealVar("x", 0.5, 0.0, 10.0, nbins=5)
    line = Polynomial("line", x, [0.0, 1.0])
    binned = BinSamplingDensity("line_binned", "", x, line)
    # average of f(x) = x over [0, 2)
    assert binned.evaluate() == pytest.approx(1.0, rel=1e-12)
    x.set_val(9.0)
    assert binned.evaluate() == pytest.approx(9.0, rel=1e-12)


def test_gaussian_bin_average(x, gauss, binned_gauss):
    x.set_val(4.5)
    expected = gauss.analytic_integral(x, 4.0, 5.0)
    assert binned_gauss.get_val() == pytest.approx(expected, rel=1e-4)
    assert binned_gauss.get_val({x}) == pytest.approx(expected / gauss.normalization({x}), rel=1e-4)
    # bin averaging differs from the value at the bin centre for a curved density
    assert binned_gauss.get_val() != pytest.approx(gauss.get_val(), rel=1e-3)


def test_evaluate_restores_observable(x, gauss, binned_gauss):
    x.set_val(4.37)
    before = gauss.get_val()
    binned_gauss.evaluate({x})
    assert x.value == 4.37
    assert EvalCacheManager.cache_enabled()
    # the restore is propagated, so the density does not keep a sampled value
    assert gauss.is_value_dirty()
    assert gauss.get_val() == before


def test_bin_boundaries(x, binned_gauss):
    b1 = binned_gauss.bin_boundaries()
    b2 = binned_gauss.bin_boundaries()
    npt.assert_array_equal(b1, np.arange(11.0))
    npt.assert_array_equal(b1, b2)
    assert np.all(np.diff(b1) > 0)
    assert not b1.flags.writeable
    assert not binned_gauss.is_shape_dirty()


def test_bin_boundaries_follow_rebinning(x, binned_gauss):
    binned_gauss.bin_boundaries()
    x.set_bins(4)
    assert binned_gauss.is_shape_dirty()
    npt.assert_allclose(binned_gauss.bin_boundaries(), [0.0, 2.5, 5.0, 7.5, 10.0])

    x.set_binning([0.0, 1.0, 10.0])
    npt.assert_array_equal(binned_gauss.bin_boundaries(), [0.0, 1.0, 10.0])
    x.set_val(4.5)
    expected = binned_gauss.density.analytic_integral(x, 1.0, 10.0) / 9.0
    assert binned_gauss.get_val() == pytest.approx(expected, rel=1e-4)


def test_plot_queries(x, binned_gauss):
    assert binned_gauss.bin_boundaries(x, 2.0, 5.0) == [2.0, 3.0, 4.0]
    assert binned_gauss.plot_sampling_hint(x, 2.0, 5.0) == [2.5, 3.5, 4.5]
    # half-open: the lower limit is included, the upper excluded
    assert binned_gauss.plot_sampling_hint(x, 2.5, 3.5) == [2.5]
    assert binned_gauss.bin_boundaries(x, 0.0, 10.0) == list(np.arange(10.0))
    assert binned_gauss.bin_boundaries(x, 20.0, 30.0) == []


def test_plot_queries_with_units():
    r = RealVar("r", 1.0, 0.0, 10.0, units="kpc", nbins=10)
    flat = Uniform("flat", r)
    binned = BinSamplingDensity("flat_binned", "", r, flat)
    assert binned.bin_boundaries(r, "1200 pc", "4700 pc") == [2.0, 3.0, 4.0]
    assert binned.plot_sampling_hint(r, "1200 pc", "4700 pc") == [1.5, 2.5, 3.5, 4.5]


def test_plot_queries_wrong_observable(y, binned_gauss, caplog):
    with caplog.at_level(logging.ERROR, logger="binsampling"):
        assert binned_gauss.bin_boundaries(y, 0.0, 1.0) == []
    assert len(_errors(caplog)) == 1

    caplog.clear()
    with caplog.at_level(logging.ERROR, logger="binsampling"):
        assert binned_gauss.plot_sampling_hint(y, 0.0, 1.0) == []
    assert len(_errors(caplog)) == 1


def test_evaluate_batch_matches_scalar(x, binned_gauss):
    xs = np.array([0.2, 3.9, 4.0, 4.5, 4.999, 5.0, 7.3, 10.0])
    batch = binned_gauss.evaluate_batch(xs, {x})
    assert batch.shape == xs.shape

    scalar = []
    for v in xs:
        x.set_val(v)
        scalar.append(binned_gauss.evaluate({x}))
    npt.assert_array_equal(batch, scalar)


def test_evaluate_batch_inputs(x, binned_gauss):
    xs = [0.5, 4.5, 4.6, 6.1]
    ref = binned_gauss.evaluate_batch(np.array(xs))
    npt.assert_array_equal(binned_gauss.evaluate_batch(xs), ref)
    npt.assert_array_equal(binned_gauss.evaluate_batch(tuple(xs)), ref)
    # same bin, same value
    assert ref[1] == ref[2]

    grid = binned_gauss.evaluate_batch(np.array(xs).reshape(2, 2))
    assert grid.shape == (2, 2)
    npt.assert_array_equal(grid.ravel(), ref)

    assert binned_gauss.evaluate_batch([]).shape == (0,)
    # the observable is not moved by batch evaluation
    assert x.value == 0.5


def test_evaluate_batch_memoize_bins(x, binned_gauss):
    xs = np.random.default_rng(1).uniform(0.0, 10.0, 200)
    baseline = binned_gauss.evaluate_batch(xs, {x})
    memoized = binned_gauss.evaluate_batch(xs, {x}, memoize_bins=True)
    npt.assert_array_equal(memoized, baseline)


def test_evaluate_batch_simarray():
    r = RealVar("r", 1.0, 0.0, 10.0, units="kpc", nbins=10)
    line = Polynomial("line", r, [0.0, 1.0])
    binned = BinSamplingDensity("line_binned", "", r, line)
    values = binned.evaluate_batch(SimArray([500.0, 2500.0, 7500.0], "pc"))
    npt.assert_allclose(values, [0.5, 2.5, 7.5], rtol=1e-12)


def test_evaluate_batch_dask(x, binned_gauss):
    da = pytest.importorskip("dask.array")
    xs = np.linspace(0.1, 9.9, 25)
    lazy = da.from_array(xs, chunks=7)
    npt.assert_array_equal(binned_gauss.evaluate_batch(lazy, {x}), binned_gauss.evaluate_batch(xs, {x}))


def test_exception_in_density(caplog):
    x = RealVar("x", 0.7, 0.0, 1.0, nbins=2)

    def fails_above_half(v):
        if v > 0.5:
            raise RuntimeError("cannot evaluate")
        return 1.0

    d = LambdaDensity("fragile", fails_above_half, [x])
    binned = BinSamplingDensity("fragile_binned", "", x, d)

    with caplog.at_level(logging.ERROR, logger="binsampling"):
        with pytest.raises(RuntimeError, match="cannot evaluate"):
            binned.get_val()
    assert len(_errors(caplog)) == 1
    assert x.value == 0.7
    assert EvalCacheManager.cache_enabled()

    with pytest.raises(RuntimeError):
        binned.evaluate_batch([0.2, 0.8])
    assert x.value == 0.7
    assert EvalCacheManager.cache_enabled()

    x.set_val(0.2)
    assert binned.get_val() == pytest.approx(1.0, rel=1e-12)


def test_integrator_configuration(x, binned_gauss):
    integ = binned_gauss.integrator()
    assert integ is binned_gauss.integrator()
    assert integ.epsrel == 1e-4
    assert integ.rule == "gk21"

    integ.set_options(rule="gk15")
    x.set_val(4.5)
    assert binned_gauss.get_val() == pytest.approx(binned_gauss.density.analytic_integral(x, 4.0, 5.0), rel=1e-4)

    fine = BinSamplingDensity("fine", "", x, binned_gauss.density, epsilon=1e-7)
    assert fine.integrator().epsrel == 1e-7


def test_integrate(x, line):
    binned = BinSamplingDensity("line_binned", "", x, line)
    assert binned.integrate(None, 0.0, 4.0) == pytest.approx(8.0, rel=1e-12)
    assert binned.integrate({x}, 0.0, 4.0) == pytest.approx(8.0 / 50.0, rel=1e-12)


def test_copy(x, binned_gauss):
    binned_gauss.integrator().set_options(rule="trapezoid")
    binned_gauss.bin_boundaries()

    other = binned_gauss.copy("other")
    assert other.name == "other"
    assert other.density is binned_gauss.density
    assert other.observable is x
    assert other.epsilon == binned_gauss.epsilon
    assert other.integrator() is not binned_gauss.integrator()
    assert other.integrator().rule == "gk21"

    same = copy.copy(binned_gauss)
    assert same.name == binned_gauss.name
    assert same._integrator is None

    other.bin_boundaries()
    x.set_bins(3)
    assert other.is_shape_dirty()
    assert binned_gauss.is_shape_dirty()


def test_enable_perf(x, binned_gauss, caplog):
    assert binned_gauss.enable_perf(time=True) is binned_gauss
    with caplog.at_level(logging.INFO, logger="binsampling"):
        binned_gauss.evaluate_batch([0.5, 1.5, 2.5], {x})
    text = "\n".join(r.getMessage() for r in caplog.records)
    assert "integrate" in text
    assert "boundaries" in text
    assert binned_gauss._perf_stats.steps["integrate"].calls == 3

    binned_gauss.enable_perf(time=False)
    assert binned_gauss._perf_stats.report() == ""


def test_trace_debug(x, binned_gauss, caplog):
    with caplog.at_level(logging.DEBUG, logger="binsampling"):
        binned_gauss.evaluate()
    messages = [r.getMessage() for r in caplog.records]
    assert any("enter: evaluate" in m for m in messages)
    assert any("leave: evaluate" in m for m in messages)


def test_integrate_bins_policy(x, gauss, binned_gauss):
    assert integrate_bins(gauss, x, -1.0) is gauss
    assert integrate_bins(gauss, x, 0.0, binned=False) is gauss

    wrapped = integrate_bins(gauss, x, 0.0)
    assert isinstance(wrapped, BinSamplingDensity)
    assert wrapped.name == "gauss_binSampling"
    assert wrapped.epsilon == 1e-4
    assert wrapped.density is gauss

    wrapped = integrate_bins(gauss, x, 1e-6, binned=False)
    assert isinstance(wrapped, BinSamplingDensity)
    assert wrapped.epsilon == 1e-6

    # already binned distributions are returned as they are
    assert integrate_bins(binned_gauss, x, 1e-6) is binned_gauss


def test_nested_adapters_agree(x, gauss):
    x.set_val(4.5)
    inner = BinSamplingDensity("inner", "", x, gauss)
    outer = BinSamplingDensity("outer", "", x, inner)
    # the inner adapter is constant over each bin, so averaging again changes nothing
    assert outer.get_val() == pytest.approx(inner.get_val(), rel=1e-10)
    assert x.value == 4.5
    assert math.isfinite(outer.get_val())
