import math

import pytest

from binsampling.densities import DensityBase, Exponential, Gaussian, LambdaDensity, Polynomial, Uniform
from binsampling.util._type import DensityLike
from binsampling.util.tracecache import EvalCacheManager, disable_caching
from binsampling.variables import RealVar


def test_density_graph(x, y):
    mean = RealVar("mean", 1.0, -5.0, 5.0)
    g = Gaussian("g", x, mean=mean, sigma=1.0)
    assert g.depends_on(x)
    assert g.depends_on(mean)
    assert not g.depends_on(y)
    assert g.variables() == [x, mean]
    assert g.servers() == (x, mean)
    assert isinstance(g, DensityLike)
    assert not g.is_binned_distribution()


def test_density_value_cache(x, line):
    x.set_val(2.0)
    assert line.get_val() == 2.0
    assert not line.is_value_dirty()

    x.set_val(3.0)
    assert line.is_value_dirty()
    assert line.get_val() == 3.0

    # memoized values are bypassed while caching is disabled
    with disable_caching():
        assert not EvalCacheManager.cache_enabled()
        x.set_val(4.0)
        assert line.get_val() == 4.0
    assert EvalCacheManager.cache_enabled()


def test_density_value_cache_after_disabled_block(x, line):
    x.set_val(2.0)
    assert line.get_val() == 2.0
    with disable_caching():
        x.set_val(4.0)
    assert line.is_value_dirty()
    assert line.get_val() == 4.0
    assert not line.is_value_dirty()


def test_disable_caching_nests():
    with disable_caching():
        with disable_caching():
            assert not EvalCacheManager.cache_enabled()
        assert not EvalCacheManager.cache_enabled()
    assert EvalCacheManager.cache_enabled()

    with pytest.raises(KeyError):
        with disable_caching():
            raise KeyError("x")
    assert EvalCacheManager.cache_enabled()


def test_normalization_analytic(x, uniform, line, gauss):
    assert uniform.get_val({x}) == pytest.approx(3.0 / 30.0)
    x.set_val(4.0)
    assert line.get_val({x}) == pytest.approx(4.0 / 50.0)

    expected = 0.6 * math.sqrt(2 * math.pi) * 0.5 * (
        math.erf((10.0 - 4.2) / (0.6 * math.sqrt(2))) - math.erf((0.0 - 4.2) / (0.6 * math.sqrt(2)))
    )
    assert gauss.normalization({x}) == pytest.approx(expected, rel=1e-12)


def test_normalization_ignores_other_vars(x, y, line):
    assert line.normalization({y}) == 1.0
    assert line.get_val(None) == line.get_val(set()) == 0.5


def test_normalization_numeric_matches_analytic(x):
    e = Exponential("e", x, c=-0.3)
    num = LambdaDensity("num", lambda v: math.exp(-0.3 * v), [x])
    assert num.normalization({x}) == pytest.approx(e.normalization({x}), rel=1e-8)
    # the numeric integration leaves the observable where it was
    assert x.value == 0.5


def test_normalization_follows_parameters(x):
    c = RealVar("c", 1.0, 0.0, 5.0)
    flat = Uniform("flat", x, c=c)
    assert flat.normalization({x}) == pytest.approx(10.0)
    c.set_val(2.0)
    assert flat.normalization({x}) == pytest.approx(20.0)
    # the normalised value does not depend on c
    assert flat.get_val({x}) == pytest.approx(0.1)


def test_normalization_multi_dimensional(x, y):
    f = LambdaDensity("xy", lambda a, b: a * b, [x, y])
    with pytest.raises(ValueError):
        f.get_val({x, y})


def test_polynomial_and_exponential(x):
    p = Polynomial("p", x, [1.0, 2.0, 3.0])
    x.set_val(2.0)
    assert p.get_val() == 1.0 + 4.0 + 12.0
    assert p.analytic_integral(x, 0.0, 1.0) == pytest.approx(1.0 + 1.0 + 1.0)

    e = Exponential("e", x, c=0.0)
    assert e.analytic_integral(x, 0.0, 10.0) == 10.0

    with pytest.raises(ValueError):
        Polynomial("empty", x, [])


def test_abstract_density():
    with pytest.raises(TypeError):
        DensityBase("abstract")
