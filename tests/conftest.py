import pytest

from binsampling.densities import Gaussian, Polynomial, Uniform
from binsampling.sampling import BinSamplingDensity
from binsampling.variables import RealVar


@pytest.fixture
def x():
    """
    Observable over [0, 10] with 10 unit-width bins, at 0.5 (first bin).
    """
    return RealVar("x", 0.5, 0.0, 10.0, nbins=10)


@pytest.fixture
def y():
    return RealVar("y", 1.0, -1.0, 3.0, nbins=4)


@pytest.fixture
def uniform(x):
    return Uniform("flat", x, c=3.0)


@pytest.fixture
def line(x):
    """f(x) = x"""
    return Polynomial("line", x, [0.0, 1.0])


@pytest.fixture
def gauss(x):
    return Gaussian("gauss", x, mean=4.2, sigma=0.6)


@pytest.fixture
def binned_gauss(x, gauss):
    return BinSamplingDensity("gauss_binned", "binned gauss", x, gauss)
