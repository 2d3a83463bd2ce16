"""
Concrete densities.

Parameters of these densities can be plain numbers (fixed) or
:class:`~binsampling.variables.realvar.RealVar` instances, in which case the
density follows their current value and is notified when it changes.
"""

import math
from collections.abc import Callable, Sequence

import numpy as np
from scipy.special import erf

from binsampling.variables.realvar import RealVar

from .base import DensityBase

__all__ = ["Uniform", "Polynomial", "Gaussian", "Exponential", "LambdaDensity"]

Param = RealVar | float


def _value(p: Param) -> float:
    return p.value if isinstance(p, RealVar) else float(p)


def _var_servers(x: RealVar, *params: Param) -> list[RealVar]:
    servers = [x]
    for p in params:
        if isinstance(p, RealVar) and p is not x and all(p is not s for s in servers):
            servers.append(p)
    return servers


class Uniform(DensityBase):
    """Constant density ``c`` over ``x``."""

    def __init__(self, name: str, x: RealVar, c: Param = 1.0, title: str = "") -> None:
        self.x = x
        self.c = c
        super().__init__(name, title, servers=_var_servers(x, c))

    def evaluate(self) -> float:
        return _value(self.c)

    def analytic_integral(self, var, lo, hi):
        if var is not self.x:
            return None
        return _value(self.c) * (hi - lo)


class Polynomial(DensityBase):
    """``sum_i coefficients[i] * x**i``."""

    def __init__(self, name: str, x: RealVar, coefficients: Sequence[Param], title: str = "") -> None:
        if len(coefficients) == 0:
            raise ValueError("Polynomial needs at least one coefficient")
        self.x = x
        self.coefficients = tuple(coefficients)
        super().__init__(name, title, servers=_var_servers(x, *self.coefficients))

    def evaluate(self) -> float:
        x = self.x.value
        return sum(_value(c) * x**i for i, c in enumerate(self.coefficients))

    def analytic_integral(self, var, lo, hi):
        if var is not self.x or any(c is var for c in self.coefficients):
            return None
        return sum(
            _value(c) * (hi ** (i + 1) - lo ** (i + 1)) / (i + 1)
            for i, c in enumerate(self.coefficients)
        )


class Gaussian(DensityBase):
    """Unnormalised Gaussian ``exp(-(x - mean)**2 / (2 sigma**2))``."""

    def __init__(self, name: str, x: RealVar, mean: Param, sigma: Param, title: str = "") -> None:
        self.x = x
        self.mean = mean
        self.sigma = sigma
        super().__init__(name, title, servers=_var_servers(x, mean, sigma))

    def evaluate(self) -> float:
        t = (self.x.value - _value(self.mean)) / _value(self.sigma)
        return math.exp(-0.5 * t * t)

    def analytic_integral(self, var, lo, hi):
        if var is not self.x or self.mean is var or self.sigma is var:
            return None
        mean, sigma = _value(self.mean), _value(self.sigma)
        scale = sigma * math.sqrt(2.0)
        return float(sigma * math.sqrt(0.5 * math.pi) * (erf((hi - mean) / scale) - erf((lo - mean) / scale)))


class Exponential(DensityBase):
    """``exp(c * x)``."""

    def __init__(self, name: str, x: RealVar, c: Param, title: str = "") -> None:
        self.x = x
        self.c = c
        super().__init__(name, title, servers=_var_servers(x, c))

    def evaluate(self) -> float:
        return math.exp(_value(self.c) * self.x.value)

    def analytic_integral(self, var, lo, hi):
        if var is not self.x or self.c is var:
            return None
        c = _value(self.c)
        if c == 0.0:
            return hi - lo
        return (math.exp(c * hi) - math.exp(c * lo)) / c


class LambdaDensity(DensityBase):
    """
    Density given by an arbitrary function of declared variables.

    ``func`` receives the current values of ``variables`` as positional
    arguments, in order. The normalisation is always computed numerically.

    >>> x = RealVar("x", 0.5, 0.0, 1.0)
    >>> quad = LambdaDensity("quad", lambda v: v * v, [x])
    """

    def __init__(
        self,
        name: str,
        func: Callable[..., float],
        variables: Sequence[RealVar],
        title: str = "",
    ) -> None:
        self.func = func
        super().__init__(name, title, servers=list(variables))

    def evaluate(self) -> float:
        return float(np.asarray(self.func(*(v.value for v in self._servers))))
