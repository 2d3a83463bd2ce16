"""
Adaptive one-dimensional quadrature.

:class:`AdaptiveIntegrator` is a thin, reconfigurable front-end to
:func:`scipy.integrate.quad_vec`: globally adaptive subdivision of the
interval with a fixed-order Gauss-Kronrod rule (21 points per interval by
default), iterated until the estimated relative error drops below ``epsrel``.

By default the number of subintervals is not capped, so run time is steered
by the precision target alone. If the integrator stops without reaching the
target (subinterval cap reached, round-off), the partial result is returned
and a warning is logged.

>>> integ = AdaptiveIntegrator(epsrel=1e-6)
>>> round(integ.integral(np.sin, 0.0, np.pi), 6)
2.0
>>> integ.set_options(rule="gk15", max_subintervals=50)
"""

import sys
from typing import Any

from scipy.integrate import quad_vec

from binsampling.log import logger
from binsampling.util._type import Integrand

__all__ = ["AdaptiveIntegrator", "DEFAULT_EPSILON", "INTEGRATION_RULES"]

DEFAULT_EPSILON = 1e-4
"""Default relative precision of bin integrals."""

INTEGRATION_RULES = ("gk21", "gk15", "trapezoid")


class AdaptiveIntegrator:
    """
    Adaptive Gauss-Kronrod integrator for scalar functions of one variable.

    Parameters
    ----------
    epsrel : float, optional
        Target relative precision. Default ``1e-4``.
    epsabs : float, optional
        Absolute precision floor. It only matters for integrals that are
        (close to) zero, where a relative target cannot be met.
    rule : {"gk21", "gk15", "trapezoid"}, optional
        Quadrature rule applied on each subinterval.
    max_subintervals : int or None, optional
        Upper bound on the number of subintervals; ``None`` means unlimited.

    Attributes
    ----------
    last_error : float or None
        Error estimate of the last :meth:`integral` call.
    last_neval : int or None
        Number of function evaluations of the last call.
    last_converged : bool or None
        Whether the last call reached the precision target.
    """

    def __init__(
        self,
        epsrel: float = DEFAULT_EPSILON,
        epsabs: float = 1e-200,
        rule: str = "gk21",
        max_subintervals: int | None = None,
    ) -> None:
        self._options: dict[str, Any] = {}
        self.set_options(epsrel=epsrel, epsabs=epsabs, rule=rule, max_subintervals=max_subintervals)
        self.last_error: float | None = None
        self.last_neval: int | None = None
        self.last_converged: bool | None = None

    def set_options(self, **options: Any) -> "AdaptiveIntegrator":
        """
        Change the configuration of the integrator.

        Accepted keywords are ``epsrel``, ``epsabs``, ``rule`` and
        ``max_subintervals``. Changes are runtime-only: copies of a
        bin-sampling density build their own integrator from its epsilon.

        Raises
        ------
        ValueError
            For unknown keywords or invalid values.
        """
        unknown = set(options) - {"epsrel", "epsabs", "rule", "max_subintervals"}
        if unknown:
            raise ValueError(f"Unknown integrator options: {sorted(unknown)}")

        merged = {**self._options, **options}
        if not merged["epsrel"] > 0:
            raise ValueError(f"epsrel must be positive, got {merged['epsrel']}")
        if merged["epsabs"] < 0:
            raise ValueError(f"epsabs must be non-negative, got {merged['epsabs']}")
        if merged["rule"] not in INTEGRATION_RULES:
            raise ValueError(f"Invalid rule: {merged['rule']}, required one of {list(INTEGRATION_RULES)}")
        limit = merged["max_subintervals"]
        if limit is not None and int(limit) < 1:
            raise ValueError(f"max_subintervals must be positive or None, got {limit}")

        self._options = merged
        logger.debug("Integrator options: %s", self._options)
        return self

    def options(self) -> dict[str, Any]:
        """Return a copy of the current configuration."""
        return dict(self._options)

    @property
    def epsrel(self) -> float:
        return self._options["epsrel"]

    @property
    def rule(self) -> str:
        return self._options["rule"]

    def integral(self, f: Integrand, low: float, high: float) -> float:
        """
        Definite integral of ``f`` over ``[low, high]``.

        Exceptions raised by ``f`` propagate unchanged.
        """
        limit = self._options["max_subintervals"]
        result, error, info = quad_vec(
            f,
            low,
            high,
            epsabs=self._options["epsabs"],
            epsrel=self._options["epsrel"],
            quadrature=self._options["rule"],
            limit=sys.maxsize if limit is None else int(limit),
            full_output=True,
        )
        self.last_error = float(error)
        self.last_neval = int(info.neval)
        self.last_converged = bool(info.success)
        if not info.success:
            logger.warning(
                "Integration over [%g, %g] did not reach epsrel=%g (error estimate %g): %s",
                low, high, self._options["epsrel"], error, info.message,
            )
        return float(result)

    def __repr__(self) -> str:
        opts = ", ".join(f"{k}={v}" for k, v in self._options.items())
        return f"AdaptiveIntegrator({opts})"
