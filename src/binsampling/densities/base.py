"""
Base class of densities.

A density is a real function of some :class:`~binsampling.variables.realvar.RealVar`
(and possibly other densities) that can be normalised over one of its
variables. The bin sampler only relies on a small capability:

* ``depends_on(var)`` - whether the value changes when ``var`` changes,
* ``evaluate()`` - the unnormalised value at the current variable values,
* ``get_val(norm_set)`` - the value normalised over ``norm_set``.

:class:`DensityBase` implements the last one on top of ``evaluate`` and adds
two kinds of memoization:

* the last unnormalised value, invalidated by value-dirty notifications from
  its servers and bypassed while caching is disabled
  (:func:`~binsampling.util.tracecache.disable_caching`);
* normalisation integrals, keyed on the integration range and the values of
  all other variables.

Writing a density
-----------------

.. code-block:: python

   class Linear(DensityBase):
       def __init__(self, name, x, slope):
           self.x = x
           self.slope = slope
           super().__init__(name, servers=[x])

       def evaluate(self) -> float:
           return 1.0 + self.slope * self.x.value

       def analytic_integral(self, var, lo, hi):
           if var is not self.x:
               return None
           return (hi - lo) + 0.5 * self.slope * (hi**2 - lo**2)

``analytic_integral`` is optional; without it the normalisation is computed
numerically with :class:`~binsampling.sampling.integrator.AdaptiveIntegrator`.
"""

import weakref
from abc import ABC, abstractmethod
from collections.abc import Collection, Sequence
from typing import TYPE_CHECKING, Any, Union

from binsampling.log import logger
from binsampling.util.tracecache import EvalCacheManager, TraceManager, disable_caching
from binsampling.variables.realvar import RealVar

if TYPE_CHECKING:
    from binsampling.sampling.integrator import AdaptiveIntegrator

__all__ = ["DensityBase"]

Server = Union[RealVar, "DensityBase"]

_NORM_CACHE_SIZE = 64


class DensityBase(ABC):
    """
    Abstract density over :class:`RealVar` servers.

    Parameters
    ----------
    name : str
        Identifier, also used in diagnostics.
    title : str, optional
        Free-form description.
    servers : sequence of RealVar or DensityBase
        Direct dependencies. The density registers itself as a client of each
        of them and is told when their values change.
    """

    def __init__(self, name: str, title: str = "", servers: Sequence[Server] = ()) -> None:
        self.name = name
        self.title = title or name
        self._servers: tuple[Server, ...] = tuple(servers)
        self._clients: weakref.WeakSet[Any] = weakref.WeakSet()
        self._value_cache: float | None = None
        self._value_dirty = True
        self._norm_cache: dict[tuple, float] = {}
        self._norm_integrator: AdaptiveIntegrator | None = None
        for server in self._servers:
            server.add_client(self)

    # ------------------- graph ------------------------------------------#

    def servers(self) -> tuple[Server, ...]:
        return self._servers

    def depends_on(self, var: RealVar) -> bool:
        """Whether ``var`` is reachable from this density through its servers."""
        for server in self._servers:
            if server is var:
                return True
            if isinstance(server, DensityBase) and server.depends_on(var):
                return True
        return False

    def variables(self) -> list[RealVar]:
        """All leaf variables, in first-seen order."""
        seen: dict[int, RealVar] = {}
        for server in self._servers:
            if isinstance(server, RealVar):
                seen.setdefault(id(server), server)
            else:
                for v in server.variables():
                    seen.setdefault(id(v), v)
        return list(seen.values())

    def add_client(self, client: Any) -> None:
        self._clients.add(client)

    def remove_client(self, client: Any) -> None:
        self._clients.discard(client)

    def set_value_dirty(self) -> None:
        """Mark the memoized value stale and tell the clients."""
        self._value_dirty = True
        for client in list(self._clients):
            client.set_value_dirty()

    def is_value_dirty(self) -> bool:
        return self._value_dirty

    def is_binned_distribution(self) -> bool:
        """Whether the density is already piecewise constant over bins."""
        return False

    # ------------------- evaluation -------------------------------------#

    @abstractmethod
    def evaluate(self) -> float:
        """Unnormalised value at the current values of the variables."""
        raise NotImplementedError(
            f"{self.__class__.__name__} must implement evaluate"
        )

    def analytic_integral(self, var: RealVar, lo: float, hi: float) -> float | None:
        """Integral of :meth:`evaluate` over ``var`` in ``[lo, hi]``, or None if unknown."""
        return None

    def get_val(self, norm_set: Collection[RealVar] | None = None) -> float:
        """
        Value of the density, normalised over ``norm_set``.

        Parameters
        ----------
        norm_set : collection of RealVar, optional
            Variables to normalise over. Variables the density does not depend
            on are ignored; ``None`` or empty returns the unnormalised value.
        """
        raw = self._get_raw_value()
        if not norm_set:
            return raw
        return raw / self.normalization(norm_set)

    def _get_raw_value(self) -> float:
        if not EvalCacheManager.cache_enabled():
            return float(self.evaluate())
        if self._value_dirty or self._value_cache is None:
            self._value_cache = float(self.evaluate())
            self._value_dirty = False
            TraceManager.trace_cache_event(self, "miss")
        return self._value_cache

    def normalization(self, norm_set: Collection[RealVar]) -> float:
        """
        Integral of the density over the range of the variable in ``norm_set``.

        Raises
        ------
        ValueError
            If the density depends on more than one variable of ``norm_set``.
        """
        deps = [v for v in norm_set if self.depends_on(v)]
        if not deps:
            return 1.0
        if len(deps) > 1:
            raise ValueError(
                f"{self.name}: only one-dimensional normalisation is supported, "
                f"got {[v.name for v in deps]}"
            )
        var = deps[0]
        key = (
            var.name, var.min, var.max,
            tuple((v.name, v.value) for v in self.variables() if v is not var),
        )
        cached = self._norm_cache.get(key)
        if cached is not None:
            return cached

        integral = self.analytic_integral(var, var.min, var.max)
        if integral is None:
            integral = self._numeric_integral(var, var.min, var.max)
        if not integral > 0:
            logger.warning("%s: normalisation integral over %s is %g", self.name, var.name, integral)

        if len(self._norm_cache) >= _NORM_CACHE_SIZE:
            self._norm_cache.clear()
        self._norm_cache[key] = integral
        return integral

    def _numeric_integral(self, var: RealVar, lo: float, hi: float) -> float:
        # local import to avoid cycles
        from binsampling.sampling.binding import BinIntegrand
        from binsampling.sampling.integrator import AdaptiveIntegrator

        if self._norm_integrator is None:
            self._norm_integrator = AdaptiveIntegrator(epsrel=1e-8)
        with var.holding_value():
            with disable_caching():
                return self._norm_integrator.integral(BinIntegrand(self, var), lo, hi)

    def __repr__(self) -> str:
        return f"<Density {self.__class__.__name__} {self.name}>"
