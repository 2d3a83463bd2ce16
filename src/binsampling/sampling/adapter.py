"""
Bin-averaged densities.

When a binned dataset is fitted with a continuous density, the usual proxy for
the probability of a bin is the density at the bin centre. That is exact only
if the second derivative of the density vanishes over the bin. For densities
with larger curvature, :class:`BinSamplingDensity` integrates the wrapped
density over each bin with an adaptive integrator and divides by the bin
width, which gives the true bin-averaged probability density. This usually
costs about 21 times more density evaluations, but removes the curvature bias.

Usage
-----

.. code-block:: python

   from binsampling.densities import Gaussian
   from binsampling.sampling import BinSamplingDensity
   from binsampling.variables import RealVar

   x = RealVar("x", 0.0, -5.0, 5.0, nbins=10)
   gauss = Gaussian("gauss", x, mean=0.0, sigma=0.5)
   binned = BinSamplingDensity("gauss_binned", "binned gauss", x, gauss)

   binned.get_val({x})                    # average over the bin of x.value
   binned.evaluate_batch([-1.2, 0.3], {x})  # one bin average per input

The binning is taken from the observable. Changing it (``x.set_bins(...)``)
is picked up on the next evaluation. The integrator is available through
:meth:`BinSamplingDensity.integrator` to change the rule or the precision.

Only one-dimensional densities are supported.

Threading
---------
Evaluation moves the observable to the sampling points and puts it back
afterwards. One instance (and its observable) must therefore not be evaluated
from several threads at the same time; use one instance per thread or an
external lock.
"""

import uuid
from collections.abc import Collection
from typing import Any, overload

import numpy as np
from pynbody import units
from pynbody.array import SimArray

from binsampling.densities.base import DensityBase
from binsampling.errors import ConfigurationError
from binsampling.log import logger
from binsampling.util._type import ArrayLike1D, Self, ValueLike
from binsampling.util.deps import is_dask_array
from binsampling.util.perf import PerfStats
from binsampling.util.tracecache import TraceManager, disable_caching
from binsampling.variables.realvar import RealVar

from .binding import BinIntegrand
from .integrator import DEFAULT_EPSILON, AdaptiveIntegrator

__all__ = ["BinSamplingDensity"]


class BinSamplingDensity(DensityBase):
    """
    Adapter turning a continuous density into a bin-averaged one.

    Parameters
    ----------
    name : str
        Identifier of the new density.
    title : str
        Free-form description (e.g. for plotting).
    observable : RealVar
        The binned observable to integrate over.
    density : DensityBase
        The density whose bins are sampled. Must depend on ``observable``.
    epsilon : float, optional
        Relative precision of the bin integrals. The adaptive integrator
        usually reaches ``1e-4`` or better in its first iteration, so asking
        for lower precision rarely has an effect.

    Raises
    ------
    ConfigurationError
        If ``density`` does not depend on ``observable`` or ``epsilon`` is not
        positive.
    """

    def __init__(
        self,
        name: str,
        title: str,
        observable: RealVar,
        density: DensityBase,
        epsilon: float = DEFAULT_EPSILON,
    ) -> None:
        if not density.depends_on(observable):
            raise ConfigurationError(
                f"BinSamplingDensity({name}): The density {density.name} needs to depend on the observable "
                f"{observable.name}"
            )
        if not epsilon > 0:
            raise ConfigurationError(f"BinSamplingDensity({name}): epsilon must be positive, got {epsilon}")

        super().__init__(name, title, servers=[density, observable])
        self._density = density
        self._observable = observable
        self._rel_epsilon = float(epsilon)

        self._bin_boundaries: np.ndarray | None = None
        self._shape_dirty = True
        self._integrator: AdaptiveIntegrator | None = None
        self._perf_stats = PerfStats(time=False, memory=False)

        observable.add_binning_listener(self)

    def copy(self, name: str | None = None) -> "BinSamplingDensity":
        """
        Return an independent instance with the same configuration.

        The copy wraps the same density and observable with the same epsilon,
        but builds its own boundary cache and integrator on first use, so
        runtime changes made through :meth:`integrator` are not carried over.
        """
        return BinSamplingDensity(
            name or self.name, self.title, self._observable, self._density, self._rel_epsilon
        )

    def __copy__(self) -> "BinSamplingDensity":
        return self.copy()

    # ------------------- configuration ------------------------------------#

    @property
    def epsilon(self) -> float:
        return self._rel_epsilon

    @property
    def density(self) -> DensityBase:
        return self._density

    @property
    def observable(self) -> RealVar:
        return self._observable

    def integrator(self) -> AdaptiveIntegrator:
        """
        Return the integrator that is used to sample the bins.

        It is created on first use. Use
        :meth:`~binsampling.sampling.integrator.AdaptiveIntegrator.set_options`
        to alter the rule or the sampling accuracy. Such changes live as long
        as this instance and are not propagated to copies.
        """
        if self._integrator is None:
            self._integrator = AdaptiveIntegrator(
                epsrel=self._rel_epsilon,
                rule="gk21",
                max_subintervals=None,  # run time is steered by epsilon alone
            )
        return self._integrator

    def enable_perf(self, time: bool = True, memory: bool = False) -> Self:
        """
        Enable or disable per-step profiling of :meth:`evaluate_batch`.

        The statistics are reported through the package logger after each call.
        """
        self._perf_stats.time_enabled = time
        self._perf_stats.memory_enabled = memory
        return self

    def is_binned_distribution(self) -> bool:
        return True

    # ------------------- boundary cache -----------------------------------#

    def set_shape_dirty(self) -> None:
        """Called by the observable when its binning changes."""
        self._shape_dirty = True

    def is_shape_dirty(self) -> bool:
        return self._shape_dirty

    def _boundaries(self) -> np.ndarray:
        if self._shape_dirty or self._bin_boundaries is None or self._bin_boundaries.size == 0:
            edges = np.array(self._observable.binning.array, dtype=float)
            edges.setflags(write=False)
            self._bin_boundaries = edges
            self._shape_dirty = False
            logger.debug("[%s] recomputed %d bin boundaries", self, edges.size)
        return self._bin_boundaries

    @staticmethod
    def _locate(boundaries: np.ndarray, x: Any) -> Any:
        # upper bound minus one, clamped to the valid bins like Binning.bin_index
        return np.clip(np.searchsorted(boundaries, x, side="right") - 1, 0, boundaries.size - 2)

    def _is_own_observable(self, obs: RealVar, caller: str) -> bool:
        if obs is self._observable:
            return True
        logger.error(
            "BinSamplingDensity::%s(%s): observable '%s' is not the observable of this density ('%s').",
            caller, self.name, getattr(obs, "name", obs), self._observable.name,
        )
        return False

    @overload
    def bin_boundaries(self) -> np.ndarray: ...
    @overload
    def bin_boundaries(self, observable: RealVar, xlo: ValueLike, xhi: ValueLike) -> list[float]: ...

    def bin_boundaries(
        self,
        observable: RealVar | None = None,
        xlo: ValueLike | None = None,
        xhi: ValueLike | None = None,
    ) -> np.ndarray | list[float]:
        """
        Bin boundaries of the observable.

        Without arguments, return the cached, read-only array of all
        boundaries; it is recomputed whenever the binning of the observable
        changed since the last call.

        With ``(observable, xlo, xhi)``, return the boundaries inside
        ``[xlo, xhi)``, so the density is plotted correctly. If ``observable``
        is not the observable of this density, an error is logged and an empty
        list is returned.
        """
        if observable is None:
            return self._boundaries()
        if not self._is_own_observable(observable, "bin_boundaries"):
            return []
        lo, hi = self._plot_range(xlo, xhi)
        return [float(v) for v in self._boundaries() if lo <= v < hi]

    def plot_sampling_hint(self, observable: RealVar, xlo: ValueLike, xhi: ValueLike) -> list[float]:
        """
        Bin centres inside ``[xlo, xhi)``, so the density is plotted correctly.

        If ``observable`` is not the observable of this density, an error is
        logged and an empty list is returned.
        """
        if not self._is_own_observable(observable, "plot_sampling_hint"):
            return []
        lo, hi = self._plot_range(xlo, xhi)
        binning = observable.binning
        centres = (binning.bin_center(i) for i in range(binning.num_bins))
        return [c for c in centres if lo <= c < hi]

    def _plot_range(self, xlo: ValueLike | None, xhi: ValueLike | None) -> tuple[float, float]:
        lo = -np.inf if xlo is None else self._observable.as_value(xlo)
        hi = np.inf if xhi is None else self._observable.as_value(xhi)
        return lo, hi

    # ------------------- integration --------------------------------------#

    def integrate(self, norm_set: Collection[RealVar] | None, low: float, high: float) -> float:
        """
        Integrate the wrapped density over ``[low, high]`` under ``norm_set``.

        The observable is left at the last sampling point; callers restore it.
        """
        binding = BinIntegrand(self._density, self._observable, norm_set)
        try:
            return self.integrator().integral(binding, low, high)
        except Exception as e:
            logger.error("Error integrating %s over [%g, %g]: %s, when evaluating %s", self._density.name, low, high, e, self)
            raise

    def evaluate(self, norm_set: Collection[RealVar] | None = None) -> float:
        """
        Integrate the wrapped density over the current bin of the observable.

        Returns the integral divided by the bin width, i.e. the average of the
        density over the bin. The observable keeps its value.

        For a constant density the result equals the constant up to a few
        units in the last place: the quadrature sums weighted samples and
        divides by a bin width that is generally not exactly representable.
        """
        with TraceManager.trace_phase(self, "evaluate"):
            boundaries = self._boundaries()
            b = int(self._locate(boundaries, self._observable.value))
            low, high = float(boundaries[b]), float(boundaries[b + 1])

            # no memoized reads or stores while the integrator moves x
            with self._observable.holding_value():
                with disable_caching():
                    result = self.integrate(norm_set, low, high) / (high - low)
        return result

    def get_val(self, norm_set: Collection[RealVar] | None = None) -> float:
        return self.evaluate(norm_set)

    def evaluate_batch(
        self,
        xs: ArrayLike1D | Any,
        norm_set: Collection[RealVar] | None = None,
        memoize_bins: bool = False,
    ) -> np.ndarray:
        """
        Integrate the wrapped density over the bin of each value in ``xs``.

        Parameters
        ----------
        xs : array-like, SimArray or dask array
            Values of the observable. A :class:`~pynbody.array.SimArray` with
            units is converted to the units of the observable first. A dask
            array is evaluated block by block with the single-threaded
            scheduler.
        norm_set : collection of RealVar, optional
            Normalisation set for the wrapped density.
        memoize_bins : bool, optional
            Integrate each bin once per call and reuse the value for all
            inputs falling into it. The result is identical to the default of
            one integration per input.

        Returns
        -------
        numpy.ndarray
            Bin averages, same shape as ``xs``. Each entry equals what
            :meth:`evaluate` returns with the observable set to that value.
        """
        if is_dask_array(xs):
            logger.debug("[%s] evaluating dask input with %d blocks", self, xs.npartitions)
            lazy = xs.map_blocks(
                self._evaluate_block,
                norm_set=norm_set,
                memoize_bins=memoize_bins,
                dtype=float,
                meta=np.array((), dtype=float),
                name=f"bin-sampling-{uuid.uuid4().hex}",
            )
            return np.asarray(lazy.compute(scheduler="single-threaded"))

        if isinstance(xs, SimArray) and self._observable.units is not None \
                and not isinstance(xs.units, units.NoUnit):
            xs = xs.in_units(self._observable.units)
        x = np.asarray(xs, dtype=float)
        return self._evaluate_block(x, norm_set=norm_set, memoize_bins=memoize_bins)

    def _evaluate_block(
        self,
        x: np.ndarray,
        norm_set: Collection[RealVar] | None = None,
        memoize_bins: bool = False,
    ) -> np.ndarray:
        flat = np.asarray(x, dtype=float).reshape(-1)
        results = np.empty(flat.shape, dtype=float)
        memo: dict[int, float] = {}

        with TraceManager.trace_phase(self, "evaluate_batch"), self._perf_stats as stats:
            with stats.step("boundaries"):
                boundaries = self._boundaries()
                bins = self._locate(boundaries, flat)

            with self._observable.holding_value():
                with disable_caching():
                    for i, b in enumerate(bins):
                        b = int(b)
                        if memoize_bins and b in memo:
                            results[i] = memo[b]
                            continue
                        low, high = float(boundaries[b]), float(boundaries[b + 1])
                        with stats.step("integrate"):
                            value = self.integrate(norm_set, low, high) / (high - low)
                        results[i] = value
                        if memoize_bins:
                            memo[b] = value

        self._perf_stats.report(logger, title=f"{self!r} : {flat.size} values")
        return results.reshape(np.shape(x))

    def __repr__(self) -> str:
        return (f"<BinSamplingDensity {self.name} of {self._density.name} "
                f"over {self._observable.name}, epsilon={self._rel_epsilon:g}>")
