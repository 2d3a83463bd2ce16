"""
Decide whether a density should be bin-integrated before a binned fit.
"""

from binsampling.densities.base import DensityBase
from binsampling.log import logger
from binsampling.variables.realvar import RealVar

from .adapter import BinSamplingDensity
from .integrator import DEFAULT_EPSILON

__all__ = ["integrate_bins"]


def integrate_bins(
    density: DensityBase,
    observable: RealVar,
    precision: float,
    binned: bool = True,
) -> DensityBase:
    """
    Wrap ``density`` in a :class:`BinSamplingDensity` if requested.

    Parameters
    ----------
    density : DensityBase
        The density to (possibly) wrap.
    observable : RealVar
        The observable to integrate over.
    precision : float
        ``< 0`` never wraps. ``0`` wraps only binned fits, with the default
        precision ``1e-4``. ``> 0`` always wraps, with ``precision`` as
        relative precision of the bin integrals.
    binned : bool, optional
        Whether the density is fitted to binned data.

    Returns
    -------
    DensityBase
        ``density`` itself, or a new wrapper named ``<name>_binSampling``.
        Densities that are already binned distributions are never wrapped.
    """
    if precision < 0.0 or density.is_binned_distribution():
        return density
    if precision == 0.0:
        if not binned:
            return density
        precision = DEFAULT_EPSILON

    name = f"{density.name}_binSampling"
    logger.debug("Integrating %s over the bins of %s with epsilon=%g", density.name, observable.name, precision)
    return BinSamplingDensity(name, density.title, observable, density, precision)
