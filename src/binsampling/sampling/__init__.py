"""
Bin sampling: integrate densities over the bins of their observable.

"""

from .adapter import BinSamplingDensity
from .binding import BinIntegrand
from .integrator import DEFAULT_EPSILON, INTEGRATION_RULES, AdaptiveIntegrator
from .wrap import integrate_bins

__all__ = [
    "BinSamplingDensity",
    "BinIntegrand",
    "AdaptiveIntegrator",
    "DEFAULT_EPSILON",
    "INTEGRATION_RULES",
    "integrate_bins",
]
