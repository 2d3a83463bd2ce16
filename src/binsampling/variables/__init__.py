"""
Observables and their binnings.

"""

from .binning import Binning
from .realvar import RealVar

__all__ = ["Binning", "RealVar"]
