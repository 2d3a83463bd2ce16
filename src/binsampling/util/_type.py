""" Some type utilities for binsampling """

from collections.abc import Callable, Collection
from typing import TYPE_CHECKING, Protocol, Self, TypeAlias, runtime_checkable

import numpy as np
from pynbody.array import IndexedSimArray, SimArray
from pynbody.units import UnitBase

if TYPE_CHECKING:
    from binsampling.variables.realvar import RealVar

__all__ = ["Self", "UnitLike", "ValueLike", "SimNpArray", "ArrayLike1D",
           "NormSet", "Integrand", "DensityLike"]


# can be convert to Unit
UnitLike: TypeAlias = UnitBase | str
"""A type alias representing values that can be converted to a pynbody Unit."""

ValueLike: TypeAlias = UnitLike | float | int | np.ndarray | SimArray
"""Anything :meth:`RealVar.set_val` accepts: numbers, unit strings, units or size-1 arrays."""

SimNpArray: TypeAlias = SimArray | IndexedSimArray | np.ndarray
"""A type alias representing simulation or numpy arrays."""

ArrayLike1D: TypeAlias = SimNpArray | list[float] | tuple[float, ...]
"""One-dimensional input accepted by the batch evaluation path."""

NormSet: TypeAlias = "Collection[RealVar] | None"
"""Variables a density is normalised over. ``None`` or empty means unnormalised."""

Integrand: TypeAlias = Callable[[float], float]
"""A one-argument function handed to the integrator."""


@runtime_checkable
class DensityLike(Protocol):
    """The capability the bin sampler needs from a wrapped density."""

    name: str

    def depends_on(self, var: "RealVar") -> bool: ...

    def evaluate(self) -> float: ...

    def get_val(self, norm_set: NormSet = None) -> float: ...
