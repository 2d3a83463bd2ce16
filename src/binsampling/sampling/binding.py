"""
One-argument view of a density for the integrator.

The integrator only knows functions ``f(x) -> float``, while a density is
evaluated by moving its observable and asking for the value under a
normalisation set. :class:`BinIntegrand` pairs the three (density,
observable, normalisation set) once per integration call, so nothing has to
be stashed on a shared object between the call and the callbacks.
"""

from collections.abc import Collection
from typing import TYPE_CHECKING

from binsampling.util._type import DensityLike

if TYPE_CHECKING:
    from binsampling.variables.realvar import RealVar

__all__ = ["BinIntegrand"]


class BinIntegrand:
    """
    ``f(x)``: set ``observable`` to ``x`` and evaluate ``density``.

    Parameters
    ----------
    density : DensityLike
        The density to sample.
    observable : RealVar
        The variable moved to each sampling point. Restoring its value is up
        to the caller.
    norm_set : collection of RealVar, optional
        Normalisation set handed to ``density.get_val``.
    """

    __slots__ = ("_density", "_observable", "_norm_set")

    def __init__(
        self,
        density: DensityLike,
        observable: "RealVar",
        norm_set: "Collection[RealVar] | None" = None,
    ) -> None:
        self._density = density
        self._observable = observable
        self._norm_set = tuple(norm_set) if norm_set else None

    @property
    def density(self) -> DensityLike:
        return self._density

    @property
    def observable(self) -> "RealVar":
        return self._observable

    @property
    def norm_set(self) -> "tuple[RealVar, ...] | None":
        return self._norm_set

    def __call__(self, x: float) -> float:
        self._observable.set_val(x)
        return self._density.get_val(self._norm_set)

    def __repr__(self) -> str:
        norm = [v.name for v in self._norm_set] if self._norm_set else None
        return f"BinIntegrand({self._density.name}, d{self._observable.name}, norm_set={norm})"
