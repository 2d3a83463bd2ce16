"""
Real-valued variables: observables and parameters.

A :class:`RealVar` holds a value inside a range, optional physical units
(through :mod:`pynbody.units`) and a :class:`~binsampling.variables.binning.Binning`.
Densities register themselves as *clients* of the variables they read and are
told when a value changes; bin-sampling wrappers register as *binning
listeners* and are told when the binning changes.

>>> x = RealVar("x", 1.0, 0.0, 10.0, units="kpc", nbins=20)
>>> x.set_val("500 pc")
>>> x.value
0.5
>>> with x.holding_value():
...     x.set_val(7.0)        # restored to 0.5 on exit
"""

import weakref
from collections.abc import Generator, Sequence
from contextlib import contextmanager
from typing import Any, Protocol

import numpy as np
from pynbody import units
from pynbody.array import SimArray

from binsampling.util._type import UnitLike, ValueLike

from .binning import Binning, BinsAlgorithmFunc, RegistBinAlgorithmString

__all__ = ["RealVar"]


class _ValueClient(Protocol):
    def set_value_dirty(self) -> None: ...


class _BinningListener(Protocol):
    def set_shape_dirty(self) -> None: ...


class RealVar:
    """
    A mutable real variable with a range, units and a binning.

    Parameters
    ----------
    name : str
        Identifier, also used in diagnostics.
    value : float or str or UnitBase
        Initial value; clipped to the range.
    min, max : float or str or UnitBase
        Range of the variable.
    units : str or UnitBase, optional
        Physical units. Values given as unit strings or units are converted
        to these.
    title : str, optional
        Free-form description.
    nbins : int, optional
        Number of linear bins of the default binning over the range.
    """

    def __init__(
        self,
        name: str,
        value: ValueLike,
        min: ValueLike,
        max: ValueLike,
        units: UnitLike | None = None,
        title: str = "",
        nbins: int = 100,
    ) -> None:
        self.name = name
        self.title = title or name
        self.units = self._resolve_units(units)
        self._min = self.as_value(min)
        self._max = self.as_value(max)
        if not self._min < self._max:
            raise ValueError(f"RealVar({name}): invalid range [{self._min}, {self._max}]")
        self._binning = Binning(nbins, self._min, self._max)
        self._value = float(np.clip(self.as_value(value), self._min, self._max))

        self._clients: weakref.WeakSet[Any] = weakref.WeakSet()
        self._binning_listeners: weakref.WeakSet[Any] = weakref.WeakSet()

    @staticmethod
    def _resolve_units(u: UnitLike | None) -> units.UnitBase | None:
        if u is None:
            return None
        if isinstance(u, str):
            return units.Unit(u)
        if isinstance(u, units.UnitBase):
            return u
        raise TypeError(f"units must be str or pynbody.units.UnitBase, got {type(u)}")

    def as_value(self, value: ValueLike) -> float:
        """
        Convert a value into the units of this variable.

        Parameters
        ----------
        value : str or pynbody.units.UnitBase or float or int or single-element array
            - str: parsed by `pynbody.units.Unit`, e.g. "10 kpc".
            - UnitBase: converted using `.in_units(self.units)`.
            - number: treated as already in the units of the variable.
            - SimArray: converted with its own units if it carries any.

        Raises
        ------
        TypeError
            If the value carries units but the variable has none, or the value
            has an unsupported type or more than one element.
        """
        if isinstance(value, str):
            value = units.Unit(value)
        if isinstance(value, units.UnitBase):
            if self.units is None:
                raise TypeError(f"RealVar({self.name}) has no units, cannot convert {value}")
            value = float(value.in_units(self.units))
        if isinstance(value, np.ndarray):
            if value.size != 1:
                raise TypeError(
                    "value must be a single-element array if it is an ndarray, got array with shape "
                    f"{value.shape}"
                )
            if isinstance(value, SimArray) and self.units is not None and value.units is not None \
                    and not isinstance(value.units, units.NoUnit):
                value = value.in_units(self.units).item()
            else:
                value = value.item()
        if isinstance(value, (int, float, np.integer, np.floating)):
            return float(value)

        raise TypeError(
            "value must be str, pynbody.units.UnitBase (or unit-like), or a number, or a single-element array, got "
            f"{type(value)}"
        )

    # ------------------- value -------------------------------------------#

    @property
    def value(self) -> float:
        return self._value

    @value.setter
    def value(self, v: ValueLike) -> None:
        self.set_val(v)

    def get_val(self) -> float:
        return self._value

    def set_val(self, v: ValueLike) -> None:
        """
        Set the value, clipped to the range, and notify client densities.

        Clients are marked dirty also while caching is disabled, so values
        memoized before a
        :meth:`~binsampling.util.tracecache.EvalCacheManager.disable_caching`
        block are not served after it.
        """
        self._value = float(np.clip(self.as_value(v), self._min, self._max))
        for client in list(self._clients):
            client.set_value_dirty()

    @contextmanager
    def holding_value(self) -> Generator[float, None, None]:
        """
        Save the current value and restore it when the block exits.

        The restore goes through :meth:`set_val`, so clients are notified,
        and happens on every exit path including exceptions.
        """
        saved = self._value
        try:
            yield saved
        finally:
            self.set_val(saved)

    # ------------------- range and binning ------------------------------#

    @property
    def min(self) -> float:
        return self._min

    @property
    def max(self) -> float:
        return self._max

    def in_range(self, x: float) -> bool:
        return self._min <= x <= self._max

    @property
    def binning(self) -> Binning:
        return self._binning

    def get_binning(self) -> Binning:
        return self._binning

    @property
    def num_bins(self) -> int:
        return self._binning.num_bins

    def get_bin(self) -> int:
        """Index of the bin containing the current value."""
        return self._binning.bin_index(self._value)

    def set_bins(self, nbins: int, bins_type: RegistBinAlgorithmString | BinsAlgorithmFunc = "lin") -> None:
        """Replace the binning by ``nbins`` bins over the current range."""
        self.set_binning(Binning(nbins, self._min, self._max, bins_type=bins_type))

    def set_binning(self, binning: Binning | Sequence[float] | np.ndarray) -> None:
        """
        Replace the binning, by a :class:`Binning` or explicit edges.

        The range of the variable follows the outer edges of the binning.
        """
        if not isinstance(binning, Binning):
            binning = Binning(binning)
        self._binning = binning
        self._min, self._max = binning.lowest, binning.highest
        self._value = float(np.clip(self._value, self._min, self._max))
        self._notify_shape_changed()

    def set_range(self, lo: ValueLike, hi: ValueLike) -> None:
        """Change the range, keeping the number of (linear) bins."""
        lo_f, hi_f = self.as_value(lo), self.as_value(hi)
        if not lo_f < hi_f:
            raise ValueError(f"RealVar({self.name}): invalid range [{lo_f}, {hi_f}]")
        self.set_binning(Binning(self._binning.num_bins, lo_f, hi_f))

    # ------------------- notification -----------------------------------#

    def add_client(self, client: _ValueClient) -> None:
        self._clients.add(client)

    def remove_client(self, client: _ValueClient) -> None:
        self._clients.discard(client)

    def add_binning_listener(self, listener: _BinningListener) -> None:
        self._binning_listeners.add(listener)

    def remove_binning_listener(self, listener: _BinningListener) -> None:
        self._binning_listeners.discard(listener)

    def _notify_shape_changed(self) -> None:
        for listener in list(self._binning_listeners):
            listener.set_shape_dirty()
        # the value may have been clipped by the new range
        for client in list(self._clients):
            client.set_value_dirty()

    def __repr__(self) -> str:
        unit = f" {self.units}" if self.units is not None else ""
        return f"<RealVar {self.name}={self._value}{unit} [{self._min}, {self._max}] bins={self._binning.num_bins}>"
