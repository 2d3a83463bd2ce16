"""
One-dimensional binnings of an observable.

This module defines :class:`~binsampling.variables.binning.Binning`, the ordered
table of bin edges that an observable carries and that
:class:`~binsampling.sampling.adapter.BinSamplingDensity` integrates over.

A binning is built either from explicit edges or from a number of bins and an
edge-construction algorithm:

>>> Binning(10, 0.0, 5.0)                     # 10 linear bins over [0, 5]
>>> Binning(20, 1.0, 1e3, bins_type="log")    # logarithmic edges
>>> Binning([0.0, 0.5, 2.0, 5.0])             # explicit, variable-width

Bins are half-open intervals ``[low, high)``. :meth:`Binning.bin_index`
clamps to the first and last bin, so the upper edge of the range belongs to
the last bin.

Extensibility
-------------
Edge-construction algorithms live in a registry. New ones are added with the
:meth:`~binsampling.variables.binning.Binning.bins_algorithm_register`
decorator and are then selectable by name through ``bins_type``.

Error handling
--------------
Edges must form a 1D, strictly ascending array of length >= 2; anything else
raises :class:`ValueError`, as do unknown algorithm names and logarithmic bins
over a non-positive domain.
"""

from collections.abc import Callable, Sequence
from typing import Any, Literal, TypeAlias, overload

import numpy as np

BinsAlgorithmFunc: TypeAlias = Callable[[int, float, float], np.ndarray]
"""Callable ``(nbins, bin_min, bin_max)`` returning ``nbins + 1`` edges."""

RegistBinAlgorithmString: TypeAlias = str | Literal["lin", "log"]


__all__ = ["Binning"]


class Binning:
    """
    Ordered, immutable table of bin edges.

    Parameters
    ----------
    nbins : int or array-like
        If int: the number of bins (used with ``bins_type``). If array-like:
        explicit bin edges (length >= 2, strictly ascending).
    bin_min, bin_max : float, optional
        Domain of the edges when ``nbins`` is an int. Required in that case.
    bins_type : str or :data:`~binsampling.variables.binning.BinsAlgorithmFunc`
        Edge-building algorithm when ``nbins`` is an int. Ignored for
        explicit edges.
    """
    _bins_algorithm_registry: dict[str, BinsAlgorithmFunc] = {}

    def __init__(
        self,
        nbins: int | Sequence[float] | np.ndarray,
        bin_min: float | None = None,
        bin_max: float | None = None,
        bins_type: RegistBinAlgorithmString | BinsAlgorithmFunc = "lin",
    ) -> None:
        self._bins_type = bins_type
        self._edges = self._build_edges(nbins, bin_min, bin_max, bins_type)
        self._edges.setflags(write=False)

    @classmethod
    def _build_edges(
        cls,
        nbins: int | Sequence[float] | np.ndarray,
        bin_min: float | None,
        bin_max: float | None,
        bins_type: RegistBinAlgorithmString | BinsAlgorithmFunc,
    ) -> np.ndarray:
        """
        Construct bin edges from an explicit array or using the registered algorithm.

        Raises
        ------
        ValueError
            If the edges are invalid or ``bins_type`` is unrecognized.
        """
        if not isinstance(nbins, (int, np.integer)):
            edges = np.array(nbins, dtype=float)
        else:
            if nbins < 1:
                raise ValueError(f"Number of bins must be positive, got {nbins}")
            if bin_min is None or bin_max is None:
                raise ValueError("bin_min and bin_max are required when nbins is an integer")
            if callable(bins_type):
                func = bins_type
            elif isinstance(bins_type, str) and bins_type in cls._bins_algorithm_registry:
                func = cls._bins_algorithm_registry[bins_type]
            else:
                raise ValueError(
                    f"Invalid bins_type: {bins_type}, required callable or registry keys: {list(cls._bins_algorithm_registry)}"
                )
            edges = np.asarray(func(int(nbins), float(bin_min), float(bin_max)), dtype=float)

        if edges.ndim != 1 or edges.shape[0] < 2:
            raise ValueError("Explicit bin edges must be a 1D array of length >= 2")
        if not np.all(np.isfinite(edges)):
            raise ValueError("Bin edges must be finite")
        if not np.all(np.diff(edges) > 0):
            raise ValueError("Bin edges must be strictly ascending")
        return edges

    # ------------------- queries ------------------------------------------#

    @property
    def array(self) -> np.ndarray:
        """Read-only array of the ``num_bins + 1`` edges."""
        return self._edges

    @property
    def num_bins(self) -> int:
        return self._edges.shape[0] - 1

    @property
    def num_boundaries(self) -> int:
        return self._edges.shape[0]

    @property
    def lowest(self) -> float:
        return float(self._edges[0])

    @property
    def highest(self) -> float:
        return float(self._edges[-1])

    def bin_low(self, i: int) -> float:
        return float(self._edges[i])

    def bin_high(self, i: int) -> float:
        return float(self._edges[i + 1])

    def bin_width(self, i: int) -> float:
        return float(self._edges[i + 1] - self._edges[i])

    def bin_center(self, i: int) -> float:
        return float(0.5 * (self._edges[i] + self._edges[i + 1]))

    @property
    def centers(self) -> np.ndarray:
        """Midpoints of all bins (length ``num_bins``)."""
        return 0.5 * (self._edges[:-1] + self._edges[1:])

    @overload
    def bin_index(self, x: float) -> int: ...
    @overload
    def bin_index(self, x: np.ndarray) -> np.ndarray: ...

    def bin_index(self, x: Any) -> Any:
        """
        Index of the bin containing ``x``.

        The bin is found by binary search (upper bound minus one) and clamped
        to ``[0, num_bins - 1]``, so values at or beyond the upper edge map to
        the last bin and values below the lower edge to the first.
        """
        idx = np.searchsorted(self._edges, x, side="right") - 1
        idx = np.clip(idx, 0, self.num_bins - 1)
        if np.ndim(idx) == 0:
            return int(idx)
        return idx

    def __len__(self) -> int:
        return self.num_bins

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Binning):
            return NotImplemented
        return np.array_equal(self._edges, other._edges)

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"Binning(num_bins={self.num_bins}, range=[{self.lowest}, {self.highest}], bins_type={self._bins_type})"

    # ------------------- registry helpers ---------------------------------#

    @classmethod
    @overload
    def bins_algorithm_register(
        cls,
        fn: BinsAlgorithmFunc,
        name: str | None = None,
    ) -> BinsAlgorithmFunc: ...
    @classmethod
    @overload
    def bins_algorithm_register(
        cls,
        fn: None = None,
        name: str | None = None,
    ) -> Callable[[BinsAlgorithmFunc], BinsAlgorithmFunc]: ...

    @classmethod
    def bins_algorithm_register(
        cls,
        fn: BinsAlgorithmFunc | None = None,
        name: str | None = None
    ) -> BinsAlgorithmFunc | Callable[[BinsAlgorithmFunc], BinsAlgorithmFunc]:
        """
        Register a bin edges construction algorithm.

        Signature: ``(nbins: int, bin_min: float, bin_max: float) -> np.ndarray`` (edges).

        Parameters
        ----------
        fn : BinsAlgorithmFunc, optional
            Function to register or omitted for decorator usage.
        name : str, optional
            Registry key; defaults to function name.

        Examples
        --------
        >>> @Binning.bins_algorithm_register(name="sqrt")
        ... def sqrt_edges(nbins, xmin, xmax):
        ...     return np.sqrt(np.linspace(xmin**2, xmax**2, nbins + 1))
        """
        def decorator(func: BinsAlgorithmFunc) -> BinsAlgorithmFunc:
            cls._bins_algorithm_registry[name or func.__name__] = func
            return func
        if fn is None:
            return decorator
        return decorator(fn)

    @classmethod
    def available_algorithms(cls) -> list[str]:
        return list(cls._bins_algorithm_registry.keys())


# ------------------- bins algorithms --------------------------------------#
@Binning.bins_algorithm_register(name="lin")
def linear_bins_algorithm(nbins: int, xmin: float, xmax: float) -> np.ndarray:
    """Linearly spaced edges over ``[xmin, xmax]``."""
    return np.linspace(xmin, xmax, nbins + 1)

@Binning.bins_algorithm_register(name="log")
def logarithmic_bins_algorithm(nbins: int, xmin: float, xmax: float) -> np.ndarray:
    """
    Logarithmically spaced edges over the positive domain ``[xmin, xmax]``.

    The end points are set exactly so that the binning covers the range of
    the observable without round-off from the power.
    """
    if xmin <= 0:
        raise ValueError("Logarithmic bins require xmin to be positive")
    edges = np.logspace(np.log10(xmin), np.log10(xmax), nbins + 1)
    edges[0], edges[-1] = xmin, xmax
    return edges
