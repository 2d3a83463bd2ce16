from __future__ import annotations

from pathlib import Path

from setuptools import find_namespace_packages, setup

ROOT = Path(__file__).parent


# Pure-Python package. The quadrature is delegated to scipy and the unit
# handling of observables to pynbody; dask is only needed when batch inputs
# arrive as dask arrays.
install_requires = [
    "numpy",
    "scipy",
    "pynbody",
]

extras_require = {
    "dask": ["dask[array]"],
    "test": ["pytest", "dask[array]"],
}


if __name__ == "__main__":
    setup(
        name="binsampling",
        version="0.1.0",
        description="Bin-averaged densities for binned fits: integrate a continuous density over each bin.",
        python_requires=">=3.11",
        package_dir={"": "src"},
        packages=find_namespace_packages(where=str(ROOT / "src")),
        install_requires=install_requires,
        extras_require=extras_require,
    )
