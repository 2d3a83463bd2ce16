"""
module for densities.

"""


from .base import DensityBase

__all__ = [
    "DensityBase",
]

from .generic import Exponential, Gaussian, LambdaDensity, Polynomial, Uniform

__all__ +=[
    "Uniform",
    "Polynomial",
    "Gaussian",
    "Exponential",
    "LambdaDensity",
]
