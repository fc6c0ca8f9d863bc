"""Backend for all ops in ndgrad: shape arithmetic and numeric kernels."""

from .kernel import (
    DEFAULT_SEED,
    NumericKernel,
    get_kernel,
    get_rng,
    register_kernel,
    set_seed,
    supported_dtypes,
)
from .shapes import (
    REDUCE_ALL,
    Shape,
)

__all__ = [
    "DEFAULT_SEED",
    "REDUCE_ALL",
    "NumericKernel",
    "Shape",
    "get_kernel",
    "get_rng",
    "register_kernel",
    "set_seed",
    "supported_dtypes",
]
