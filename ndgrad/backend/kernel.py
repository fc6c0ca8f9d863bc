"""Numeric kernels: the per-scalar-kind arithmetic the tensor engine is generic over.

There is one kernel per supported numpy dtype (`int64`, `float32`, `float64`).
Kernel classes are registered with `register_kernel` and instantiated lazily,
once per process, the first time a tensor of that kind asks for one.

Every operation accepts scalars or numpy arrays and is applied elementwise, so
the engine can hand a whole gathered buffer to a kernel in one call.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from functools import cache
from typing import TYPE_CHECKING, Any, ClassVar, TypeVar

import numpy as np

from ..errors import UnsupportedKernelOperation, UnsupportedScalarKind

if TYPE_CHECKING:
    from collections.abc import Callable

K = TypeVar("K", bound="NumericKernel")

logger = logging.getLogger(__name__)


DEFAULT_SEED = 123

_RNG: np.random.Generator = np.random.default_rng(DEFAULT_SEED)


def set_seed(seed: int | None) -> None:
    """Reseeds the generator shared by every kernel's `rand`.

    Args:
        seed (int | None): The new seed. `None` draws fresh OS entropy.
    """
    global _RNG
    _RNG = np.random.default_rng(seed)
    logger.debug(f"Random generator reseeded with {seed}")


def get_rng() -> np.random.Generator:
    return _RNG


class NumericKernel(ABC):
    """Scalar arithmetic for one scalar kind.

    Subclasses provide the primitives that differ between integer and floating
    kinds. Sigmoid and its derivative, the tanh derivative, `inv`, `sq` and
    `clamp` are derived from those primitives here.

    Comparisons return float64 ones and zeros rather than booleans, so their
    results can be used as ordinary tensors.
    """

    dtype: ClassVar[np.dtype[Any]]
    tolerance: ClassVar[float] = 0.0

    def __init__(self) -> None:
        scalar = self.dtype.type
        info = np.iinfo(self.dtype) if self.is_integer else np.finfo(self.dtype)
        self.zero = scalar(0)
        self.one = scalar(1)
        self.epsilon = scalar(self.tolerance)
        self.min_value = scalar(info.min)
        self.max_value = scalar(info.max)

    @property
    def is_integer(self) -> bool:
        return np.issubdtype(self.dtype, np.integer)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(dtype={self.dtype.name})"

    def cast(self, x: Any) -> Any:
        """Converts `x` to this kernel's scalar kind.

        Floating values cast to the integer kind are rounded half-to-even first
        instead of truncated.
        """
        x = np.asarray(x)
        if self.is_integer and np.issubdtype(x.dtype, np.floating):
            x = np.rint(x)
        result = x.astype(self.dtype)
        return result[()] if result.ndim == 0 else result

    # arithmetic

    def neg(self, x: Any) -> Any:
        return np.negative(x)

    def add(self, x: Any, y: Any) -> Any:
        return np.add(x, y)

    def sub(self, x: Any, y: Any) -> Any:
        return np.subtract(x, y)

    def mul(self, x: Any, y: Any) -> Any:
        return np.multiply(x, y)

    @abstractmethod
    def div(self, x: Any, y: Any) -> Any:
        """Division following the scalar kind's native semantics."""

    # elementary functions

    def abs(self, x: Any) -> Any:
        return np.abs(x)

    @abstractmethod
    def exp(self, x: Any) -> Any:
        """Natural exponential."""

    @abstractmethod
    def log(self, x: Any) -> Any:
        """Natural logarithm."""

    @abstractmethod
    def sqrt(self, x: Any) -> Any:
        """Square root."""

    @abstractmethod
    def tanh(self, x: Any) -> Any:
        """Hyperbolic tangent."""

    @abstractmethod
    def round(self, x: Any, decimals: int = 0) -> Any:
        """Rounds half-to-even to `decimals` places."""

    def inv(self, x: Any) -> Any:
        return self.div(self.one, x)

    def sq(self, x: Any) -> Any:
        return self.mul(x, x)

    def sigmoid(self, x: Any) -> Any:
        return self.div(self.one, self.add(self.one, self.exp(self.neg(x))))

    def dsigmoid(self, y: Any) -> Any:
        """Sigmoid derivative expressed through the sigmoid's output `y`."""
        return self.mul(y, self.sub(self.one, y))

    def dtanh(self, y: Any) -> Any:
        """Tanh derivative expressed through the tanh's output `y`."""
        return self.sub(self.one, self.sq(y))

    # ordering

    def minimum(self, x: Any, y: Any) -> Any:
        return np.minimum(x, y)

    def maximum(self, x: Any, y: Any) -> Any:
        return np.maximum(x, y)

    def clamp(self, x: Any, low: float, high: float) -> Any:
        return self.maximum(self.cast(low), self.minimum(x, self.cast(high)))

    @abstractmethod
    def rand(self, low: Any, high: Any, size: int | None = None) -> Any:
        """Uniform samples from `[low, high)`."""

    # comparisons

    @staticmethod
    def _as_number(condition: Any) -> Any:
        result = np.where(condition, 1.0, 0.0)
        return result[()] if result.ndim == 0 else result

    def eq(self, x: Any, y: Any) -> Any:
        return self._as_number(np.abs(np.subtract(x, y)) <= self.epsilon)

    def neq(self, x: Any, y: Any) -> Any:
        return self._as_number(np.abs(np.subtract(x, y)) > self.epsilon)

    def gt(self, x: Any, y: Any) -> Any:
        return self._as_number(np.greater(x, y))

    def gte(self, x: Any, y: Any) -> Any:
        return self._as_number(np.greater_equal(x, y))

    def lt(self, x: Any, y: Any) -> Any:
        return self._as_number(np.less(x, y))

    def lte(self, x: Any, y: Any) -> Any:
        return self._as_number(np.less_equal(x, y))


# Maps dtype names to kernel classes, instances are created on first use
_KERNEL_REGISTRY: dict[str, type[NumericKernel]] = {}


def register_kernel(dtype: Any) -> Callable[[type[K]], type[K]]:
    """Class decorator registering a kernel implementation for `dtype`.

    Args:
        dtype (Any): Anything `numpy.dtype` accepts.

    Returns:
        Callable[[type[K]], type[K]]: Decorator that binds the dtype to the
            class and registers it.
    """

    def decorator(cls: type[K]) -> type[K]:
        cls.dtype = np.dtype(dtype)
        _KERNEL_REGISTRY[cls.dtype.name] = cls
        return cls

    return decorator


@register_kernel(np.int64)
class IntKernel(NumericKernel):
    """Integer kernel. Division truncates toward zero, transcendentals are unsupported."""

    def div(self, x: Any, y: Any) -> Any:
        x = np.asarray(x, dtype=self.dtype)
        y = np.asarray(y, dtype=self.dtype)
        with np.errstate(divide="ignore"):
            quotient = np.floor_divide(x, y)
            inexact = np.remainder(x, y) != 0
        result = quotient + (inexact & ((x < 0) != (y < 0)))
        return result[()] if result.ndim == 0 else result

    def _unsupported(self, name: str) -> UnsupportedKernelOperation:
        return UnsupportedKernelOperation(f'"{name}" is not supported for {self.dtype.name}')

    def exp(self, x: Any) -> Any:
        raise self._unsupported("exp")

    def log(self, x: Any) -> Any:
        raise self._unsupported("log")

    def sqrt(self, x: Any) -> Any:
        raise self._unsupported("sqrt")

    def tanh(self, x: Any) -> Any:
        raise self._unsupported("tanh")

    def round(self, x: Any, decimals: int = 0) -> Any:  # noqa: ARG002
        return x

    def rand(self, low: Any, high: Any, size: int | None = None) -> Any:
        return get_rng().integers(low, high, size=size, dtype=self.dtype)


class FloatKernel(NumericKernel):
    """Shared behaviour of the floating kinds."""

    tolerance = 1e-6

    def div(self, x: Any, y: Any) -> Any:
        return np.divide(x, y)

    def exp(self, x: Any) -> Any:
        return np.exp(x)

    def log(self, x: Any) -> Any:
        return np.log(x)

    def sqrt(self, x: Any) -> Any:
        return np.sqrt(x)

    def tanh(self, x: Any) -> Any:
        return np.tanh(x)

    def round(self, x: Any, decimals: int = 0) -> Any:
        return np.round(x, decimals)

    def rand(self, low: Any, high: Any, size: int | None = None) -> Any:
        low, high = self.cast(low), self.cast(high)
        samples = self.cast(get_rng().random(size))
        return self.add(low, self.mul(self.sub(high, low), samples))


@register_kernel(np.float32)
class Float32Kernel(FloatKernel):
    pass


@register_kernel(np.float64)
class Float64Kernel(FloatKernel):
    pass


@cache
def _resolve_kernel(name: str) -> NumericKernel:
    kernel_cls = _KERNEL_REGISTRY.get(name)
    if kernel_cls is None:
        raise UnsupportedScalarKind(
            f'No numeric kernel for "{name}", supported: {", ".join(_KERNEL_REGISTRY)}'
        )
    logger.debug(f"Resolved {kernel_cls.__name__} for {name}")
    return kernel_cls()


def get_kernel(dtype: Any) -> NumericKernel:
    """The process-wide kernel for `dtype`.

    Args:
        dtype (Any): Anything `numpy.dtype` accepts.

    Raises:
        UnsupportedScalarKind: If no kernel is registered for `dtype`.

    Returns:
        NumericKernel: The cached kernel instance.
    """
    try:
        name = np.dtype(dtype).name
    except TypeError as err:
        raise UnsupportedScalarKind(f"{dtype!r} is not a numeric scalar kind") from err
    return _resolve_kernel(name)


def supported_dtypes() -> tuple[np.dtype[Any], ...]:
    return tuple(np.dtype(name) for name in _KERNEL_REGISTRY)


__all__ = [
    "DEFAULT_SEED",
    "Float32Kernel",
    "Float64Kernel",
    "FloatKernel",
    "IntKernel",
    "NumericKernel",
    "get_kernel",
    "get_rng",
    "register_kernel",
    "set_seed",
    "supported_dtypes",
]
