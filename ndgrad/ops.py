"""Factories and named operations on NDArrays.

Every operation dispatches to the numeric kernel of its (left) operand, so the
same call works for every supported scalar kind.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import numpy as np

from .backend import shapes
from .backend.kernel import get_kernel
from .backend.shapes import REDUCE_ALL
from .tensor import (
    NDArray,
    arg_reduce,
    axis_reduce,
    dot,
    dot_2d,
    elementwise_op,
    elementwise_op_left_biased,
    elementwise_op_tiled,
    reshape,
    tile,
    tile_blocks,
    transpose,
)

if TYPE_CHECKING:
    from collections.abc import Sequence


# =============================================================================
# Factories
# =============================================================================


def array(data: Any, shape: Sequence[int] | None = None, *, dtype: Any = None) -> NDArray:
    """Creates an array from nested sequences, or from flat data laid out by `shape`.

    Args:
        data (Any): The data (scalar, nested lists, numpy array, ...).
        shape (Sequence[int] | None): Optional target shape, may contain one `-1`.
        dtype (Any): Scalar kind, inferred from `data` when omitted.

    Returns:
        NDArray: The created array.
    """
    return NDArray(data, shape, dtype=dtype)


def zeros(shape: Sequence[int], *, dtype: Any = np.float64) -> NDArray:
    return NDArray(shape=shape, dtype=dtype)


def zeros_like(other: NDArray) -> NDArray:
    return NDArray(shape=other.shape, dtype=other.dtype)


def full(shape: Sequence[int], value: Any, *, dtype: Any = np.float64) -> NDArray:
    shape = shapes.normalize_shape(shape)
    kernel = get_kernel(dtype)
    return NDArray(np.full(shapes.prod(shape), kernel.cast(value)), shape, dtype=dtype)


def ones(shape: Sequence[int], *, dtype: Any = np.float64) -> NDArray:
    return full(shape, get_kernel(dtype).one, dtype=dtype)


def uniform(low: Any, high: Any, shape: Sequence[int], *, dtype: Any = np.float64) -> NDArray:
    """Samples uniformly from `[low, high)` with the shared, seedable generator.

    Args:
        low (Any): Inclusive lower bound.
        high (Any): Exclusive upper bound.
        shape (Sequence[int]): Shape of the result.
        dtype (Any): Scalar kind. Defaults to float64.

    Returns:
        NDArray: The sampled array.
    """
    shape = shapes.normalize_shape(shape)
    kernel = get_kernel(dtype)
    return NDArray(kernel.rand(low, high, size=shapes.prod(shape)), shape, dtype=dtype)


def arange(start: int, length: int | None = None, step: int = 1) -> NDArray:
    """`length` int64 values `start, start + step, ...`; `arange(n)` counts from 0."""
    if length is None:
        start, length = 0, start
    return NDArray(start + np.arange(length, dtype=np.int64) * step, (length,))


# =============================================================================
# Elementwise unary
# =============================================================================


def neg(x: NDArray) -> NDArray:
    return x.apply(x.kernel.neg)


def abs(x: NDArray) -> NDArray:  # noqa: A001
    return x.apply(x.kernel.abs)


def exp(x: NDArray) -> NDArray:
    return x.apply(x.kernel.exp)


def log(x: NDArray) -> NDArray:
    return x.apply(x.kernel.log)


def sqrt(x: NDArray) -> NDArray:
    return x.apply(x.kernel.sqrt)


def inv(x: NDArray) -> NDArray:
    return x.apply(x.kernel.inv)


def sq(x: NDArray) -> NDArray:
    return x.apply(x.kernel.sq)


def sigmoid(x: NDArray) -> NDArray:
    return x.apply(x.kernel.sigmoid)


def dsigmoid(y: NDArray) -> NDArray:
    """Sigmoid derivative, evaluated at the sigmoid output `y`."""
    return y.apply(y.kernel.dsigmoid)


def tanh(x: NDArray) -> NDArray:
    return x.apply(x.kernel.tanh)


def dtanh(y: NDArray) -> NDArray:
    """Tanh derivative, evaluated at the tanh output `y`."""
    return y.apply(y.kernel.dtanh)


def round(x: NDArray, decimals: int = 0) -> NDArray:  # noqa: A001
    return x.apply(lambda values: x.kernel.round(values, decimals), x.dtype)


def clamp(x: NDArray, low: float, high: float) -> NDArray:
    return x.apply(lambda values: x.kernel.clamp(values, low, high), x.dtype)


# =============================================================================
# Elementwise binary
# =============================================================================


def add(a: NDArray, b: Any) -> NDArray:
    return elementwise_op(a, b, a.kernel.add)


def add_tiled(a: NDArray, b: Any) -> NDArray:
    """`add` through the broadcast-then-elementwise strategy."""
    return elementwise_op_tiled(a, b, a.kernel.add)


def sub(a: NDArray, b: Any) -> NDArray:
    return elementwise_op(a, b, a.kernel.sub)


def mul(a: NDArray, b: Any) -> NDArray:
    return elementwise_op(a, b, a.kernel.mul)


def div(a: NDArray, b: Any) -> NDArray:
    return elementwise_op(a, b, a.kernel.div)


def minimum(a: NDArray, b: Any) -> NDArray:
    return elementwise_op(a, b, a.kernel.minimum)


def maximum(a: NDArray, b: Any) -> NDArray:
    return elementwise_op(a, b, a.kernel.maximum)


def add_left(a: NDArray, b: NDArray) -> NDArray:
    """`a + b` with `b` summed down to the shape of `a` where it is wider."""
    return elementwise_op_left_biased(a, b, a.kernel.add, a.kernel.zero)


def sub_left(a: NDArray, b: NDArray) -> NDArray:
    return elementwise_op_left_biased(a, neg(b), a.kernel.add, a.kernel.zero)


def mul_left(a: NDArray, b: NDArray) -> NDArray:
    return elementwise_op_left_biased(a, b, a.kernel.mul, a.kernel.one)


def div_left(a: NDArray, b: NDArray) -> NDArray:
    return elementwise_op_left_biased(a, inv(b), a.kernel.mul, a.kernel.one)


def sum_to_shape(x: NDArray, shape: Sequence[int]) -> NDArray:
    """Sums `x` over every axis along which it was broadcast beyond `shape`."""
    return add_left(NDArray(shape=shape, dtype=x.dtype), x)


# =============================================================================
# Comparisons, results are float64 ones and zeros
# =============================================================================


def eq(a: NDArray, b: Any) -> NDArray:
    """Equality within the kernel's tolerance."""
    return elementwise_op(a, b, a.kernel.eq, np.float64)


def neq(a: NDArray, b: Any) -> NDArray:
    return elementwise_op(a, b, a.kernel.neq, np.float64)


def lt(a: NDArray, b: Any) -> NDArray:
    return elementwise_op(a, b, a.kernel.lt, np.float64)


def lte(a: NDArray, b: Any) -> NDArray:
    return elementwise_op(a, b, a.kernel.lte, np.float64)


def gt(a: NDArray, b: Any) -> NDArray:
    return elementwise_op(a, b, a.kernel.gt, np.float64)


def gte(a: NDArray, b: Any) -> NDArray:
    return elementwise_op(a, b, a.kernel.gte, np.float64)


# =============================================================================
# Reductions
# =============================================================================


def sum(x: NDArray, axis: int = REDUCE_ALL, *, keepdims: bool = False) -> NDArray:  # noqa: A001
    """Sums one axis, or every element when `axis` is `REDUCE_ALL`."""
    return axis_reduce(x, x.kernel.add, x.kernel.zero, axis, keepdims=keepdims)


def prod(x: NDArray, axis: int = REDUCE_ALL, *, keepdims: bool = False) -> NDArray:
    return axis_reduce(x, x.kernel.mul, x.kernel.one, axis, keepdims=keepdims)


def mean(x: NDArray, axis: int = REDUCE_ALL, *, keepdims: bool = False) -> NDArray:
    """Mean over one axis, or every element; integer means truncate."""
    return axis_reduce(x, x.kernel.add, x.kernel.zero, axis, keepdims=keepdims, mean=True)


def argmin(x: NDArray, axis: int) -> NDArray:
    """Index of the first minimum along `axis`."""
    return arg_reduce(x, x.kernel.minimum, x.kernel.max_value, axis)


def argmax(x: NDArray, axis: int) -> NDArray:
    """Index of the first maximum along `axis`."""
    return arg_reduce(x, x.kernel.maximum, x.kernel.min_value, axis)


__all__ = [
    "REDUCE_ALL",
    "abs",
    "add",
    "add_left",
    "add_tiled",
    "arange",
    "argmax",
    "argmin",
    "array",
    "clamp",
    "div",
    "div_left",
    "dot",
    "dot_2d",
    "dsigmoid",
    "dtanh",
    "eq",
    "exp",
    "full",
    "gt",
    "gte",
    "inv",
    "log",
    "lt",
    "lte",
    "maximum",
    "mean",
    "minimum",
    "mul",
    "mul_left",
    "neg",
    "neq",
    "ones",
    "prod",
    "reshape",
    "round",
    "sigmoid",
    "sq",
    "sqrt",
    "sub",
    "sub_left",
    "sum",
    "sum_to_shape",
    "tanh",
    "tile",
    "tile_blocks",
    "transpose",
    "uniform",
    "zeros",
    "zeros_like",
]
