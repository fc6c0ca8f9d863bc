"""Strided N-dimensional arrays and the engine routines operating on them."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import numpy as np

from .backend import shapes
from .backend.kernel import NumericKernel, get_kernel
from .backend.shapes import REDUCE_ALL, Shape
from .errors import UnsupportedScalarKind

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    BinaryFn = Callable[[Any, Any], Any]
    UnaryFn = Callable[[Any], Any]


logger = logging.getLogger(__name__)


def _infer_dtype(values: np.ndarray) -> np.dtype[Any]:
    """Maps numpy data to one of the supported scalar kinds."""
    if values.dtype.kind in "biu":
        return np.dtype(np.int64)
    if values.dtype == np.float32:
        return np.dtype(np.float32)
    if values.dtype.kind == "f":
        return np.dtype(np.float64)
    raise UnsupportedScalarKind(f'Cannot build a tensor from data of type "{values.dtype}"')


class NDArray:
    """A row-major N-dimensional array over a flat, exclusively owned buffer.

    The buffer is a 1-D numpy array of one of the supported scalar kinds
    (`int64`, `float32`, `float64`), and `shape`/`strides` describe how it is
    laid out. Strides are always the row-major strides of the shape, there are
    no views: every operation returns a new array with its own buffer. The only
    in-place mutation is `zero_`.

    Args:
        data (Any): Nested sequences, a numpy array, a scalar, or flat data to be
            laid out by `shape`. If `None`, the array is zero-filled.
        shape (Sequence[int] | None): The shape. Inferred from `data` when
            omitted; may contain one `-1` placeholder when `data` is given.
            An empty shape becomes `(1,)`.
        dtype (Any): Scalar kind. Inferred from `data` when omitted, float64
            for zero-filled arrays.

    Raises:
        ShapeError: If `data` does not hold exactly as many elements as `shape`.
        UnsupportedScalarKind: If no numeric kernel exists for the scalar kind.
    """

    def __init__(
        self,
        data: Any = None,
        shape: Sequence[int] | None = None,
        *,
        dtype: Any = None,
    ) -> None:
        if data is None:
            if shape is None:
                raise ValueError("Either data or shape is required")
            resolved = shapes.normalize_shape(shape)
            self.kernel: NumericKernel = get_kernel(np.float64 if dtype is None else dtype)
            self.data: np.ndarray = np.zeros(shapes.prod(resolved), dtype=self.kernel.dtype)
        else:
            values = np.asarray(data)
            self.kernel = get_kernel(_infer_dtype(values) if dtype is None else dtype)
            resolved = shapes.normalize_shape(
                values.shape if shape is None else shapes.prepare_reshape(values.size, shape)
            )
            self.data = np.asarray(self.kernel.cast(values.reshape(-1)))
        self._set_shape(resolved)

    @classmethod
    def _wrap(cls, result: Any, shape: Shape, dtype: Any = None) -> NDArray:
        """Builds an array around a copy of an engine result."""
        values = np.asarray(result)
        kernel = get_kernel(_infer_dtype(values) if dtype is None else dtype)
        array = cls.__new__(cls)
        array.kernel = kernel
        array.data = values.astype(kernel.dtype).reshape(-1)
        array._set_shape(shapes.normalize_shape(shape))
        return array

    def _set_shape(self, shape: Shape) -> None:
        self._shape = shape
        self._strides = shapes.strides_from_shape(shape)

    @property
    def shape(self) -> Shape:
        return self._shape

    @property
    def strides(self) -> Shape:
        """Row-major strides in elements, derived from `shape`."""
        return self._strides

    @property
    def dtype(self) -> np.dtype[Any]:
        return self.kernel.dtype

    @property
    def ndim(self) -> int:
        return len(self._shape)

    @property
    def size(self) -> int:
        return self.data.size

    @property
    def T(self) -> NDArray:  # noqa: N802
        """The array with its axes reversed."""
        return transpose(self)

    def copy(self) -> NDArray:
        return NDArray._wrap(self.data, self.shape)

    def reshape(self, *shape: int) -> NDArray:
        return reshape(self, _flatten_args(shape))

    def transpose(self, *axes: int) -> NDArray:
        return transpose(self, _flatten_args(axes) or None)

    def cast(self, dtype: Any) -> NDArray:
        """Copy of the array converted to another scalar kind."""
        kernel = get_kernel(dtype)
        return NDArray._wrap(kernel.cast(self.data), self.shape, kernel.dtype)

    def apply(self, fn: UnaryFn, dtype: Any = None) -> NDArray:
        """Applies `fn` to the whole buffer, elementwise.

        Args:
            fn (UnaryFn): Elementwise function, usually a kernel method.
            dtype (Any): Scalar kind of the result. Inferred from the
                result when omitted.

        Returns:
            NDArray: A new array of the same shape.
        """
        return NDArray._wrap(fn(self.data), self.shape, dtype)

    def zero_(self) -> NDArray:
        """Fills the buffer with zeros in place, keeping the shape."""
        self.data.fill(0)
        return self

    def to_numpy(self) -> np.ndarray:
        return self.data.reshape(self.shape).copy()

    def tolist(self) -> Any:
        return self.to_numpy().tolist()

    def item(self) -> Any:
        """The single element of a one-element array as a Python scalar."""
        if self.size != 1:
            raise ValueError(f"Only one-element arrays can be converted, found shape {self.shape}")
        return self.data[0].item()

    def __array__(self, dtype: Any = None, copy: bool | None = None) -> np.ndarray:  # noqa: ARG002
        values = self.to_numpy()
        return values if dtype is None else values.astype(dtype)

    def __len__(self) -> int:
        return self.shape[0]

    def __str__(self) -> str:
        return np.array2string(self.to_numpy())

    def __repr__(self) -> str:
        body = np.array2string(self.to_numpy(), prefix="NDArray(")
        return f"NDArray({body}, shape={self.shape}, dtype={self.dtype.name})"

    def __neg__(self) -> NDArray:
        return self.apply(self.kernel.neg)

    def __add__(self, other: Any) -> NDArray:
        return elementwise_op(self, _as_operand(other, self), self.kernel.add)

    def __radd__(self, other: Any) -> NDArray:
        return elementwise_op(_as_operand(other, self), self, self.kernel.add)

    def __sub__(self, other: Any) -> NDArray:
        return elementwise_op(self, _as_operand(other, self), self.kernel.sub)

    def __rsub__(self, other: Any) -> NDArray:
        return elementwise_op(_as_operand(other, self), self, self.kernel.sub)

    def __mul__(self, other: Any) -> NDArray:
        return elementwise_op(self, _as_operand(other, self), self.kernel.mul)

    def __rmul__(self, other: Any) -> NDArray:
        return elementwise_op(_as_operand(other, self), self, self.kernel.mul)

    def __truediv__(self, other: Any) -> NDArray:
        return elementwise_op(self, _as_operand(other, self), self.kernel.div)

    def __rtruediv__(self, other: Any) -> NDArray:
        return elementwise_op(_as_operand(other, self), self, self.kernel.div)

    def __matmul__(self, other: NDArray) -> NDArray:
        return dot(self, other)


def _flatten_args(args: Sequence[Any]) -> tuple[int, ...]:
    """Accepts both `f(2, 3)` and `f((2, 3))`."""
    if len(args) == 1 and not isinstance(args[0], int | np.integer):
        return tuple(args[0])
    return tuple(args)


def _as_operand(value: Any, like: NDArray) -> NDArray:
    """`value` as an array of the same scalar kind as `like`.

    Scalars become one-element arrays, which broadcast against any shape.
    """
    if isinstance(value, NDArray):
        return value if value.dtype == like.dtype else value.cast(like.dtype)
    return NDArray(value, dtype=like.dtype)


def _gather(array: NDArray, shape: Shape) -> np.ndarray:
    """The elements of `array` broadcast to `shape`, as a flat buffer."""
    if array.shape == shape:
        return array.data
    return array.data[shapes.broadcast_index_map(shape, array.shape)]


def reshape(array: NDArray, shape: Sequence[int]) -> NDArray:
    """Reinterprets the row-major buffer under a new shape.

    Raises:
        ShapeError: If the element counts differ or more than one `-1` is given.
    """
    new_shape = shapes.prepare_reshape(array.size, shape)
    return NDArray._wrap(array.data, new_shape)


def transpose(array: NDArray, axes: Sequence[int] | None = None) -> NDArray:
    """Permutes the axes of `array`, reversing them by default.

    Raises:
        ShapeError: If `axes` is not a permutation of the array's axes.
    """
    permutation = shapes.prepare_transpose(array.ndim, axes)
    offsets = shapes.transpose_index_map(array.shape, permutation)
    return NDArray._wrap(array.data[offsets], shapes.permute(array.shape, permutation))


def elementwise_op(
    left: NDArray,
    right: NDArray,
    fn: BinaryFn,
    dtype: Any = None,
) -> NDArray:
    """Applies `fn` to every pair of elements of the broadcast operands.

    Each output index is right-aligned against both operands and taken modulo
    each operand's axis sizes, so size-1 axes replay their single element.

    Args:
        left (NDArray): Left operand.
        right (NDArray): Right operand, cast to the left operand's kind if needed.
        fn (BinaryFn): Elementwise binary function, usually a kernel method.
        dtype (Any): Scalar kind of the result. Inferred from the result of `fn`
            when omitted.

    Raises:
        ShapeError: If the shapes cannot be broadcast.

    Returns:
        NDArray: Array of the broadcast shape.
    """
    right = _as_operand(right, left)
    shape = shapes.resolve_broadcast_shape(left.shape, right.shape)
    return NDArray._wrap(fn(_gather(left, shape), _gather(right, shape)), shape, dtype)


def elementwise_op_tiled(
    left: NDArray,
    right: NDArray,
    fn: BinaryFn,
    dtype: Any = None,
) -> NDArray:
    """Like `elementwise_op`, but materializes the broadcast by tiling first.

    Both operands are tiled up to the broadcast shape with `tile_blocks`, then
    combined position by position.
    """
    right = _as_operand(right, left)
    shape, left_repeats, right_repeats = shapes.resolve_broadcast_tiling(left.shape, right.shape)
    if shapes.prod(shape) == 0:
        return NDArray(shape=shape, dtype=left.dtype if dtype is None else dtype)
    lhs = left if shapes.prod(left_repeats) == 1 else tile_blocks(left, left_repeats)
    rhs = right if shapes.prod(right_repeats) == 1 else tile_blocks(right, right_repeats)
    return NDArray._wrap(fn(lhs.data, rhs.data), shape, dtype)


def elementwise_op_left_biased(
    left: NDArray,
    right: NDArray,
    fn: BinaryFn,
    identity: Any,
) -> NDArray:
    """Combines `right` into `left`, reducing `right` to match instead of broadcasting up.

    Every axis along which `right` is wider than `left` is first folded with
    `fn` (starting from `identity`), then the two are combined elementwise. With
    `fn=add` this sums a broadcast gradient back down to the shape of `left`.

    Args:
        left (NDArray): The operand whose shape the result keeps.
        right (NDArray): The operand to reduce and combine.
        fn (BinaryFn): Both the folding and the combining function.
        identity (Any): Identity element of `fn`.

    Raises:
        ShapeError: If the shapes cannot be broadcast.

    Returns:
        NDArray: The combined array.
    """
    right = _as_operand(right, left)
    shape = shapes.resolve_broadcast_shape(left.shape, right.shape)

    reduced = right
    for k in range(1, right.ndim + 1):
        left_dim = left.shape[-k] if k <= left.ndim else -1
        if left_dim != shape[-k] and right.shape[-k] == shape[-k]:
            reduced = axis_reduce(reduced, fn, identity, axis=right.ndim - k, keepdims=True)

    result = elementwise_op(left, reduced, fn)
    # leading axes folded to size 1 are dropped again
    if result.shape != left.shape and result.size == left.size:
        result = reshape(result, left.shape)
    return result


def axis_reduce(  # noqa: PLR0913
    array: NDArray,
    fn: BinaryFn,
    identity: Any,
    axis: int = REDUCE_ALL,
    *,
    keepdims: bool = False,
    mean: bool = False,
) -> NDArray:
    """Folds one axis, or every element, through `fn`.

    Args:
        array (NDArray): The array to reduce.
        fn (BinaryFn): Binary fold function, usually a kernel method.
        identity (Any): Initial value of every fold.
        axis (int): The axis to fold, or `REDUCE_ALL` to fold all elements into
            a single value. Defaults to `REDUCE_ALL`.
        keepdims (bool): Keep reduced axes with size 1. Defaults to False.
        mean (bool): Divide each fold by the number of folded elements, using
            the kernel's division (integer means truncate). Defaults to False.

    Raises:
        ShapeError: If `axis` is out of range.

    Returns:
        NDArray: The reduced array.
    """
    out_shape = shapes.prepare_axis_reduction(array.shape, axis, keepdims)
    kernel = array.kernel
    identity = kernel.cast(identity)

    if axis == REDUCE_ALL:
        total = identity
        for value in array.data:
            total = fn(total, value)
        count = array.size
    else:
        offsets = shapes.reduction_index_map(array.shape, axis)
        total = np.full(offsets.shape[1], identity, dtype=array.dtype)
        for row in offsets:
            total = fn(total, array.data[row])
        count = array.shape[axis]

    if mean:
        total = kernel.div(total, kernel.cast(count))
    return NDArray._wrap(total, out_shape, array.dtype)


def arg_reduce(array: NDArray, fn: BinaryFn, initial: Any, axis: int) -> NDArray:
    """Index of the best element along `axis` according to `fn`.

    `fn` is `minimum` or `maximum`. Scanning the axis in order, the best index
    only moves when `fn(candidate, best)` differs from `best`, so ties keep the
    earliest index.

    Args:
        array (NDArray): The array to scan.
        fn (BinaryFn): Selection function.
        initial (Any): Starting best value, the worst possible value for `fn`.
        axis (int): Axis to scan, negative values count from the end.

    Raises:
        ShapeError: If `axis` is out of range.

    Returns:
        NDArray: int64 array with `axis` removed.
    """
    axis, _, out_shape = shapes.prepare_arg_reduction(array.shape, axis)
    offsets = shapes.reduction_index_map(array.shape, axis)

    best = np.full(offsets.shape[1], array.kernel.cast(initial), dtype=array.dtype)
    best_index = np.zeros(offsets.shape[1], dtype=np.int64)
    for position, row in enumerate(offsets):
        candidate = fn(array.data[row], best)
        best_index[candidate != best] = position
        best = candidate
    return NDArray._wrap(best_index, out_shape, np.int64)


def dot(left: NDArray, right: NDArray) -> NDArray:
    """Contracts the last axis of `left` with the second-to-last axis of `right`.

    1-D operands are promoted to a row (left) or column (right) vector. The
    output axes are the remaining left axes followed by the remaining right axes.

    Raises:
        ShapeError: If the contracted axes have different sizes.
    """
    right = _as_operand(right, left)
    plan = shapes.prepare_dot_shapes(left.shape, right.shape)
    left_bases, right_bases = shapes.dot_index_map(plan)
    right_step = shapes.strides_from_shape(plan.right_shape)[-2]

    kernel = left.kernel
    total = np.full(left_bases.size, kernel.zero, dtype=left.dtype)
    for i in range(plan.contraction):
        products = kernel.mul(left.data[left_bases + i], right.data[right_bases + i * right_step])
        total = kernel.add(total, products)
    return NDArray._wrap(total, plan.out_shape, left.dtype)


def dot_2d(left: NDArray, right: NDArray) -> NDArray:
    """Matrix fast path of `dot`, with the same result.

    Both operands are flattened to `(m, p)` and `(p, n)` matrices, multiplied,
    and the product is reshaped to the general output shape. The `i`/`j` loops
    run vectorized; the `k` loop accumulates in the same order as `dot`.

    Raises:
        ShapeError: If the contracted axes have different sizes.
    """
    right = _as_operand(right, left)
    plan = shapes.prepare_dot_2d(left.shape, right.shape)
    lhs = reshape(left, plan.left_matrix)
    rhs = reshape(transpose(reshape(right, plan.right_shape), plan.right_axes), plan.right_matrix)

    m, p = lhs.shape
    n = rhs.shape[1]
    rows = np.repeat(np.arange(m, dtype=np.int64) * p, n)
    cols = np.tile(np.arange(n, dtype=np.int64), m)

    kernel = left.kernel
    total = np.full(m * n, kernel.zero, dtype=left.dtype)
    for k in range(p):
        total = kernel.add(total, kernel.mul(lhs.data[rows + k], rhs.data[k * n + cols]))
    return NDArray._wrap(total, plan.out_shape, left.dtype)


def tile(array: NDArray, repeats: Sequence[int]) -> NDArray:
    """Replicates `array` along each axis, `repeats` right-aligned with the shape.

    Output element `I` is input element `I mod shape`, per axis.

    Raises:
        ShapeError: If a repeat factor is not strictly positive.
    """
    shape = shapes.prepare_tile(array.shape, repeats)
    return NDArray._wrap(_gather(array, shape), shape, array.dtype)


def tile_blocks(array: NDArray, repeats: Sequence[int]) -> NDArray:
    """Same result as `tile`, built by replicating contiguous blocks axis by axis.

    Walking the axes from the right, every block of `stride` elements is repeated
    back to back, and the block size grows by the axis size times its repeat.
    """
    shape = shapes.prepare_tile(array.shape, repeats)
    if shapes.prod(shape) == 0:
        return NDArray(shape=shape, dtype=array.dtype)
    data = array.data
    stride = 1
    for k in range(1, len(repeats) + 1):
        stride *= array.shape[-k] if k <= array.ndim else 1
        rep = repeats[-k]
        data = np.tile(data.reshape(-1, 1, stride), (1, rep, 1)).reshape(-1)
        stride *= rep
    return NDArray._wrap(data, shape, array.dtype)


__all__ = [
    "NDArray",
    "arg_reduce",
    "axis_reduce",
    "dot",
    "dot_2d",
    "elementwise_op",
    "elementwise_op_left_biased",
    "elementwise_op_tiled",
    "reshape",
    "tile",
    "tile_blocks",
    "transpose",
]
