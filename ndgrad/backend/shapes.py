"""Shape, stride and index bookkeeping for row-major tensors.

Everything in here is a pure function over tuples of ints. The index maps at the
bottom turn that bookkeeping into flat gather offsets, which the tensor engine
uses to read operand buffers. They only depend on shapes, so they are cached.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import TYPE_CHECKING

import numpy as np

from ..errors import ShapeError

if TYPE_CHECKING:
    from collections.abc import Sequence

Shape = tuple[int, ...]

# Axis value that makes a reduction fold every element into a single scalar.
REDUCE_ALL = -1

_INDEX_MAP_CACHE_SIZE = 512


def prod(shape: Sequence[int], start: int = 0) -> int:
    """Product of `shape[start:]`, 1 for an empty sequence."""
    result = 1
    for dim in shape[start:]:
        result *= dim
    return result


def normalize_shape(shape: Sequence[int]) -> Shape:
    """Converts `shape` to a tuple of ints, mapping the empty shape to `(1,)`.

    Args:
        shape (Sequence[int]): Candidate shape.

    Raises:
        ShapeError: If a dimension is negative.

    Returns:
        Shape: The normalized shape.
    """
    normalized = tuple(int(dim) for dim in shape)
    if any(dim < 0 for dim in normalized):
        raise ShapeError(f"Dimensions must be non-negative, found {normalized}")
    return normalized or (1,)


def strides_from_shape(shape: Sequence[int]) -> Shape:
    """Row-major strides, `strides[i] == prod(shape[i + 1:])`."""
    return tuple(prod(shape, i + 1) for i in range(len(shape)))


def linear_to_multi_index(index: int, shape: Sequence[int]) -> Shape:
    """Decodes a flat offset into one index per axis of `shape`."""
    indices = [0] * len(shape)
    for k in range(len(shape) - 1, -1, -1):
        indices[k] = index % shape[k]
        index //= shape[k]
    return tuple(indices)


def multi_index_to_linear(indices: Sequence[int], strides: Sequence[int]) -> int:
    """Encodes a per-axis index into a flat offset."""
    offset = 0
    for index, stride in zip(indices, strides, strict=True):
        offset += index * stride
    return offset


def broadcast_multi_index_to_linear(
    indices: Sequence[int],
    shape: Sequence[int],
    strides: Sequence[int],
) -> int:
    """Flat offset into an operand of `shape` for a (possibly longer) broadcast index.

    `indices` is right-aligned against `shape`, and every index is taken modulo the
    operand's own axis size, so size-1 axes replay their single element.
    """
    offset = 0
    for k in range(1, len(shape) + 1):
        offset += (indices[-k] % shape[-k]) * strides[-k]
    return offset


def remap_linear_index(index: int, shape: Sequence[int], strides: Sequence[int]) -> int:
    """Decodes `index` against `shape` and re-encodes it with `strides`."""
    offset = 0
    for k in range(len(shape) - 1, -1, -1):
        offset += strides[k] * (index % shape[k])
        index //= shape[k]
    return offset


def resolve_broadcast_shape(shape_a: Sequence[int], shape_b: Sequence[int]) -> Shape:
    """The shape two operands broadcast to.

    Shapes are right-aligned; a missing leading axis counts as size 1. Each aligned
    pair must be equal or contain a 1.

    Args:
        shape_a (Sequence[int]): Shape of the left operand.
        shape_b (Sequence[int]): Shape of the right operand.

    Raises:
        ShapeError: If an aligned pair differs and neither size is 1.

    Returns:
        Shape: The broadcast shape.
    """
    rank = max(len(shape_a), len(shape_b))
    result = [0] * rank
    for k in range(1, rank + 1):
        dim_a = shape_a[-k] if k <= len(shape_a) else 1
        dim_b = shape_b[-k] if k <= len(shape_b) else 1
        if dim_a != dim_b and dim_a != 1 and dim_b != 1:
            raise ShapeError(f"Cannot broadcast {tuple(shape_a)} with {tuple(shape_b)}")
        result[-k] = dim_b if dim_a == 1 else dim_a
    return tuple(result)


def resolve_broadcast_tiling(
    shape_a: Sequence[int],
    shape_b: Sequence[int],
) -> tuple[Shape, Shape, Shape]:
    """Broadcast shape plus the tile repeats that materialize it for each operand.

    Returns:
        tuple[Shape, Shape, Shape]: `(shape, left_repeats, right_repeats)`, where
            tiling an operand by its repeats yields exactly `shape`. Repeats are
            always positive; for a broadcast shape with a 0 axis tiling cannot
            reach `shape`, and callers build the empty result directly.
    """
    shape = resolve_broadcast_shape(shape_a, shape_b)

    def repeats(own: Sequence[int]) -> Shape:
        result = [max(dim, 1) for dim in shape]
        for k in range(1, len(own) + 1):
            result[-k] = max(shape[-k] // own[-k], 1) if own[-k] else 1
        return tuple(result)

    return shape, repeats(shape_a), repeats(shape_b)


def prepare_reshape(total: int, shape: Sequence[int]) -> Shape:
    """Resolves a reshape target against an element count.

    Args:
        total (int): Number of elements of the tensor being reshaped.
        shape (Sequence[int]): Target shape, with at most one `-1` placeholder
            whose size is inferred.

    Raises:
        ShapeError: If more than one placeholder is given, or the target does not
            hold exactly `total` elements.

    Returns:
        Shape: The concrete target shape.
    """
    target = [int(dim) for dim in shape]
    if target.count(-1) > 1:
        raise ShapeError(f"Can only specify one unknown dimension, found {tuple(target)}")
    if any(dim < -1 for dim in target):
        raise ShapeError(f"Invalid reshape target {tuple(target)}")

    if -1 in target:
        position = target.index(-1)
        target[position] = 1
        known = prod(target)
        target[position] = total // known if known else 0

    if prod(target) != total:
        raise ShapeError(f"Cannot reshape array of size {total} into shape {tuple(shape)}")
    return tuple(target) or (1,)


def prepare_transpose(rank: int, axes: Sequence[int] | None = None) -> Shape:
    """Validates a permutation of `rank` axes, defaulting to full reversal.

    Raises:
        ShapeError: If `axes` is not a bijection over `range(rank)`.
    """
    if not axes:
        return tuple(range(rank - 1, -1, -1))
    if len(axes) != rank or any(not -rank <= axis < rank for axis in axes):
        raise ShapeError(f"Axes {tuple(axes)} are not a permutation of {rank} axes")
    permutation = tuple(axis % rank for axis in axes)
    if sorted(permutation) != list(range(rank)):
        raise ShapeError(f"Axes {tuple(axes)} are not a permutation of {rank} axes")
    return permutation


def permute(values: Sequence[int], axes: Sequence[int]) -> Shape:
    return tuple(values[axis] for axis in axes)


def invert_permutation(axes: Sequence[int]) -> Shape:
    inverse = [0] * len(axes)
    for position, axis in enumerate(axes):
        inverse[axis] = position
    return tuple(inverse)


def prepare_axis_reduction(shape: Sequence[int], axis: int, keepdims: bool) -> Shape:
    """Output shape of reducing `axis` (or everything, for `REDUCE_ALL`).

    Raises:
        ShapeError: If `axis` is neither `REDUCE_ALL` nor a valid axis.
    """
    if axis == REDUCE_ALL:
        return (1,) * len(shape) if keepdims else (1,)
    if not 0 <= axis < len(shape):
        raise ShapeError(f"Axis {axis} is out of range for shape {tuple(shape)}")

    reduced = list(shape)
    reduced[axis] = 1
    if not keepdims:
        del reduced[axis]
    return tuple(reduced) or (1,)


def prepare_arg_reduction(shape: Sequence[int], axis: int) -> tuple[int, Shape, Shape]:
    """Bookkeeping for argmin/argmax along one axis.

    A negative axis counts from the end.

    Raises:
        ShapeError: If `axis` is out of range.

    Returns:
        tuple[int, Shape, Shape]: The normalized axis, the input shape with that
            axis collapsed to 1, and the output shape with it removed.
    """
    rank = len(shape)
    if not -rank <= axis < rank:
        raise ShapeError(f"Axis {axis} is out of range for shape {tuple(shape)}")
    axis %= rank
    kept = tuple(1 if k == axis else dim for k, dim in enumerate(shape))
    removed = tuple(dim for k, dim in enumerate(shape) if k != axis)
    return axis, kept, removed or (1,)


@dataclass(frozen=True)
class DotPlan:
    """Shapes and axis bookkeeping for a general N-D contraction.

    Attributes:
        left_shape (Shape): Left shape, a 1-D operand promoted to a row vector.
        right_shape (Shape): Right shape, a 1-D operand promoted to a column vector.
        out_shape (Shape): Non-contracted left axes followed by the non-contracted
            right axes.
        axis_sources (Shape): For every output axis, the operand axis it indexes.
            The first `len(left_shape) - 1` entries refer to the left operand, the
            remaining ones to the right operand.
    """

    left_shape: Shape
    right_shape: Shape
    out_shape: Shape
    axis_sources: Shape

    @property
    def contraction(self) -> int:
        return self.left_shape[-1]


def _promote_dot_operands(shape_a: Sequence[int], shape_b: Sequence[int]) -> tuple[Shape, Shape]:
    left = (1, shape_a[0]) if len(shape_a) == 1 else tuple(shape_a)
    right = (shape_b[0], 1) if len(shape_b) == 1 else tuple(shape_b)
    if left[-1] != right[-2]:
        raise ShapeError(f"Cannot multiply {tuple(shape_a)} and {tuple(shape_b)}")
    return left, right


def _right_free_axes(rank: int) -> Shape:
    """Right operand axes that survive a contraction over its second-to-last axis."""
    return (*range(rank - 2), rank - 1)


def prepare_dot_shapes(shape_a: Sequence[int], shape_b: Sequence[int]) -> DotPlan:
    """Plans the contraction of the last axis of A against the second-to-last of B.

    Raises:
        ShapeError: If the contracted axes have different sizes.
    """
    left, right = _promote_dot_operands(shape_a, shape_b)
    right_axes = _right_free_axes(len(right))
    out_shape = left[:-1] + permute(right, right_axes)
    return DotPlan(
        left_shape=left,
        right_shape=right,
        out_shape=out_shape,
        axis_sources=tuple(range(len(left) - 1)) + right_axes,
    )


@dataclass(frozen=True)
class Dot2dPlan:
    """How to flatten both operands of a contraction into true matrices."""

    left_matrix: Shape
    right_shape: Shape
    right_axes: Shape
    right_matrix: Shape
    out_shape: Shape


def prepare_dot_2d(shape_a: Sequence[int], shape_b: Sequence[int]) -> Dot2dPlan:
    """Plans the matrix fast path of a contraction.

    The right operand is transposed so its contracted axis leads, then both are
    flattened to `(m, p)` and `(p, n)`. The `(m, n)` product reshapes back to the
    general output shape.

    Raises:
        ShapeError: If the contracted axes have different sizes.
    """
    left, right = _promote_dot_operands(shape_a, shape_b)
    pivot = left[-1]
    rank = len(right)
    right_axes = (rank - 2, *range(rank - 2), rank - 1)
    return Dot2dPlan(
        left_matrix=prepare_reshape(prod(left), (-1, pivot)),
        right_shape=right,
        right_axes=right_axes,
        right_matrix=prepare_reshape(prod(right), (pivot, -1)),
        out_shape=left[:-1] + permute(right, _right_free_axes(rank)),
    )


def prepare_tile(shape: Sequence[int], repeats: Sequence[int]) -> Shape:
    """Output shape of tiling `shape` by `repeats`.

    `repeats` is right-aligned against `shape`; overlapping axes multiply, and a
    missing axis on either side counts as size 1.

    Raises:
        ShapeError: If any repeat factor is not strictly positive.
    """
    if any(rep <= 0 for rep in repeats):
        raise ShapeError(f"Repetition must be greater than 0, found {tuple(repeats)}")

    result = list(shape) if len(shape) >= len(repeats) else list(repeats)
    for k in range(1, min(len(shape), len(repeats)) + 1):
        result[-k] = shape[-k] * repeats[-k]
    return tuple(result)


def _frozen(offsets: np.ndarray) -> np.ndarray:
    offsets.flags.writeable = False
    return offsets


@lru_cache(maxsize=_INDEX_MAP_CACHE_SIZE)
def broadcast_index_map(out_shape: Shape, operand_shape: Shape) -> np.ndarray:
    """Offsets into an operand buffer for every element of a broadcast output.

    Used for broadcasting elementwise ops and for tiling, which both read the
    operand at the output index taken modulo the operand's shape.
    """
    strides = strides_from_shape(operand_shape)
    count = prod(out_shape)
    offsets = np.fromiter(
        (
            broadcast_multi_index_to_linear(
                linear_to_multi_index(index, out_shape), operand_shape, strides
            )
            for index in range(count)
        ),
        dtype=np.int64,
        count=count,
    )
    return _frozen(offsets)


@lru_cache(maxsize=_INDEX_MAP_CACHE_SIZE)
def transpose_index_map(shape: Shape, axes: Shape) -> np.ndarray:
    """Input offsets for every element of `shape` transposed by `axes`.

    Each output offset is decoded against the permuted shape and re-encoded with
    the permuted strides of the input.
    """
    new_shape = permute(shape, axes)
    new_strides = permute(strides_from_shape(shape), axes)
    count = prod(shape)
    offsets = np.fromiter(
        (remap_linear_index(index, new_shape, new_strides) for index in range(count)),
        dtype=np.int64,
        count=count,
    )
    return _frozen(offsets)


@lru_cache(maxsize=_INDEX_MAP_CACHE_SIZE)
def reduction_index_map(shape: Shape, axis: int) -> np.ndarray:
    """Offsets of shape `(shape[axis], n)` walking `axis` for each of the `n` outputs.

    Row `k` holds, for every fixed combination of the other axes, the offset of
    the element at position `k` along `axis`.
    """
    strides = strides_from_shape(shape)
    kept = tuple(1 if k == axis else dim for k, dim in enumerate(shape))
    count = prod(kept)
    bases = np.fromiter(
        (
            multi_index_to_linear(linear_to_multi_index(index, kept), strides)
            for index in range(count)
        ),
        dtype=np.int64,
        count=count,
    )
    steps = np.arange(shape[axis], dtype=np.int64) * strides[axis]
    return _frozen(steps[:, None] + bases[None, :])


@lru_cache(maxsize=_INDEX_MAP_CACHE_SIZE)
def dot_index_map(plan: DotPlan) -> tuple[np.ndarray, np.ndarray]:
    """Left and right base offsets (contraction index 0) for every output element."""
    left_rank = len(plan.left_shape)
    left_strides = strides_from_shape(plan.left_shape)
    right_strides = strides_from_shape(plan.right_shape)
    count = prod(plan.out_shape)

    left_bases = np.empty(count, dtype=np.int64)
    right_bases = np.empty(count, dtype=np.int64)
    for index in range(count):
        left_indices = [0] * left_rank
        right_indices = [0] * len(plan.right_shape)
        out_indices = linear_to_multi_index(index, plan.out_shape)
        for k, value in enumerate(out_indices):
            if k < left_rank - 1:
                left_indices[plan.axis_sources[k]] = value
            else:
                right_indices[plan.axis_sources[k]] = value
        left_bases[index] = multi_index_to_linear(left_indices, left_strides)
        right_bases[index] = multi_index_to_linear(right_indices, right_strides)
    return _frozen(left_bases), _frozen(right_bases)


__all__ = [
    "REDUCE_ALL",
    "Dot2dPlan",
    "DotPlan",
    "Shape",
    "broadcast_index_map",
    "broadcast_multi_index_to_linear",
    "dot_index_map",
    "invert_permutation",
    "linear_to_multi_index",
    "multi_index_to_linear",
    "normalize_shape",
    "permute",
    "prepare_arg_reduction",
    "prepare_axis_reduction",
    "prepare_dot_2d",
    "prepare_dot_shapes",
    "prepare_reshape",
    "prepare_tile",
    "prepare_transpose",
    "prod",
    "reduction_index_map",
    "remap_linear_index",
    "resolve_broadcast_shape",
    "resolve_broadcast_tiling",
    "strides_from_shape",
    "transpose_index_map",
]
