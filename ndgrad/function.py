"""Reverse-mode autodiff graph. Each node is a mathematical function of its operands.

Nodes are built once and evaluated many times. `forward` recursively evaluates
the operands first, `backward` accumulates the incoming gradient into the node
and hands every operand its own contribution, summed down to the operand's
shape. An operand shared by several parents therefore receives the sum of all
their contributions.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from . import ops
from .backend import shapes

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .tensor import NDArray


logger = logging.getLogger(__name__)


class Function(ABC):
    """Abstract base class for all graph nodes.

    Attributes:
        name (str): Human readable identifier, random when not given.
        value (NDArray | None): Result of the last forward pass.
        gradient (NDArray | None): Sum of all gradient contributions received
            since the last reset, `None` before the first backward pass.
    """

    def __init__(self, name: str | None = None) -> None:
        self.name = name or uuid.uuid4().hex
        self.value: NDArray | None = None
        self.gradient: NDArray | None = None

    @property
    def operands(self) -> tuple[Function, ...]:
        """The nodes this node is computed from."""
        return ()

    @abstractmethod
    def _compute(self, *values: NDArray) -> NDArray:
        """Computes this node's value from the values of its operands."""

    @abstractmethod
    def _operand_gradients(self, gradient: NDArray) -> tuple[NDArray, ...]:
        """Contribution of `gradient` to each operand, possibly still broadcast."""

    def forward(self) -> NDArray:
        """Evaluates all operands, then this node.

        Returns:
            NDArray: The new value of this node.
        """
        for operand in self.operands:
            operand.forward()
        self.value = self._compute(*(operand.value for operand in self.operands))
        return self.value

    def backward(self, gradient: NDArray) -> None:
        """Accumulates `gradient` here and propagates it to every operand.

        Args:
            gradient (NDArray): Gradient of the loss with respect to this node's
                value. A broadcast gradient is summed down to the value's shape,
                a smaller one is broadcast up.

        Raises:
            ValueError: If the node has not been evaluated yet.
        """
        if self.value is None:
            raise ValueError(f'Node "{self.name}" has no value, run forward first')

        if gradient.shape != self.value.shape:
            gradient = ops.sum_to_shape(gradient, self.value.shape)
        if self.gradient is None:
            self.gradient = gradient.copy()
        else:
            self.gradient = ops.add(self.gradient, gradient)

        contributions = self._operand_gradients(gradient)
        for operand, contribution in zip(self.operands, contributions, strict=True):
            logger.debug(f'Propagating gradient {self.name} -> {operand.name}')
            operand.backward(contribution)

    def reset_gradient(self) -> None:
        """Zeroes the gradient of this node and every node it depends on."""
        if self.value is not None:
            if self.gradient is None or self.gradient.shape != self.value.shape:
                self.gradient = ops.zeros_like(self.value)
            else:
                self.gradient.zero_()
        for operand in self.operands:
            operand.reset_gradient()

    def __add__(self, other: Function) -> Add:
        return Add(self, other)

    def __mul__(self, other: Function) -> Mul:
        return Mul(self, other)

    def __matmul__(self, other: Function) -> Dot:
        return Dot(self, other)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class Variable(Function):
    """A leaf: inputs set by the caller, or parameters updated by an optimizer."""

    def __init__(self, value: NDArray, name: str | None = None) -> None:
        super().__init__(name=name)
        self.value: NDArray = value

    def set_value(self, value: NDArray) -> None:
        self.value = value

    def forward(self) -> NDArray:
        return self.value

    def _compute(self, *values: NDArray) -> NDArray:  # noqa: ARG002
        return self.value

    def _operand_gradients(self, gradient: NDArray) -> tuple[NDArray, ...]:  # noqa: ARG002
        return ()


class UnaryFunction(Function):
    """A node computed from a single operand."""

    def __init__(self, operand: Function, name: str | None = None) -> None:
        super().__init__(name=name)
        self.operand = operand

    @property
    def operands(self) -> tuple[Function, ...]:
        return (self.operand,)


class Sigmoid(UnaryFunction):
    """Elementwise logistic sigmoid."""

    def _compute(self, x: NDArray) -> NDArray:  # type: ignore[override]
        return ops.sigmoid(x)

    def _operand_gradients(self, gradient: NDArray) -> tuple[NDArray, ...]:
        return (ops.mul(gradient, ops.dsigmoid(self.value)),)


class Tanh(UnaryFunction):
    """Elementwise hyperbolic tangent."""

    def _compute(self, x: NDArray) -> NDArray:  # type: ignore[override]
        return ops.tanh(x)

    def _operand_gradients(self, gradient: NDArray) -> tuple[NDArray, ...]:
        return (ops.mul(gradient, ops.dtanh(self.value)),)


class Transpose(UnaryFunction):
    """Axis permutation, full reversal by default."""

    def __init__(
        self,
        operand: Function,
        axes: Sequence[int] | None = None,
        name: str | None = None,
    ) -> None:
        super().__init__(operand, name=name)
        self.axes = tuple(axes) if axes else None

    def _permutation(self) -> tuple[int, ...]:
        return shapes.prepare_transpose(self.operand.value.ndim, self.axes)

    def _compute(self, x: NDArray) -> NDArray:  # type: ignore[override]
        return ops.transpose(x, self._permutation())

    def _operand_gradients(self, gradient: NDArray) -> tuple[NDArray, ...]:
        return (ops.transpose(gradient, shapes.invert_permutation(self._permutation())),)


class BinaryFunction(Function):
    """A node computed from two operands."""

    def __init__(self, left: Function, right: Function, name: str | None = None) -> None:
        super().__init__(name=name)
        self.left = left
        self.right = right

    @property
    def operands(self) -> tuple[Function, ...]:
        return (self.left, self.right)


class Add(BinaryFunction):
    """Broadcasting elementwise sum."""

    def _compute(self, x: NDArray, y: NDArray) -> NDArray:  # type: ignore[override]
        return ops.add(x, y)

    def _operand_gradients(self, gradient: NDArray) -> tuple[NDArray, ...]:
        return gradient, gradient


class Mul(BinaryFunction):
    """Broadcasting elementwise product."""

    def _compute(self, x: NDArray, y: NDArray) -> NDArray:  # type: ignore[override]
        return ops.mul(x, y)

    def _operand_gradients(self, gradient: NDArray) -> tuple[NDArray, ...]:
        return ops.mul(gradient, self.right.value), ops.mul(self.left.value, gradient)


class Dot(BinaryFunction):
    """Contraction `left @ right`, with the semantics of `ops.dot`.

    Both operands may have any rank. The gradients are computed on the matrix
    views used by `ops.dot_2d`: the left operand as `(m, p)`, the right operand
    with its contracted axis moved to the front as `(p, n)`, and the incoming
    gradient as `(m, n)`.
    """

    def _compute(self, x: NDArray, y: NDArray) -> NDArray:  # type: ignore[override]
        return ops.dot(x, y)

    def _operand_gradients(self, gradient: NDArray) -> tuple[NDArray, ...]:
        left, right = self.left.value, self.right.value
        plan = shapes.prepare_dot_2d(left.shape, right.shape)
        lhs = ops.reshape(left, plan.left_matrix)
        rhs = ops.reshape(
            ops.transpose(ops.reshape(right, plan.right_shape), plan.right_axes),
            plan.right_matrix,
        )
        grad = ops.reshape(gradient, (plan.left_matrix[0], plan.right_matrix[1]))

        left_gradient = ops.dot(grad, rhs.T).reshape(left.shape)
        # (p, n) back to the layout of the right operand
        right_gradient = ops.transpose(
            ops.dot(lhs.T, grad).reshape(shapes.permute(plan.right_shape, plan.right_axes)),
            shapes.invert_permutation(plan.right_axes),
        ).reshape(right.shape)
        return left_gradient, right_gradient


__all__ = [
    "Add",
    "BinaryFunction",
    "Dot",
    "Function",
    "Mul",
    "Sigmoid",
    "Tanh",
    "Transpose",
    "UnaryFunction",
    "Variable",
]
