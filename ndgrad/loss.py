"""Loss functions closing a graph against a target."""

from __future__ import annotations

from typing import TYPE_CHECKING

from . import ops

if TYPE_CHECKING:
    from .function import Function
    from .tensor import NDArray


class MSELoss:
    """Halved mean squared error, `mean(0.5 * (prediction - target) ** 2)`.

    The factor of one half makes the gradient with respect to the prediction
    simply `prediction - target`.
    """

    def __call__(self, prediction: NDArray, target: NDArray) -> float:
        return self.loss(prediction, target)

    def loss(self, prediction: NDArray, target: NDArray) -> float:
        """The scalar loss.

        Args:
            prediction (NDArray): The network output.
            target (NDArray): The expected output, broadcastable to `prediction`.

        Returns:
            float: The mean over all elements.
        """
        return ops.mean(ops.mul(ops.sq(ops.sub(prediction, target)), 0.5)).item()

    def gradient(self, prediction: NDArray, target: NDArray) -> NDArray:
        return ops.sub(prediction, target)

    def backward(self, output: Function, target: NDArray) -> None:
        """Seeds the backward pass of `output` with the loss gradient.

        Raises:
            ValueError: If `output` has not been evaluated yet.
        """
        if output.value is None:
            raise ValueError(f'Node "{output.name}" has no value, run forward first')
        output.backward(self.gradient(output.value, target))


__all__ = ["MSELoss"]
