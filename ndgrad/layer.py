"""Neural network layers and the sequential `Chain` builder.

Each layer wraps the graph node of the previous layer, so the output layer's
node is the root of the whole network graph.
"""

from __future__ import annotations

import logging
import math
from abc import ABC
from typing import TYPE_CHECKING, Any

import numpy as np

from . import ops
from .function import Add, Dot, Function, Sigmoid, Tanh, Variable
from .loss import MSELoss
from .optimizer import SGD

if TYPE_CHECKING:
    from .tensor import NDArray


logger = logging.getLogger(__name__)


class Layer(ABC):
    """Abstract base class for all layers.

    Args:
        function (Function): The graph node computing the layer's output.
        input_width (int): Width of the layer's input.
        output_width (int): Width of the layer's output.
        parameters (list[Variable] | None): Parameter leaves owned by the layer.
    """

    def __init__(
        self,
        function: Function,
        input_width: int,
        output_width: int,
        parameters: list[Variable] | None = None,
    ) -> None:
        self.function = function
        self.input_width = input_width
        self.output_width = output_width
        self.parameters: list[Variable] = parameters or []

    @property
    def value(self) -> NDArray | None:
        return self.function.value

    def forward(self) -> NDArray:
        return self.function.forward()

    def backward(self, gradient: NDArray) -> None:
        self.function.backward(gradient)

    def reset_gradient(self) -> None:
        self.function.reset_gradient()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.input_width} -> {self.output_width})"


class InputLayer(Layer):
    """The network input, a leaf whose value is set before each forward pass."""

    def __init__(self, width: int, *, dtype: Any = np.float64) -> None:
        super().__init__(
            Variable(ops.zeros((1,), dtype=dtype), name="inputs"),
            input_width=width,
            output_width=width,
        )
        self.dtype = np.dtype(dtype)

    def set_value(self, x: NDArray) -> None:
        """Sets the input batch, converted to the network's scalar kind."""
        value = x if x.dtype == self.dtype else x.cast(self.dtype)
        self.function.set_value(value)  # type: ignore[attr-defined]


class DenseLayer(Layer):
    """Fully connected layer, `previous @ weights + biases`.

    Args:
        previous (Layer): The layer feeding this one.
        width (int): Output width.
        dtype (Any): Scalar kind of the parameters. Defaults to float64.
    """

    def __init__(self, previous: Layer, width: int, *, dtype: Any = np.float64) -> None:
        input_width = previous.output_width
        bound = 2.0 / math.sqrt(input_width)
        weights = Variable(
            ops.uniform(-bound, bound, (input_width, width), dtype=dtype),
            name="weights",
        )
        biases = Variable(ops.zeros((1, width), dtype=dtype), name="biases")
        super().__init__(
            Add(Dot(previous.function, weights), biases),
            input_width=input_width,
            output_width=width,
            parameters=[weights, biases],
        )
        self.weights = weights
        self.biases = biases


class SigmoidLayer(Layer):
    """Sigmoid activation of the previous layer."""

    def __init__(self, previous: Layer) -> None:
        super().__init__(Sigmoid(previous.function), previous.output_width, previous.output_width)


class TanhLayer(Layer):
    """Tanh activation of the previous layer."""

    def __init__(self, previous: Layer) -> None:
        super().__init__(Tanh(previous.function), previous.output_width, previous.output_width)


class Chain:
    """Sequential network builder.

    Layers are appended in order, each one on top of the previous, and the
    parameter leaves of all layers are collected into one flat list.

    Example:
        >>> net = Chain(2).add_dense(4).add_tanh().add_dense(1).add_sigmoid()
        >>> net.forward(x)
        >>> net.loss(y)
        >>> net.backward(y)
        >>> net.update_parameters(0.1)
        >>> net.reset_gradients()

    Args:
        input_width (int): Width of the network input.
        dtype (Any): Scalar kind of inputs and parameters. Defaults to float64.
    """

    def __init__(self, input_width: int, *, dtype: Any = np.float64) -> None:
        self.dtype = np.dtype(dtype)
        self.input_layer = InputLayer(input_width, dtype=dtype)
        self.layers: list[Layer] = [self.input_layer]
        self.parameters: list[Variable] = []
        self.loss_fn = MSELoss()

    @property
    def output_layer(self) -> Layer:
        return self.layers[-1]

    def _append(self, layer: Layer) -> Chain:
        self.layers.append(layer)
        self.parameters.extend(layer.parameters)
        logger.debug(f"Added {layer!r} as layer {len(self.layers) - 1}")
        return self

    def add_dense(self, width: int) -> Chain:
        return self._append(DenseLayer(self.output_layer, width, dtype=self.dtype))

    def add_tanh(self) -> Chain:
        return self._append(TanhLayer(self.output_layer))

    def add_sigmoid(self) -> Chain:
        return self._append(SigmoidLayer(self.output_layer))

    def forward(self, x: NDArray | None = None) -> NDArray:
        """Evaluates the network.

        Args:
            x (NDArray | None): New input batch. If `None`, the last input is reused.

        Returns:
            NDArray: The network output.
        """
        if x is not None:
            self.input_layer.set_value(x)
        return self.output_layer.forward()

    def loss(self, target: NDArray) -> float:
        """Loss of the last forward pass against `target`.

        Raises:
            ValueError: If the network has not been evaluated yet.
        """
        output = self.output_layer.value
        if output is None:
            raise ValueError("Network has no output, run forward first")
        return self.loss_fn(output, target)

    def backward(self, target: NDArray) -> None:
        """Backpropagates the loss gradient of the last forward pass."""
        self.loss_fn.backward(self.output_layer.function, target)

    def update_parameters(self, learning_rate: float) -> None:
        """One plain gradient descent step over all parameters."""
        SGD(self.parameters, lr=learning_rate).step()

    def reset_gradients(self) -> None:
        self.output_layer.reset_gradient()

    def predict(self, x: NDArray) -> NDArray:
        """Output for `x`, leaving all gradients untouched.

        This is a forward pass: the stored input and every node value are
        replaced, so a later `backward` without a new `forward` differentiates
        the loss at `x`.
        """
        return self.forward(x).copy()

    def __repr__(self) -> str:
        return f"Chain({', '.join(repr(layer) for layer in self.layers)})"


__all__ = [
    "Chain",
    "DenseLayer",
    "InputLayer",
    "Layer",
    "SigmoidLayer",
    "TanhLayer",
]
