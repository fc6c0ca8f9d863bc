"""Optimizers updating the parameter leaves of a graph."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from . import ops
from .function import Variable

if TYPE_CHECKING:
    from .tensor import NDArray

logger = logging.getLogger(__name__)


class Optimizer(ABC):
    """Abstract base class for all optimizers."""

    def __init__(self, params: list[Variable], *, lr: float = 1e-3):
        if len(params) == 0:
            raise ValueError("Must pass at least one parameter to optimize.")
        for param in params:
            if not isinstance(param, Variable):
                raise TypeError("All parameters passed to the optimizer must be of type Variable.")

        self.params = params
        self.lr = lr

    def zero_grad(self) -> None:
        """Zeroes the gradients of all parameters that are optimized."""
        for param in self.params:
            param.reset_gradient()

    @abstractmethod
    def step(self) -> None:
        """The step function to update the parameters.

        Must be implemented by the specific optimizer.
        """


class SGD(Optimizer):
    """Stochastic gradient descent optimizer."""

    def __init__(
        self,
        params: list[Variable],
        *,
        lr: float = 1e-3,
        friction: float = 1,
        weight_decay: float = 0,
    ):
        """The stochastic gradient descent optimizer.

        Note: By default, vanilla SGD is used, `value <- value - lr * gradient`.
        When setting the arguments accordingly, it becomes SGD with momentum
        and can also apply weight decay.

        **Standard SGD:** `friction=1, weight_decay=0`
        **SGD w/ momentum:** `friction<1, weight_decay=0`
        **SGDW:** `friction<1, weight_decay>0`

        Args:
            params (list[Variable]): Parameters to optimize.
            lr (float, optional): The learning rate. Defaults to 1e-3.
            friction (float, optional): How much of the momentum is lost every
                step. With 1 (100%) no momentum is kept. Defaults to 1.
            weight_decay (float, optional): Decay rate of the parameters.
                Defaults to `0`.
        """
        super().__init__(params=params, lr=lr)

        if not 0 <= friction <= 1:
            raise ValueError(f"friction must be in [0, 1], got {friction}")

        self.m: list[NDArray] | None = (
            [ops.zeros_like(p.value) for p in self.params] if friction < 1 else None
        )
        self.friction = friction
        self.weight_decay = weight_decay

    def step(self) -> None:
        """Performs a single gradient descent step.

        Every parameter value is replaced by a new array, never updated in place.

        Raises:
            ValueError: If a parameter has no gradient.
        """
        for idx, param in enumerate(self.params):
            if param.gradient is None:
                raise ValueError(f'Gradient of parameter "{param.name}" must not be None in step')

            if self.m is not None:
                # momentum left from the previous step is (1 - friction)
                self.m[idx] = ops.add(ops.mul(self.m[idx], 1 - self.friction), param.gradient)
                grad = self.m[idx]
            else:
                grad = param.gradient

            value = param.value
            if self.weight_decay:
                value = ops.mul(value, 1 - self.lr * self.weight_decay)
            param.set_value(ops.sub(value, ops.mul(grad, self.lr)))
        logger.debug(f"SGD step over {len(self.params)} parameters with lr={self.lr}")


__all__ = ["SGD", "Optimizer"]
