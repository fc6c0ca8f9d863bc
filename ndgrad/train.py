"""XOR training driver.

Trains a small tanh/sigmoid network on the four XOR samples and prints the
final predictions. Run with `python -m ndgrad` or `ndgrad-xor`.
"""

from __future__ import annotations

import argparse
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np

from . import ops
from .backend.kernel import DEFAULT_SEED, set_seed
from .layer import Chain

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .tensor import NDArray


logger = logging.getLogger(__name__)


XOR_INPUTS = [[0.0, 0.0], [0.0, 1.0], [1.0, 0.0], [1.0, 1.0]]
XOR_TARGETS = [[0.0], [1.0], [1.0], [0.0]]


@dataclass(frozen=True)
class TrainingConfig:
    """Hyperparameters of a training run."""

    epochs: int = 1000
    display_every: int = 100
    learning_rate: float = 0.1
    seed: int | None = DEFAULT_SEED
    hidden_widths: tuple[int, ...] = (4, 4)


@dataclass
class TrainingResult:
    """Outcome of a training run.

    Attributes:
        losses (list[float]): Loss of every epoch, `epochs + 1` entries.
        predictions (NDArray): Network output for the training inputs.
        elapsed (float): Wall clock time of the run in seconds.
    """

    losses: list[float] = field(default_factory=list)
    predictions: NDArray | None = None
    elapsed: float = 0.0


def build_network(input_width: int, hidden_widths: Sequence[int], output_width: int) -> Chain:
    """Dense + tanh per hidden width, then a dense + sigmoid output layer."""
    network = Chain(input_width, dtype=np.float64)
    for width in hidden_widths:
        network.add_dense(width).add_tanh()
    return network.add_dense(output_width).add_sigmoid()


def train(config: TrainingConfig) -> TrainingResult:
    """Trains the XOR network described by `config`.

    Every epoch runs forward, loss, backward, parameter update and gradient
    reset, in that order, over the full batch.

    Args:
        config (TrainingConfig): The run's hyperparameters.

    Returns:
        TrainingResult: Per-epoch losses and the final predictions.
    """
    if config.epochs < 0:
        raise ValueError(f"epochs must be non-negative, got {config.epochs}")
    if config.display_every <= 0:
        raise ValueError(f"display_every must be positive, got {config.display_every}")

    set_seed(config.seed)
    x = ops.array(XOR_INPUTS, dtype=np.float64)
    y = ops.array(XOR_TARGETS, dtype=np.float64)
    network = build_network(x.shape[1], config.hidden_widths, y.shape[1])

    result = TrainingResult()
    start = time.perf_counter()
    for epoch in range(config.epochs + 1):
        network.forward(x)
        loss = network.loss(y)
        result.losses.append(loss)
        if epoch % config.display_every == 0:
            logger.info(f"Epochs:{epoch:5d}/{config.epochs} loss:{loss:.6f}")

        network.backward(y)
        network.update_parameters(config.learning_rate)
        network.reset_gradients()

    result.elapsed = time.perf_counter() - start
    result.predictions = network.predict(x)
    logger.info(f"Training took {result.elapsed:.3f}s")
    return result


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    defaults = TrainingConfig()
    parser = argparse.ArgumentParser(prog="ndgrad-xor", description=__doc__.splitlines()[0])
    parser.add_argument("--epochs", type=int, default=defaults.epochs)
    parser.add_argument("--display-every", type=int, default=defaults.display_every)
    parser.add_argument("--learning-rate", type=float, default=defaults.learning_rate)
    parser.add_argument("--seed", type=int, default=defaults.seed)
    parser.add_argument(
        "--hidden",
        type=int,
        nargs="+",
        default=list(defaults.hidden_widths),
        help="Widths of the hidden layers",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=args.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = TrainingConfig(
        epochs=args.epochs,
        display_every=args.display_every,
        learning_rate=args.learning_rate,
        seed=args.seed,
        hidden_widths=tuple(args.hidden),
    )
    result = train(config)
    print("Prediction")
    print(result.predictions)
    return 0


__all__ = [
    "XOR_INPUTS",
    "XOR_TARGETS",
    "TrainingConfig",
    "TrainingResult",
    "build_network",
    "main",
    "train",
]
