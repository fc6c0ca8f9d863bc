"""Tests for the autodiff graph, using central finite differences as the reference.

Note: Usually we should follow strict coding guidelines through ruff, but since this
is just testing code, we can make some exceptions. Hence the "noqa: ..." directives.
"""

from __future__ import annotations

from collections.abc import Callable

import numpy as np
import pytest
from ndgrad import (
    Add,
    Dot,
    Function,
    MSELoss,
    Mul,
    NDArray,
    Sigmoid,
    Tanh,
    Transpose,
    Variable,
    ops,
)


def fd_gradient(
    variable: Variable,
    loss_fn: Callable[[], float],
    eps: float = 1e-6,
) -> np.ndarray:
    """Central finite difference gradient of `loss_fn` with respect to `variable`.

    Args:
        variable (Variable): The leaf to perturb, one element at a time.
        loss_fn (Callable[[], float]): Re-evaluates the graph and returns the loss.
        eps (float): Perturbation size.

    Returns:
        np.ndarray: Gradient with the shape of the variable's value.
    """
    base = variable.value.to_numpy()
    gradient = np.zeros_like(base)
    for index in np.ndindex(base.shape):
        for sign in (1, -1):
            perturbed = base.copy()
            perturbed[index] += sign * eps
            variable.set_value(NDArray(perturbed))
            gradient[index] += sign * loss_fn()
    variable.set_value(NDArray(base))
    return gradient / (2 * eps)


def sum_loss(root: Function) -> Callable[[], float]:
    """Loss `sum(root)`, whose gradient with respect to `root` is all ones."""

    def loss() -> float:
        return ops.sum(root.forward()).item()

    return loss


def backward_ones(root: Function) -> None:
    root.forward()
    root.backward(ops.ones(root.value.shape))


# =============================================================================
# Gradient correctness
# =============================================================================


def test_dense_layer_gradient_matches_finite_differences(rng: np.random.Generator) -> None:
    x = Variable(NDArray(rng.standard_normal((4, 3))), name="x")
    weights = Variable(NDArray(rng.standard_normal((3, 2))), name="weights")
    biases = Variable(ops.zeros((1, 2)), name="biases")
    target = NDArray(rng.standard_normal((4, 2)))
    root = Add(Dot(x, weights), biases)
    mse = MSELoss()

    def loss() -> float:
        return mse(root.forward(), target)

    root.forward()
    root.reset_gradient()
    mse.backward(root, target)

    # the gradient seeded by MSELoss is that of the summed, not averaged, loss
    scale = target.size
    for variable in (weights, biases, x):
        expected = fd_gradient(variable, loss) * scale
        np.testing.assert_allclose(variable.gradient.to_numpy(), expected, rtol=1e-5, atol=1e-7)


def test_dense_layer_gradient_under_random_weight_perturbations(rng: np.random.Generator) -> None:
    x = Variable(NDArray(rng.standard_normal((5, 3))))
    weights = Variable(NDArray(rng.standard_normal((3, 2))))
    biases = Variable(NDArray(rng.standard_normal((1, 2))))
    target = NDArray(rng.standard_normal((5, 2)))
    root = Add(Dot(x, weights), biases)
    mse = MSELoss()
    tolerance = weights.value.kernel.tolerance

    for _ in range(12):
        weights.set_value(NDArray(rng.standard_normal((3, 2))))
        root.forward()
        root.reset_gradient()
        mse.backward(root, target)
        analytic = weights.gradient.to_numpy()

        numeric = fd_gradient(weights, lambda: mse(root.forward(), target)) * target.size
        np.testing.assert_allclose(analytic, numeric, rtol=1e-4, atol=tolerance)


NodeBuilder = Callable[[Variable, Variable], Function]

NODE_CASES: list[tuple[str, NodeBuilder, tuple[int, ...], tuple[int, ...]]] = [
    ("add", Add, (3, 4), (1, 4)),
    ("add_broadcast_leading", Add, (2, 3, 4), (4,)),
    ("mul", Mul, (3, 4), (3, 1)),
    ("dot", Dot, (3, 4), (4, 2)),
    ("dot_batched_left", Dot, (2, 3, 4), (4, 5)),
    ("dot_vector_left", Dot, (4,), (4, 3)),
    ("dot_vector_right", Dot, (3, 4), (4,)),
    ("dot_batched_right", Dot, (2, 3), (4, 3, 5)),
    ("dot_batched_both", Dot, (2, 2, 3), (2, 3, 2)),
    ("dot_vector_batched_right", Dot, (3,), (2, 3, 4)),
    ("sigmoid_of_mul", lambda a, b: Sigmoid(Mul(a, b)), (2, 3), (2, 3)),
    ("tanh_of_add", lambda a, b: Tanh(Add(a, b)), (2, 3), (3,)),
    ("transpose_of_dot", lambda a, b: Transpose(Dot(a, b)), (2, 3), (3, 4)),
]


@pytest.mark.parametrize(
    ("builder", "shape_a", "shape_b"),
    [case[1:] for case in NODE_CASES],
    ids=[case[0] for case in NODE_CASES],
)
def test_node_gradients_match_finite_differences(
    rng: np.random.Generator,
    builder: NodeBuilder,
    shape_a: tuple[int, ...],
    shape_b: tuple[int, ...],
) -> None:
    a = Variable(NDArray(rng.standard_normal(shape_a)), name="a")
    b = Variable(NDArray(rng.standard_normal(shape_b)), name="b")
    root = builder(a, b)

    backward_ones(root)

    for variable in (a, b):
        assert variable.gradient.shape == variable.value.shape
        expected = fd_gradient(variable, sum_loss(root))
        np.testing.assert_allclose(
            variable.gradient.to_numpy(), expected, rtol=1e-5, atol=1e-7,
            err_msg=f"Gradient mismatch for {variable.name}",
        )


def test_transpose_with_axes_gradient(rng: np.random.Generator) -> None:
    a = Variable(NDArray(rng.standard_normal((2, 3, 4))))
    weights = Variable(NDArray(rng.standard_normal((2, 4, 3))))
    root = Mul(Transpose(a, (0, 2, 1)), weights)
    backward_ones(root)
    np.testing.assert_allclose(
        a.gradient.to_numpy(), np.transpose(weights.value.to_numpy(), (0, 2, 1))
    )


def test_activation_derivative_uses_output() -> None:
    a = Variable(NDArray([[0.0, 1.0]]))
    root = Sigmoid(a)
    backward_ones(root)
    y = 1 / (1 + np.exp(-np.array([[0.0, 1.0]])))
    np.testing.assert_allclose(a.gradient.to_numpy(), y * (1 - y))


# =============================================================================
# Accumulation and reset
# =============================================================================


def test_shared_operand_receives_summed_gradient() -> None:
    x = Variable(NDArray([[1.0, -2.0, 3.0]]))
    root = Mul(x, x)
    backward_ones(root)
    np.testing.assert_allclose(x.gradient.to_numpy(), [[2.0, -4.0, 6.0]])


def test_shared_operand_across_branches() -> None:
    x = Variable(NDArray([[2.0]]))
    w = Variable(NDArray([[3.0]]))
    root = Add(Dot(x, w), Tanh(x))
    backward_ones(root)
    assert x.gradient.item() == pytest.approx(3.0 + 1 - np.tanh(2.0) ** 2)


def test_backward_twice_doubles_gradients(rng: np.random.Generator) -> None:
    x = Variable(NDArray(rng.standard_normal((4, 3))))
    weights = Variable(NDArray(rng.standard_normal((3, 2))))
    biases = Variable(ops.zeros((1, 2)))
    root = Tanh(Add(Dot(x, weights), biases))
    seed = NDArray(rng.standard_normal((4, 2)))

    root.forward()
    root.backward(seed)
    once = [v.gradient.to_numpy() for v in (x, weights, biases)]

    root.backward(seed)
    for variable, single in zip((x, weights, biases), once, strict=True):
        np.testing.assert_allclose(variable.gradient.to_numpy(), 2 * single)


def test_reset_twice_leaves_zero_gradients(rng: np.random.Generator) -> None:
    x = Variable(NDArray(rng.standard_normal((4, 3))))
    weights = Variable(NDArray(rng.standard_normal((3, 2))))
    dot = Dot(x, weights)
    root = Sigmoid(dot)
    backward_ones(root)

    root.reset_gradient()
    root.reset_gradient()
    for node in (root, dot, x, weights):
        assert node.gradient.shape == node.value.shape
        np.testing.assert_array_equal(node.gradient.to_numpy(), np.zeros(node.value.shape))


def test_reset_before_backward_creates_zero_gradients() -> None:
    x = Variable(NDArray([[1.0, 2.0]]))
    assert x.gradient is None
    x.reset_gradient()
    assert x.gradient.tolist() == [[0.0, 0.0]]


def test_reset_follows_new_value_shape() -> None:
    x = Variable(NDArray([[1.0, 2.0]]))
    x.reset_gradient()
    x.set_value(NDArray(np.ones((3, 2))))
    x.reset_gradient()
    assert x.gradient.shape == (3, 2)


def test_gradient_is_summed_down_to_operand_shape() -> None:
    bias = Variable(ops.zeros((1, 3)))
    root = Add(Variable(NDArray(np.ones((4, 3)))), bias)
    backward_ones(root)
    assert bias.gradient.tolist() == [[4.0, 4.0, 4.0]]


# =============================================================================
# Graph mechanics
# =============================================================================


def test_forward_recomputes_after_leaf_update() -> None:
    a = Variable(NDArray([[1.0]]))
    b = Variable(NDArray([[2.0]]))
    root = a * b + a
    assert root.forward().item() == 3.0
    a.set_value(NDArray([[2.0]]))
    assert root.forward().item() == 6.0


def test_operator_sugar_builds_nodes() -> None:
    a = Variable(NDArray([[1.0]]))
    b = Variable(NDArray([[2.0]]))
    assert isinstance(a + b, Add)
    assert isinstance(a * b, Mul)
    assert isinstance(a @ b, Dot)
    assert (a @ b).operands == (a, b)


def test_names() -> None:
    named = Variable(NDArray([1.0]), name="weights")
    assert named.name == "weights"
    first, second = Variable(NDArray([1.0])), Variable(NDArray([1.0]))
    assert first.name != second.name
    assert "weights" in repr(named)


def test_backward_before_forward_raises() -> None:
    root = Sigmoid(Variable(NDArray([1.0])))
    with pytest.raises(ValueError, match="forward"):
        root.backward(NDArray([1.0]))
