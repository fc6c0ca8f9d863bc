"""Tests for the numeric kernels and their registry."""

from __future__ import annotations

import numpy as np
import pytest
from ndgrad.backend import kernel as kernel_module
from ndgrad.backend.kernel import get_kernel, get_rng, set_seed, supported_dtypes
from ndgrad.errors import UnsupportedKernelOperation, UnsupportedScalarKind

ALL_DTYPES = [np.int64, np.float32, np.float64]


# =============================================================================
# Registry
# =============================================================================


@pytest.mark.parametrize("dtype", ALL_DTYPES)
def test_get_kernel_is_cached(dtype: type) -> None:
    first = get_kernel(dtype)
    assert first is get_kernel(np.dtype(dtype))
    assert first.dtype == np.dtype(dtype)


def test_supported_dtypes() -> None:
    assert set(supported_dtypes()) == {np.dtype(dtype) for dtype in ALL_DTYPES}


@pytest.mark.parametrize("dtype", [np.complex128, np.bool_, "not-a-dtype"])
def test_get_kernel_unsupported(dtype: object) -> None:
    with pytest.raises(UnsupportedScalarKind):
        get_kernel(dtype)


def test_register_kernel_binds_dtype() -> None:
    @kernel_module.register_kernel(np.int16)
    class Int16Kernel(kernel_module.IntKernel):
        pass

    try:
        assert Int16Kernel.dtype == np.dtype(np.int16)
        assert get_kernel(np.int16).dtype == np.dtype(np.int16)
    finally:
        del kernel_module._KERNEL_REGISTRY["int16"]
        kernel_module._resolve_kernel.cache_clear()


# =============================================================================
# Constants and casting
# =============================================================================


def test_constants() -> None:
    ints = get_kernel(np.int64)
    floats = get_kernel(np.float64)
    assert ints.zero == 0
    assert ints.one == 1
    assert ints.epsilon == 0
    assert floats.epsilon > 0
    assert ints.max_value == np.iinfo(np.int64).max
    assert floats.min_value == np.finfo(np.float64).min


def test_cast_rounds_half_to_even_for_integers() -> None:
    ints = get_kernel(np.int64)
    np.testing.assert_array_equal(ints.cast(np.array([0.5, 1.5, 2.5, -1.7])), [0, 2, 2, -2])
    assert ints.cast(2.6) == 3
    assert isinstance(get_kernel(np.float32).cast(1), np.float32)


# =============================================================================
# Arithmetic
# =============================================================================


def test_integer_division_truncates_toward_zero() -> None:
    ints = get_kernel(np.int64)
    x = np.array([7, -7, 7, -7, 6])
    y = np.array([2, 2, -2, -2, 3])
    np.testing.assert_array_equal(ints.div(x, y), [3, -3, -3, 3, 2])


@pytest.mark.parametrize("name", ["exp", "log", "sqrt", "tanh"])
def test_integer_transcendentals_unsupported(name: str) -> None:
    ints = get_kernel(np.int64)
    with pytest.raises(UnsupportedKernelOperation, match=name):
        getattr(ints, name)(np.array([1, 2]))


def test_integer_sigmoid_unsupported() -> None:
    with pytest.raises(UnsupportedKernelOperation):
        get_kernel(np.int64).sigmoid(np.array([0]))


@pytest.mark.parametrize("dtype", [np.float32, np.float64])
def test_float_functions_match_numpy(dtype: type) -> None:
    kernel = get_kernel(dtype)
    x = np.array([-2.0, -0.5, 0.0, 0.5, 2.0], dtype=dtype)
    np.testing.assert_allclose(kernel.sigmoid(x), 1 / (1 + np.exp(-x)), rtol=1e-6)
    np.testing.assert_allclose(kernel.tanh(x), np.tanh(x), rtol=1e-6)
    np.testing.assert_allclose(kernel.inv(x[x != 0]), 1 / x[x != 0], rtol=1e-6)
    np.testing.assert_allclose(kernel.sq(x), x * x, rtol=1e-6)

    y = kernel.sigmoid(x)
    np.testing.assert_allclose(kernel.dsigmoid(y), y * (1 - y), rtol=1e-6)
    t = kernel.tanh(x)
    np.testing.assert_allclose(kernel.dtanh(t), 1 - t**2, rtol=1e-6)


def test_round_and_clamp() -> None:
    floats = get_kernel(np.float64)
    np.testing.assert_array_equal(floats.round(np.array([1.25, 2.5, -0.5]), 1), [1.2, 2.5, -0.5])
    np.testing.assert_array_equal(floats.round(np.array([0.5, 1.5])), [0.0, 2.0])
    np.testing.assert_array_equal(floats.clamp(np.array([-3.0, 0.2, 9.0]), -1, 1), [-1.0, 0.2, 1.0])

    ints = get_kernel(np.int64)
    np.testing.assert_array_equal(ints.round(np.array([3, 4])), [3, 4])
    np.testing.assert_array_equal(ints.clamp(np.array([-5, 2, 9]), 0, 4), [0, 2, 4])


# =============================================================================
# Comparisons
# =============================================================================


def test_comparisons_return_numeric_booleans() -> None:
    floats = get_kernel(np.float64)
    x = np.array([1.0, 2.0, 3.0])
    y = np.array([1.0 + 1e-9, 3.0, 2.0])

    result = floats.eq(x, y)
    assert result.dtype == np.float64
    np.testing.assert_array_equal(result, [1.0, 0.0, 0.0])
    np.testing.assert_array_equal(floats.neq(x, y), [0.0, 1.0, 1.0])
    np.testing.assert_array_equal(floats.lt(x, y), [1.0, 1.0, 0.0])
    np.testing.assert_array_equal(floats.lte(x, x), [1.0, 1.0, 1.0])
    np.testing.assert_array_equal(floats.gt(x, y), [0.0, 0.0, 1.0])
    np.testing.assert_array_equal(floats.gte(x, y), [0.0, 0.0, 1.0])


def test_integer_equality_is_exact() -> None:
    ints = get_kernel(np.int64)
    np.testing.assert_array_equal(ints.eq(np.array([1, 2]), np.array([1, 3])), [1.0, 0.0])


# =============================================================================
# Random sampling
# =============================================================================


@pytest.mark.parametrize("dtype", ALL_DTYPES)
def test_rand_within_bounds(dtype: type) -> None:
    samples = get_kernel(dtype).rand(-3, 3, size=1000)
    assert samples.dtype == np.dtype(dtype)
    assert samples.min() >= -3
    assert samples.max() < 3


def test_set_seed_is_reproducible() -> None:
    kernel = get_kernel(np.float64)
    set_seed(7)
    first = kernel.rand(0, 1, size=5)
    set_seed(7)
    np.testing.assert_array_equal(kernel.rand(0, 1, size=5), first)


def test_set_seed_replaces_generator() -> None:
    before = get_rng()
    set_seed(1)
    assert get_rng() is not before
