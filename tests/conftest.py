from __future__ import annotations

from collections.abc import Iterator

import numpy as np
import pytest
from ndgrad import DEFAULT_SEED, set_seed


@pytest.fixture(autouse=True)
def _reseed() -> Iterator[None]:
    """Every test starts from the default seed of the shared generator."""
    set_seed(DEFAULT_SEED)
    yield
    set_seed(DEFAULT_SEED)


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(0)
