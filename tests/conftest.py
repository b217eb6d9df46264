import numpy as np
import pytest

from revgrad.tensor import manual_seed


@pytest.fixture
def rng():
    return np.random.default_rng(0)


@pytest.fixture
def seeded():
    manual_seed(0)
