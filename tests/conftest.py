import numpy as np
import pytest


def make_breakpoint_data(n=180, seed=0, breakpoint=18.):
    """
    One regressor `x` (column 0), an age-like partitioning variable (column 1) with a change of the
    slope at `breakpoint` and an unrelated partitioning variable (column 2).
    """
    rng = np.random.default_rng(seed)
    x = rng.normal(size=n)
    age = rng.uniform(10, 26, size=n)
    other = rng.normal(size=n)

    slope = np.where(age <= breakpoint, 2., -2.)
    y = 1. + slope * x + rng.normal(scale=0.5, size=n)
    return np.column_stack([x, age, other]), y


def make_noise_data(n=200, seed=0):
    """Response unrelated to the regressor (column 0) and both partitioning variables (columns 1, 2)"""
    rng = np.random.default_rng(seed)
    X = rng.normal(size=(n, 3))
    y = rng.normal(size=n)
    return X, y


@pytest.fixture
def breakpoint_data():
    return make_breakpoint_data()
