"""
Shared synthetic datasets.
"""

import numpy as np
import pytest
from scipy.special import expit

from pyglmopt import PartitionedDataset

# Heart-like benchmark: 10 clinical measurements on very different scales
# (age, sex, chest pain type, blood pressure, cholesterol, fasting sugar,
# ECG result, max heart rate, exercise angina, ST depression) plus intercept.
HEART_SIZE = 270
HEART_EFFECTS = np.array([0.4, 0.7, 0.8, 0.3, 0.3, -0.1, 0.3, -0.6, 0.5, 0.7])


def make_heart_like(seed=2014, num_partitions=3):
    """Fixed 11-feature dataset (intercept last) with noisy 0/1 labels."""
    rng = np.random.default_rng(seed)
    n = HEART_SIZE
    X = np.column_stack([
        rng.normal(54.0, 9.0, n),
        rng.integers(0, 2, n),
        rng.integers(1, 5, n),
        rng.normal(131.0, 17.0, n),
        rng.normal(250.0, 52.0, n),
        rng.binomial(1, 0.15, n),
        rng.integers(0, 3, n),
        rng.normal(150.0, 23.0, n),
        rng.binomial(1, 0.33, n),
        rng.exponential(1.0, n).round(1),
        np.ones(n),
    ]).astype(np.float64)

    z = (X[:, :-1] - X[:, :-1].mean(axis=0)) / X[:, :-1].std(axis=0)
    y = rng.binomial(1, expit(z @ HEART_EFFECTS - 0.2)).astype(np.float64)
    return PartitionedDataset.from_arrays(X, y, num_partitions=num_partitions)


def make_separable(seed, coefficients, size=100):
    """
    Labels predicted exactly by a logistic model at threshold 0.5.

    Features are independent standard normals with no filtering near the
    decision boundary. The intercept is the last feature.
    """
    rng = np.random.default_rng(seed)
    dimension = coefficients.shape[0] - 1
    X = np.column_stack([rng.standard_normal((size, dimension)), np.ones(size)])
    y = (expit(X @ coefficients) > 0.5).astype(np.float64)
    return X, y


@pytest.fixture(scope="module")
def heart_like():
    return make_heart_like()


@pytest.fixture
def small_dense():
    """Small dense dataset with mixed scales, weights and offsets."""
    rng = np.random.default_rng(7)
    n, p = 40, 4
    X = np.column_stack([
        rng.normal(3.0, 2.0, n),
        rng.normal(-10.0, 0.5, n),
        rng.uniform(0, 100, n),
        np.ones(n),
    ])
    y = rng.binomial(1, 0.4, n).astype(np.float64)
    weights = rng.uniform(0.5, 2.0, n)
    offsets = rng.normal(0.0, 0.1, n)
    return X, y, weights, offsets
