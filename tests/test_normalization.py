"""
Test normalization contexts.
"""

import pickle

import numpy as np
import pytest
import scipy.sparse as sp

from pyglmopt import (
    InvalidDimension,
    NormalizationContext,
    NormalizationType,
    PartitionedDataset,
    summarize,
)


@pytest.fixture
def summary_with_constant():
    rng = np.random.default_rng(5)
    n = 50
    X = np.column_stack([
        rng.normal(10.0, 4.0, n),
        rng.uniform(-8.0, 2.0, n),
        np.full(n, 123.456),
        np.zeros(n),
        np.ones(n),
    ])
    return X, summarize(PartitionedDataset.from_arrays(X, np.zeros(n)))


class TestNormalizationType:
    """Test policy parsing."""

    @pytest.mark.parametrize("value,expected", [
        ('none', NormalizationType.NONE),
        ('STANDARDIZATION', NormalizationType.STANDARDIZATION),
        ('scale', NormalizationType.SCALE_WITH_STANDARD_DEVIATION),
        ('scale_with_max_magnitude', NormalizationType.SCALE_WITH_MAX_MAGNITUDE),
    ])
    def test_parse(self, value, expected):
        assert NormalizationType(value) is expected

    def test_scale_alias(self):
        assert NormalizationType.SCALE is NormalizationType.SCALE_WITH_STANDARD_DEVIATION

    def test_unknown(self):
        with pytest.raises(ValueError):
            NormalizationType('whiten')


class TestBuild:
    """Test deriving factors and shifts from a summary."""

    def test_none_is_identity(self, summary_with_constant):
        _, summary = summary_with_constant
        ctx = NormalizationContext.build(summary, 'none', intercept_index=4)
        assert ctx.is_identity
        assert ctx.factors is None
        assert ctx.shifts is None
        assert ctx.intercept_index == 4

    def test_scale_with_standard_deviation(self, summary_with_constant):
        X, summary = summary_with_constant
        ctx = NormalizationContext.build(summary, NormalizationType.SCALE_WITH_STANDARD_DEVIATION,
                                         intercept_index=4)
        assert ctx.shifts is None
        np.testing.assert_allclose(ctx.factors[:2], 1.0 / X[:, :2].std(axis=0), rtol=1e-10)

    def test_scale_with_max_magnitude(self, summary_with_constant):
        X, summary = summary_with_constant
        ctx = NormalizationContext.build(summary, 'scale_with_max_magnitude', intercept_index=4)
        assert ctx.shifts is None
        np.testing.assert_allclose(ctx.factors[:3], 1.0 / np.abs(X[:, :3]).max(axis=0), rtol=1e-12)
        assert ctx.factors[3] == 1.0

    def test_standardization(self, summary_with_constant):
        X, summary = summary_with_constant
        ctx = NormalizationContext.build(summary, 'standardization', intercept_index=4)
        np.testing.assert_allclose(ctx.factors[:2], 1.0 / X[:, :2].std(axis=0), rtol=1e-10)
        np.testing.assert_allclose(ctx.shifts[:4], X[:, :4].mean(axis=0), rtol=1e-12)

    @pytest.mark.parametrize("kind", ['scale', 'standardization'])
    def test_constant_features_get_unit_factor(self, summary_with_constant, kind):
        _, summary = summary_with_constant
        ctx = NormalizationContext.build(summary, kind, intercept_index=4)
        assert ctx.factors[2] == 1.0
        assert ctx.factors[3] == 1.0
        assert np.all(np.isfinite(ctx.factors))

    @pytest.mark.parametrize("kind", ['scale', 'scale_with_max_magnitude', 'standardization'])
    def test_intercept_untouched(self, summary_with_constant, kind):
        _, summary = summary_with_constant
        ctx = NormalizationContext.build(summary, kind, intercept_index=4)
        assert ctx.factors[4] == 1.0
        if ctx.shifts is not None:
            assert ctx.shifts[4] == 0.0

    def test_intercept_out_of_range(self, summary_with_constant):
        _, summary = summary_with_constant
        with pytest.raises(InvalidDimension):
            NormalizationContext.build(summary, 'scale', intercept_index=5)


class TestContext:
    """Test context invariants and explicit transformation."""

    def test_arrays_read_only(self):
        ctx = NormalizationContext(factors=[2.0, 0.5], shifts=[1.0, -1.0])
        with pytest.raises(ValueError):
            ctx.factors[0] = 3.0
        with pytest.raises(ValueError):
            ctx.shifts[0] = 3.0

    def test_does_not_alias_input(self):
        factors = np.array([2.0, 0.5])
        ctx = NormalizationContext(factors=factors)
        factors[0] = 100.0
        assert ctx.factors[0] == 2.0

    def test_mismatched_shapes(self):
        with pytest.raises(InvalidDimension):
            NormalizationContext(factors=[1.0, 2.0], shifts=[0.0, 0.0, 0.0])

    def test_scaled_intercept_rejected(self):
        with pytest.raises(ValueError, match="intercept"):
            NormalizationContext(factors=[2.0, 3.0], intercept_index=1)
        with pytest.raises(ValueError, match="intercept"):
            NormalizationContext(shifts=[2.0, 3.0], intercept_index=0)

    def test_check_dimension(self):
        ctx = NormalizationContext(factors=[1.0, 2.0, 3.0])
        ctx.check_dimension(3)
        with pytest.raises(InvalidDimension):
            ctx.check_dimension(4)
        NormalizationContext.identity().check_dimension(17)

    def test_transform_dense(self):
        ctx = NormalizationContext(factors=[2.0, 0.5, 1.0], shifts=[1.0, -2.0, 0.0],
                                   intercept_index=2)
        X = np.array([[1.0, 0.0, 1.0], [3.0, 2.0, 1.0]])
        np.testing.assert_array_equal(ctx.transform(X), [[0.0, 1.0, 1.0], [4.0, 2.0, 1.0]])

    def test_transform_sparse_scale_stays_sparse(self):
        ctx = NormalizationContext(factors=[2.0, 0.5])
        X = sp.csr_matrix(np.array([[1.0, 0.0], [0.0, 4.0]]))
        result = ctx.transform(X)
        assert sp.issparse(result)
        np.testing.assert_array_equal(result.toarray(), [[2.0, 0.0], [0.0, 2.0]])

    def test_transform_sparse_with_shift(self):
        ctx = NormalizationContext(factors=[2.0, 0.5], shifts=[1.0, 1.0])
        X = sp.csr_matrix(np.array([[1.0, 0.0], [0.0, 4.0]]))
        np.testing.assert_array_equal(ctx.transform(X), [[0.0, -0.5], [-2.0, 1.5]])

    def test_transform_wrong_dimension(self):
        ctx = NormalizationContext(factors=[1.0, 2.0])
        with pytest.raises(InvalidDimension):
            ctx.transform(np.ones((3, 3)))

    def test_pickle_roundtrip(self):
        ctx = NormalizationContext(factors=[2.0, 1.0], shifts=[0.5, 0.0], intercept_index=1)
        restored = pickle.loads(pickle.dumps(ctx))
        np.testing.assert_array_equal(restored.factors, ctx.factors)
        np.testing.assert_array_equal(restored.shifts, ctx.shifts)
        assert restored.intercept_index == 1


class TestStandardizationInvariant:
    """Standardized training data has zero mean and unit variance."""

    def test_heart_like(self, heart_like):
        summary = summarize(heart_like)
        ctx = NormalizationContext.build(summary, 'standardization', intercept_index=10)
        transformed = summarize(ctx.transform_dataset(heart_like))

        np.testing.assert_allclose(transformed.mean[:10], 0.0, atol=1e-9)
        np.testing.assert_allclose(transformed.variance[:10], 1.0, rtol=1e-9)
        assert transformed.mean[10] == 1.0
        assert transformed.variance[10] == 0.0

    def test_scaled_has_unit_variance(self, heart_like):
        summary = summarize(heart_like)
        ctx = NormalizationContext.build(summary, 'scale', intercept_index=10)
        transformed = summarize(ctx.transform_dataset(heart_like))
        np.testing.assert_allclose(transformed.variance[:10], 1.0, rtol=1e-9)
