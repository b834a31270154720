"""Tests for message distributions."""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from scaled_bp import (
    FLAT,
    CategoricalProb,
    ConfigurationError,
    Family,
    GaussianCanonical,
    MessageKind,
    NumericalError,
    PointMass,
    ScaledMessage,
)


MEAN = np.array([1.0, -2.0])
COV = np.array([[2.0, 0.3], [0.3, 0.5]])


class TestGaussianCanonical:

    def test_constructors_agree(self):
        precision = np.linalg.inv(COV)
        from_cov = GaussianCanonical.from_mean_cov(MEAN, COV)
        from_prec = GaussianCanonical.from_mean_precision(MEAN, precision)
        canonical = GaussianCanonical(precision @ MEAN, precision)

        for dist in (from_cov, from_prec, canonical):
            assert_allclose(dist.mean, MEAN, atol=1e-12)
            assert_allclose(dist.covariance, COV, atol=1e-12)
            assert_allclose(dist.weighted_mean, precision @ MEAN, atol=1e-12)
            assert_allclose(dist.logdet_covariance(), np.linalg.slogdet(COV)[1], atol=1e-12)
            assert dist.dim == 2
            assert dist.kind is MessageKind.GAUSSIAN

    def test_scalar_covariance(self):
        dist = GaussianCanonical.from_mean_cov(3.0, 4.0)
        assert dist.dim == 1
        assert_allclose(dist.precision, [[0.25]])

    def test_not_positive_definite(self):
        with pytest.raises(NumericalError) as info:
            GaussianCanonical.from_mean_cov(MEAN, np.array([[1.0, 2.0], [2.0, 1.0]]))
        assert info.value.reason == "NotPositiveDefinite"

    def test_asymmetry_beyond_tolerance(self):
        skewed = COV + np.array([[0.0, 1e-3], [0.0, 0.0]])
        with pytest.raises(NumericalError) as info:
            GaussianCanonical.from_mean_cov(MEAN, skewed)
        assert info.value.reason == "NotSymmetric"

    def test_asymmetry_within_tolerance_is_symmetrized(self):
        skewed = COV + np.array([[0.0, 1e-12], [0.0, 0.0]])
        dist = GaussianCanonical.from_mean_cov(MEAN, skewed)
        assert_allclose(dist.precision, dist.precision.T)

    def test_shape_mismatch(self):
        with pytest.raises(ConfigurationError):
            GaussianCanonical.from_mean_cov(MEAN, np.eye(3))

    def test_non_finite_mean(self):
        with pytest.raises(NumericalError):
            GaussianCanonical.from_mean_cov([np.nan, 0.0], COV)


class TestCategoricalProb:

    def test_normalizes(self):
        dist = CategoricalProb([2.0, 6.0])
        assert_allclose(dist.p, [0.25, 0.75])
        assert dist.dim == 2

    def test_floor_replaces_zeros(self):
        dist = CategoricalProb([1.0, 0.0, 0.0])
        assert np.all(dist.p > 0.0)
        assert_allclose(dist.p.sum(), 1.0)

    def test_normalized_returns_log_total(self):
        dist, log_total = CategoricalProb.normalized([0.2, 0.3])
        assert_allclose(dist.p, [0.4, 0.6])
        assert_allclose(log_total, np.log(0.5))

    def test_negative_entries(self):
        with pytest.raises(ConfigurationError):
            CategoricalProb([0.5, -0.1])

    def test_degenerate_normalizer(self):
        with pytest.raises(NumericalError) as info:
            CategoricalProb.normalized([0.0, 0.0])
        assert info.value.reason == "DegenerateNormalizer"


class TestPointMassAndFlat:

    def test_categorical_point_mass_needs_index(self):
        assert PointMass(2, Family.CATEGORICAL).value == 2
        with pytest.raises(ConfigurationError):
            PointMass(1.5, Family.CATEGORICAL)

    def test_gaussian_point_mass_dim(self):
        point = PointMass([1.0, 2.0], Family.GAUSSIAN)
        assert point.dim == 2
        assert point.kind is MessageKind.POINT_MASS

    def test_flat_message(self):
        message = ScaledMessage.flat(1.5)
        assert message.distribution is FLAT
        assert message.kind is MessageKind.FLAT
        assert message.rescaled(0.5).scale == 2.0

    def test_non_finite_scale(self):
        with pytest.raises(NumericalError):
            ScaledMessage(FLAT, np.inf)
