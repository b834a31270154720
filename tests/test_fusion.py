"""Tests for scaled message fusion."""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from scaled_bp import (
    CategoricalProb,
    ConfigurationError,
    Family,
    GaussianCanonical,
    MessageKind,
    NumericalError,
    PointMass,
    ScaledMessage,
    fuse,
    fuse_all,
)
from scaled_bp.utils.linear_algebra_utils import gaussian_log_density

LOG_2PI = np.log(2.0 * np.pi)


def gaussian(mean, cov, scale=0.0):
    return ScaledMessage(GaussianCanonical.from_mean_cov(mean, cov), scale)


class TestGaussianFusion:

    def test_product_and_normalizer(self):
        m1, S1 = np.array([0.5, 1.0]), np.array([[1.0, 0.2], [0.2, 2.0]])
        m2, S2 = np.array([-1.0, 0.3]), np.array([[0.7, -0.1], [-0.1, 0.4]])
        fused = fuse(gaussian(m1, S1, 0.3), gaussian(m2, S2, -1.2))

        post_cov = np.linalg.inv(np.linalg.inv(S1) + np.linalg.inv(S2))
        post_mean = post_cov @ (np.linalg.solve(S1, m1) + np.linalg.solve(S2, m2))
        assert_allclose(fused.distribution.covariance, post_cov, atol=1e-12)
        assert_allclose(fused.distribution.mean, post_mean, atol=1e-12)

        # ∫ N(x; m1, S1) N(x; m2, S2) dx = N(m1; m2, S1 + S2)
        expected = 0.3 - 1.2 - gaussian_log_density(m1, m2, S1 + S2)
        assert_allclose(fused.scale, expected, rtol=1e-12)

    def test_pointwise_identity(self):
        m1, S1 = np.array([2.0]), np.array([[3.0]])
        m2, S2 = np.array([-1.0]), np.array([[0.5]])
        fused = fuse(gaussian(m1, S1, 0.7), gaussian(m2, S2, 0.1))
        for x in (np.array([-2.0]), np.array([0.0]), np.array([1.5])):
            lhs = -0.8 + gaussian_log_density(x, m1, S1) + gaussian_log_density(x, m2, S2)
            rhs = -fused.scale + gaussian_log_density(x, fused.distribution.mean,
                                                      fused.distribution.covariance)
            assert_allclose(lhs, rhs, rtol=1e-12)

    def test_self_fusion(self):
        mean, cov = np.array([1.0, 2.0]), np.array([[2.0, 0.5], [0.5, 1.0]])
        message = gaussian(mean, cov, 0.25)
        fused = fuse(message, message)
        assert_allclose(fused.distribution.mean, mean, atol=1e-12)
        assert_allclose(fused.distribution.covariance, cov / 2.0, atol=1e-12)
        expected = 0.5 + 0.5 * np.linalg.slogdet(2.0 * np.pi * 2.0 * cov)[1]
        assert_allclose(fused.scale, expected, rtol=1e-12)

    def test_commutes(self):
        a = gaussian([0.0], [[1.0]], 0.2)
        b = gaussian([3.0], [[2.0]], 1.0)
        assert_allclose(fuse(a, b).scale, fuse(b, a).scale)

    def test_dimension_mismatch(self):
        with pytest.raises(ConfigurationError):
            fuse(gaussian([0.0], [[1.0]]), gaussian([0.0, 0.0], np.eye(2)))

    def test_without_scale(self):
        fused = fuse(gaussian([0.0], [[1.0]], 4.0), gaussian([3.0], [[2.0]], 1.0), with_scale=False)
        assert fused.scale == 0.0
        assert_allclose(fused.distribution.mean, [1.0])


class TestCategoricalFusion:

    def test_self_fusion(self):
        p = np.array([0.2, 0.5, 0.3])
        message = ScaledMessage(CategoricalProb(p), 0.4)
        fused = fuse(message, message)
        assert_allclose(fused.distribution.p, p * p / np.sum(p * p))
        assert_allclose(fused.scale, 0.8 - np.log(p @ p))

    def test_degenerate_overlap(self):
        left = ScaledMessage(CategoricalProb([1.0, 0.0]))
        right = ScaledMessage(CategoricalProb([0.0, 1.0]))
        with pytest.raises(NumericalError) as info:
            fuse(left, right)
        assert info.value.reason == "DegenerateFusion"


class TestSpecialMessages:

    def test_flat_is_identity(self):
        message = gaussian([1.0], [[2.0]], 0.5)
        fused = fuse(ScaledMessage.flat(1.0), message)
        assert fused.distribution is message.distribution
        assert fused.scale == 1.5
        assert fuse_all([]).kind is MessageKind.FLAT

    def test_point_mass_evaluates_gaussian(self):
        point = ScaledMessage(PointMass([0.5], Family.GAUSSIAN), 0.1)
        fused = fuse(gaussian([0.0], [[4.0]], 0.2), point)
        assert fused.kind is MessageKind.POINT_MASS
        expected = 0.3 - gaussian_log_density(np.array([0.5]), np.zeros(1), np.array([[4.0]]))
        assert_allclose(fused.scale, expected, rtol=1e-12)

    def test_point_mass_evaluates_categorical(self):
        point = ScaledMessage(PointMass(1, Family.CATEGORICAL))
        fused = fuse(point, ScaledMessage(CategoricalProb([0.25, 0.75])))
        assert_allclose(fused.scale, -np.log(0.75))

    def test_incompatible_families(self):
        with pytest.raises(ConfigurationError):
            fuse(gaussian([0.0], [[1.0]]), ScaledMessage(CategoricalProb([0.5, 0.5])))
        point = ScaledMessage(PointMass(0, Family.CATEGORICAL))
        with pytest.raises(ConfigurationError):
            fuse(point, point)
