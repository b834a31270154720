#!/usr/bin/env python3
"""
Fusion of two scaled messages about the same variable.

Multiplying two unnormalized messages exp(-s1) q1(x) and exp(-s2) q2(x) gives
exp(-s) q(x) with q the renormalized product; the returned scale s carries
the normalizer of q1 * q2 so that no mass is lost along the way.
"""

import numpy as np
from typing import Callable, Dict, Iterable, Tuple

from .config import DEFAULT_CONFIG, EngineConfig
from .exceptions import ConfigurationError, NumericalError
from .messages import CategoricalProb, GaussianCanonical, MessageKind, PointMass, ScaledMessage
from .utils.linear_algebra_utils import LOG_2PI, mahalanobis_logdet


def _fuse_gaussian(left: GaussianCanonical, right: GaussianCanonical,
                   config: EngineConfig, with_scale: bool):
    """
    Product of two Gaussians.

    N(x; μ1, Σ1) N(x; μ2, Σ2) = N(μ1; μ2, V) N(x; μc, Σc) with V = Σ1 + Σ2,
    so the dropped log-normalizer is ½ logdet(2πV) + ½ mᵀV⁻¹m, m = μ1 - μ2.
    """
    if left.dim != right.dim:
        raise ConfigurationError(f"cannot fuse Gaussians of dim {left.dim} and {right.dim}")
    combined = GaussianCanonical(
        left.weighted_mean + right.weighted_mean,
        left.precision + right.precision,
        config.symmetry_tol,
    )
    if not with_scale:
        return combined, 0.0

    # One factorization of V serves both the quadratic form and the determinant
    quad, logdet = mahalanobis_logdet(
        left.covariance + right.covariance, left.mean - right.mean, "fusion covariance"
    )
    delta = 0.5 * (left.dim * LOG_2PI + logdet) + 0.5 * quad
    return combined, delta


def _fuse_categorical(left: CategoricalProb, right: CategoricalProb,
                      config: EngineConfig, with_scale: bool):
    if left.dim != right.dim:
        raise ConfigurationError(f"cannot fuse categoricals of size {left.dim} and {right.dim}")
    product = left.p * right.p
    overlap = float(product.sum())
    if overlap <= config.degeneracy_tol:
        raise NumericalError(
            f"categorical overlap {overlap:.3e} vanished; evidence is contradictory",
            reason="DegenerateFusion",
        )
    combined = CategoricalProb(product / overlap, config.probability_floor)
    return combined, -np.log(overlap)


def _evaluate_gaussian(point: PointMass, density: GaussianCanonical,
                       config: EngineConfig, with_scale: bool):
    """δ(x - y) N(x; μ, Σ) = N(y; μ, Σ) δ(x - y)."""
    if point.family is not density.family or point.dim != density.dim:
        raise ConfigurationError(f"point mass {point!r} does not fit a Gaussian of dim {density.dim}")
    if not with_scale:
        return point, 0.0
    # Λ = L Lᵀ gives (y - μ)ᵀ Λ (y - μ) = |Lᵀ (y - μ)|²
    chol = density.precision_cholesky
    whitened = chol.T @ (point.value - density.mean)
    log_density = -0.5 * (density.dim * LOG_2PI + density.logdet_covariance()
                          + float(whitened @ whitened))
    return point, -log_density


def _evaluate_categorical(point: PointMass, density: CategoricalProb,
                          config: EngineConfig, with_scale: bool):
    if point.family is not density.family or not 0 <= point.value < density.dim:
        raise ConfigurationError(f"point mass {point!r} does not fit a categorical of size {density.dim}")
    mass = float(density.p[point.value])
    if mass <= config.degeneracy_tol:
        raise NumericalError(
            f"observed state {point.value} has vanishing probability {mass:.3e}",
            reason="DegenerateFusion",
        )
    return point, -np.log(mass)


_FusionRule = Callable[..., Tuple[object, float]]

FUSION_RULES: Dict[Tuple[MessageKind, MessageKind], _FusionRule] = {
    (MessageKind.GAUSSIAN, MessageKind.GAUSSIAN): _fuse_gaussian,
    (MessageKind.CATEGORICAL, MessageKind.CATEGORICAL): _fuse_categorical,
    (MessageKind.POINT_MASS, MessageKind.GAUSSIAN): _evaluate_gaussian,
    (MessageKind.POINT_MASS, MessageKind.CATEGORICAL): _evaluate_categorical,
}


def fuse(left: ScaledMessage, right: ScaledMessage,
         config: EngineConfig = DEFAULT_CONFIG, with_scale: bool = True) -> ScaledMessage:
    """
    Combine two scaled messages about one variable.

    Args:
        left: First message
        right: Second message
        config: Tolerances used for categorical degeneracy and symmetry checks
        with_scale: If False the correction term is skipped (plain sum-product)

    Returns:
        Renormalized product with scale left.scale + right.scale + correction

    Raises:
        ConfigurationError: the two messages belong to incompatible families
        NumericalError: non positive definite result or degenerate overlap
    """
    base = left.scale + right.scale if with_scale else 0.0
    if left.kind is MessageKind.FLAT:
        return ScaledMessage(right.distribution, base)
    if right.kind is MessageKind.FLAT:
        return ScaledMessage(left.distribution, base)

    key = (left.kind, right.kind)
    rule = FUSION_RULES.get(key)
    first, second = left.distribution, right.distribution
    if rule is None:
        rule = FUSION_RULES.get((right.kind, left.kind))
        first, second = second, first
    if rule is None:
        raise ConfigurationError(
            f"cannot fuse {left.kind.value} with {right.kind.value} messages"
        )

    distribution, delta = rule(first, second, config, with_scale)
    return ScaledMessage(distribution, base + delta if with_scale else 0.0)


def fuse_all(messages: Iterable[ScaledMessage], config: EngineConfig = DEFAULT_CONFIG,
             with_scale: bool = True) -> ScaledMessage:
    """Fold ``fuse`` over messages; the empty product is flat."""
    result = ScaledMessage.flat()
    for message in messages:
        result = fuse(result, message, config, with_scale)
    return result
