#!/usr/bin/env python3
"""
Node rule library.

Every factor-to-variable message is produced by a rule looked up in an
explicit dispatch table keyed by (factor kind, direction, incoming kind).
A rule returns the outgoing normalized distribution together with the scale
increment Δ, the negative log of the normalizer it dropped.
"""

import numpy as np
from typing import Callable, Dict, Tuple

from .config import DEFAULT_CONFIG, EngineConfig
from .exceptions import ConfigurationError, NumericalError
from .factor_graph import Direction, Factor, Variable
from .fusion import fuse_all
from .messages import (
    FLAT,
    CategoricalProb,
    Family,
    GaussianCanonical,
    MessageKind,
    ScaledMessage,
)
from .utils.factor_utils import FactorKind
from .utils.linear_algebra_utils import (
    LOG_2PI,
    cholesky_factor,
    cholesky_logdet,
    cholesky_whiten,
)


RuleKey = Tuple[FactorKind, Direction, MessageKind]
Rule = Callable[..., Tuple[object, float]]

RULES: Dict[RuleKey, Rule] = {}


def rule(kind: FactorKind, direction: Direction, *incoming: MessageKind):
    """Register a rule for one factor kind and direction under each incoming kind."""
    def register(fn: Rule) -> Rule:
        for incoming_kind in incoming:
            key = (kind, direction, incoming_kind)
            if key in RULES:
                raise ConfigurationError(f"duplicate rule for {key}")
            RULES[key] = fn
        return fn
    return register


def lookup(kind: FactorKind, direction: Direction, incoming: MessageKind) -> Rule:
    try:
        return RULES[(kind, direction, incoming)]
    except KeyError:
        raise ConfigurationError(
            f"no rule for {kind.value} factor sending {direction.value} "
            f"given a {incoming.value} message"
        ) from None


# ----------------------------------------------------------------------
# Unary factors
# ----------------------------------------------------------------------
@rule(FactorKind.PRIOR, Direction.FORWARD, MessageKind.FLAT)
def prior_forward(params, incoming, target: Variable, config: EngineConfig):
    return params.distribution, 0.0


@rule(FactorKind.OBSERVATION_CLAMP, Direction.FORWARD, MessageKind.FLAT)
def clamp_forward(params, incoming, target: Variable, config: EngineConfig):
    point = params.point_mass(target)
    return (FLAT if point is None else point), 0.0


# ----------------------------------------------------------------------
# Linear-Gaussian transition x' ~ N(A x + b, Q)
# ----------------------------------------------------------------------
@rule(FactorKind.LINEAR_GAUSSIAN_TRANSITION, Direction.FORWARD, MessageKind.GAUSSIAN)
def linear_gaussian_predict(params, incoming: GaussianCanonical, target, config):
    """Pure prediction: N(μ, Σ) -> N(Aμ + b, AΣAᵀ + Q), nothing dropped."""
    A = params.A
    mean = A @ incoming.mean + params.b
    covariance = A @ incoming.covariance @ A.T + params.Q
    return GaussianCanonical.from_mean_cov(mean, covariance, config.symmetry_tol), 0.0


@rule(FactorKind.LINEAR_GAUSSIAN_TRANSITION, Direction.FORWARD, MessageKind.POINT_MASS)
def linear_gaussian_predict_from_point(params, incoming, target, config):
    if incoming.family is not Family.GAUSSIAN or incoming.dim != params.parent_dim:
        raise ConfigurationError(f"clamped parent of dim {incoming.dim}, expected {params.parent_dim}")
    mean = params.A @ incoming.value + params.b
    return GaussianCanonical.from_mean_cov(mean, params.Q, config.symmetry_tol), 0.0


def condition_linear_gaussian(A: np.ndarray, noise: np.ndarray, value: np.ndarray,
                              config: EngineConfig = DEFAULT_CONFIG):
    """
    Express x -> N(value; A x, noise) as exp(-Δ) N(x; Λ⁻¹ξ, Λ⁻¹).

    With noise = L Lᵀ, W = L⁻¹A and z = L⁻¹value the precision is Λ = WᵀW and
    the weighted mean ξ = Wᵀz. Both the dropped normalizer and the outgoing
    message use the factor L and the factor of Λ only.

    Args:
        A: Linear map, shape (k, n)
        noise: Covariance of the conditional, shape (k, k)
        value: Observed or expected child value, shape (k,)

    Returns:
        (distribution, Δ); the distribution is Flat when A is identically zero
    """
    k, n = A.shape
    chol = cholesky_factor(noise, "conditioning covariance")
    whitened_map = cholesky_whiten(chol, A)
    whitened_value = cholesky_whiten(chol, value)
    half_logdet_noise = 0.5 * cholesky_logdet(chol)
    value_term = 0.5 * float(whitened_value @ whitened_value)

    if not np.any(A):
        # Constant in x: the whole density is dropped into the scale
        return FLAT, value_term + 0.5 * k * LOG_2PI + half_logdet_noise

    if k < n or np.linalg.matrix_rank(whitened_map) < n:
        raise NumericalError(
            f"conditioning through a rank deficient map of shape {A.shape} "
            "leaves an improper message",
            reason="RankDeficientConditioning",
        )
    precision = whitened_map.T @ whitened_map
    weighted_mean = whitened_map.T @ whitened_value
    message = GaussianCanonical(weighted_mean, 0.5 * (precision + precision.T), config.symmetry_tol)

    projected = cholesky_whiten(message.precision_cholesky, weighted_mean)
    delta = (value_term - 0.5 * float(projected @ projected)
             + 0.5 * (k - n) * LOG_2PI
             + half_logdet_noise
             + 0.5 * cholesky_logdet(message.precision_cholesky))
    return message, delta


@rule(FactorKind.LINEAR_GAUSSIAN_TRANSITION, Direction.BACKWARD, MessageKind.POINT_MASS)
def linear_gaussian_condition_on_point(params, incoming, target, config):
    """Clamped child y: x -> N(y; Ax + b, Q)."""
    if incoming.family is not Family.GAUSSIAN or incoming.dim != params.child_dim:
        raise ConfigurationError(f"clamped child of dim {incoming.dim}, expected {params.child_dim}")
    return condition_linear_gaussian(params.A, params.Q, incoming.value - params.b, config)


@rule(FactorKind.LINEAR_GAUSSIAN_TRANSITION, Direction.BACKWARD, MessageKind.GAUSSIAN)
def linear_gaussian_condition_on_gaussian(params, incoming: GaussianCanonical, target, config):
    """Child message N(m, S): ∫ N(x'; Ax + b, Q) N(x'; m, S) dx' = N(m; Ax + b, Q + S)."""
    noise = params.Q + incoming.covariance
    return condition_linear_gaussian(params.A, noise, incoming.mean - params.b, config)


@rule(FactorKind.LINEAR_GAUSSIAN_TRANSITION, Direction.BACKWARD, MessageKind.FLAT)
def linear_gaussian_backward_flat(params, incoming, target, config):
    # ∫ N(x'; Ax + b, Q) dx' = 1
    return FLAT, 0.0


# ----------------------------------------------------------------------
# Categorical transition A[j, i] = P(child = j | parent = i)
# ----------------------------------------------------------------------
def _require_categorical_point(point, size: int):
    if point.family is not Family.CATEGORICAL or not 0 <= point.value < size:
        raise ConfigurationError(f"point mass {point!r} is not a state index below {size}")


def _normalize(weights, config: EngineConfig):
    distribution, log_total = CategoricalProb.normalized(
        weights, config.probability_floor, config.degeneracy_tol
    )
    return distribution, -log_total


@rule(FactorKind.CATEGORICAL_TRANSITION, Direction.FORWARD, MessageKind.CATEGORICAL)
def categorical_predict(params, incoming: CategoricalProb, target, config):
    return _normalize(params.A @ incoming.p, config)


@rule(FactorKind.CATEGORICAL_TRANSITION, Direction.FORWARD, MessageKind.POINT_MASS)
def categorical_predict_from_point(params, incoming, target, config):
    _require_categorical_point(incoming, params.A.shape[1])
    return _normalize(params.A[:, incoming.value], config)


@rule(FactorKind.CATEGORICAL_TRANSITION, Direction.FORWARD, MessageKind.FLAT)
def categorical_predict_from_flat(params, incoming, target, config):
    return _normalize(params.A.sum(axis=1), config)


@rule(FactorKind.CATEGORICAL_TRANSITION, Direction.BACKWARD, MessageKind.CATEGORICAL)
def categorical_condition_on_categorical(params, incoming: CategoricalProb, target, config):
    return _normalize(params.A.T @ incoming.p, config)


@rule(FactorKind.CATEGORICAL_TRANSITION, Direction.BACKWARD, MessageKind.POINT_MASS)
def categorical_condition_on_point(params, incoming, target, config):
    """Clamped child y: normalize(Aᵀ e_y), Δ = -log sum(Aᵀ e_y)."""
    _require_categorical_point(incoming, params.A.shape[0])
    return _normalize(params.A[incoming.value, :], config)


@rule(FactorKind.CATEGORICAL_TRANSITION, Direction.BACKWARD, MessageKind.FLAT)
def categorical_condition_on_flat(params, incoming, target, config):
    return _normalize(params.A.sum(axis=0), config)


# ----------------------------------------------------------------------
# Equality: the fused product of the other neighbours passes straight through
# ----------------------------------------------------------------------
@rule(FactorKind.EQUALITY, Direction.FORWARD, *MessageKind)
@rule(FactorKind.EQUALITY, Direction.BACKWARD, *MessageKind)
def equality_passthrough(params, incoming, target, config):
    return incoming, 0.0


def apply_rule(factor: Factor, direction: Direction, incoming, target: Variable,
               config: EngineConfig = DEFAULT_CONFIG, with_scale: bool = True) -> ScaledMessage:
    """
    Compute a factor-to-variable message.

    Args:
        factor: Sending factor
        direction: FORWARD towards a child, BACKWARD towards a parent
        incoming: Messages from the factor's other neighbours
        target: Receiving variable
        config: Engine tolerances
        with_scale: Track scale increments

    Returns:
        Outgoing ScaledMessage whose scale is the incoming scale plus Δ
    """
    combined = fuse_all(incoming, config, with_scale)
    fn = lookup(factor.kind, direction, combined.kind)
    distribution, delta = fn(factor.params, combined.distribution, target, config)
    scale = combined.scale + delta if with_scale else 0.0
    return ScaledMessage(distribution, scale)


__all__ = [
    'RULES',
    'apply_rule',
    'condition_linear_gaussian',
    'lookup',
    'rule',
]
