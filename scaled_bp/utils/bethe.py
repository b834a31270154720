#!/usr/bin/env python3
"""
Bethe Free Energy of a tree-structured factor graph.

    F = sum_a (U_a - H_a) + sum_i (d_i - 1) H_i

with U_a = -E[log f_a] under the factor belief b_a, H the entropies and d_i
the number of factors attached to variable i. Factor beliefs are rebuilt
from the variable-to-factor messages of completed sweeps. At the exact tree
beliefs F equals -log Z, which makes it an independent check of the scale
carried by the messages.

Clamped variables are eliminated: a factor touching one is evaluated at the
clamped value, and neither the variable nor its clamp contributes entropy.
"""

import numpy as np

from ..exceptions import ConfigurationError
from ..messages import CategoricalProb, GaussianCanonical, MessageKind
from ..scheduler import ScaledBP
from .factor_utils import FactorKind, Role
from .linear_algebra_utils import LOG_2PI, cholesky_factor, cholesky_logdet, cholesky_solve, cholesky_whiten


def xlogy(x, y) -> np.ndarray:
    """x * log(y), with zero wherever x or y is zero."""
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    out = np.zeros(np.broadcast(x, y).shape)
    x, y = np.broadcast_to(x, out.shape), np.broadcast_to(y, out.shape)
    mask = (x > 0.0) & (y > 0.0)
    out[mask] = x[mask] * np.log(y[mask])
    return out


def entropy(distribution) -> float:
    """Differential entropy of a Gaussian or Shannon entropy of a categorical."""
    if isinstance(distribution, GaussianCanonical):
        return 0.5 * (distribution.dim * (1.0 + LOG_2PI) + distribution.logdet_covariance())
    if isinstance(distribution, CategoricalProb):
        return -float(np.sum(xlogy(distribution.p, distribution.p)))
    raise ConfigurationError(f"no entropy for {distribution!r}")


def expected_gaussian_energy(residual_mean, residual_cov, noise) -> float:
    """
    -E[log N(e; 0, noise)] for a residual e with the given mean and covariance.

    Equals ½(k log 2π + logdet noise + rᵀ noise⁻¹ r + tr(noise⁻¹ C)).
    """
    chol = cholesky_factor(noise, "factor covariance")
    whitened = cholesky_whiten(chol, residual_mean)
    trace = float(np.trace(cholesky_solve(chol, residual_cov)))
    k = residual_mean.shape[0]
    return 0.5 * (k * LOG_2PI + cholesky_logdet(chol) + float(whitened @ whitened) + trace)


def _categorical_unary(belief: CategoricalProb, weights) -> float:
    """U - H for a unary factor with values ``weights`` and belief ``belief``."""
    p = belief.p
    return float(np.sum(xlogy(p, p)) - np.sum(xlogy(p, weights)))


def _canonical(distribution, dim: int):
    if distribution.kind is MessageKind.FLAT:
        return np.zeros(dim), np.zeros((dim, dim))
    return distribution.weighted_mean, distribution.precision


def _gaussian_pair(params, parent_msg, child_msg) -> float:
    """U - H for a linear-Gaussian factor with both ends latent."""
    A, Q, b = params.A, params.Q, params.b
    n, k = params.parent_dim, params.child_dim
    xi_p, lam_p = _canonical(parent_msg, n)
    xi_c, lam_c = _canonical(child_msg, k)

    q_inv = cholesky_solve(cholesky_factor(Q, "Q"), np.eye(k))
    at_q_inv = A.T @ q_inv
    precision = np.block([
        [lam_p + at_q_inv @ A, -at_q_inv],
        [-q_inv @ A, q_inv + lam_c],
    ])
    weighted_mean = np.concatenate([xi_p - at_q_inv @ b, q_inv @ b + xi_c])
    joint = GaussianCanonical(weighted_mean, 0.5 * (precision + precision.T))

    # Residual e = x_c - A x_p - b = M z - b
    M = np.hstack([-A, np.eye(k)])
    energy = expected_gaussian_energy(M @ joint.mean - b, M @ joint.covariance @ M.T, Q)
    return energy - entropy(joint)


def _categorical_pair(params, parent_msg, child_msg) -> float:
    """U - H for a categorical transition with both ends latent."""
    A = params.A
    m_p = np.ones(A.shape[1]) if parent_msg.kind is MessageKind.FLAT else parent_msg.p
    m_c = np.ones(A.shape[0]) if child_msg.kind is MessageKind.FLAT else child_msg.p
    joint = A * np.outer(m_c, m_p)
    joint = joint / joint.sum()
    return float(np.sum(xlogy(joint, joint)) - np.sum(xlogy(joint, A)))


def _transition_term(graph, factor, beliefs) -> float:
    params = factor.params
    parent = next(name for name, role in factor.connections if role is Role.PARENT)
    child = next(name for name, role in factor.connections if role is Role.CHILD)
    b_p, b_c = beliefs[parent], beliefs[child]
    parent_clamped = b_p.kind is MessageKind.POINT_MASS
    child_clamped = b_c.kind is MessageKind.POINT_MASS

    if factor.kind is FactorKind.LINEAR_GAUSSIAN_TRANSITION:
        A, Q, b = params.A, params.Q, params.b
        if parent_clamped and child_clamped:
            residual = b_c.value - A @ b_p.value - b
            return expected_gaussian_energy(residual, np.zeros_like(Q), Q)
        if child_clamped:
            energy = expected_gaussian_energy(b_c.value - A @ b_p.mean - b, A @ b_p.covariance @ A.T, Q)
            return energy - entropy(b_p)
        if parent_clamped:
            energy = expected_gaussian_energy(b_c.mean - A @ b_p.value - b, b_c.covariance, Q)
            return energy - entropy(b_c)
        return _gaussian_pair(params, graph.message(parent, factor.name).distribution,
                              graph.message(child, factor.name).distribution)

    A = params.A
    if parent_clamped and child_clamped:
        return -float(np.log(A[b_c.value, b_p.value]))
    if child_clamped:
        return _categorical_unary(b_p, A[b_c.value, :])
    if parent_clamped:
        return _categorical_unary(b_c, A[:, b_p.value])
    return _categorical_pair(params, graph.message(parent, factor.name).distribution,
                             graph.message(child, factor.name).distribution)


def _prior_term(prior, belief) -> float:
    dist = prior.distribution
    if belief.kind is MessageKind.POINT_MASS:
        raise ConfigurationError("prior attached to a clamped variable")
    if isinstance(dist, GaussianCanonical):
        energy = expected_gaussian_energy(belief.mean - dist.mean, belief.covariance, dist.covariance)
        return energy - entropy(belief)
    return _categorical_unary(belief, dist.p)


def bethe_free_energy(graph) -> float:
    """
    Bethe Free Energy from fresh message slots (both sweeps completed).

    Args:
        graph: Tree without equality factors

    Returns:
        F; equals -log Z at the exact beliefs
    """
    beliefs = {name: message.distribution
               for name, message in ScaledBP(graph).compute_beliefs(smoothed=True).items()}

    total = 0.0
    for factor in graph.factors.values():
        kind = factor.kind
        if kind is FactorKind.EQUALITY:
            raise ConfigurationError("Bethe reference does not support equality factors")
        if kind is FactorKind.OBSERVATION_CLAMP:
            variable = factor.connections[0][0]
            if beliefs[variable].kind is not MessageKind.POINT_MASS:
                # Constant factor: U = 0
                total -= entropy(beliefs[variable])
        elif kind is FactorKind.PRIOR:
            total += _prior_term(factor.params, beliefs[factor.connections[0][0]])
        else:
            total += _transition_term(graph, factor, beliefs)

    for name, variable in graph.variables.items():
        if beliefs[name].kind is MessageKind.POINT_MASS:
            continue
        total += (len(variable.factors) - 1) * entropy(beliefs[name])
    return total
