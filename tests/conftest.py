"""Shared fixtures and reference implementations for the test suite."""

import itertools

import numpy as np
import pytest

from scaled_bp import CategoricalTransition, LinearGaussianTransition
from scaled_bp.utils.graph_utils import categorical_chain_prior, gaussian_chain_prior


LOG_2PI = np.log(2.0 * np.pi)


def dense_lgss_reference(prior_mean, prior_cov, A, Q, C, R, observations, num_steps, b=None):
    """Joint-Gaussian reference for a linear-Gaussian state-space model.

    Builds the covariance of all states x_0..x_T at once, conditions on the
    observed steps and returns (log likelihood, smoothed means, smoothed covariances).
    """
    n = len(prior_mean)
    b = np.zeros(n) if b is None else np.asarray(b, dtype=float)

    means = [np.asarray(prior_mean, dtype=float)]
    for _ in range(num_steps):
        means.append(A @ means[-1] + b)
    state_mean = np.concatenate(means)

    # x_t = A^t x_0 + sum_s A^(t-s) w_s
    size = n * (num_steps + 1)
    gain = np.zeros((size, size))
    noise = np.zeros((size, size))
    noise[:n, :n] = prior_cov
    for s in range(1, num_steps + 1):
        noise[s * n:(s + 1) * n, s * n:(s + 1) * n] = Q
    for t in range(num_steps + 1):
        power = np.eye(n)
        for s in range(t, -1, -1):
            gain[t * n:(t + 1) * n, s * n:(s + 1) * n] = power
            power = power @ A
    state_cov = gain @ noise @ gain.T

    steps = sorted(observations)
    k = C.shape[0]
    H = np.zeros((k * len(steps), size))
    obs_noise = np.zeros((k * len(steps), k * len(steps)))
    for row, t in enumerate(steps):
        H[row * k:(row + 1) * k, t * n:(t + 1) * n] = C
        obs_noise[row * k:(row + 1) * k, row * k:(row + 1) * k] = R
    y = np.concatenate([np.asarray(observations[t], dtype=float) for t in steps])

    y_cov = H @ state_cov @ H.T + obs_noise
    residual = y - H @ state_mean
    _, logdet = np.linalg.slogdet(y_cov)
    log_likelihood = -0.5 * (len(y) * LOG_2PI + logdet + residual @ np.linalg.solve(y_cov, residual))

    kalman_gain = state_cov @ H.T @ np.linalg.inv(y_cov)
    post_mean = state_mean + kalman_gain @ residual
    post_cov = state_cov - kalman_gain @ H @ state_cov
    blocks = [slice(t * n, (t + 1) * n) for t in range(num_steps + 1)]
    return (log_likelihood,
            [post_mean[block] for block in blocks],
            [post_cov[block, block] for block in blocks])


def forward_backward(prior, A, E, observations, num_steps):
    """Scaled forward-backward for A[j, i] = P(x_t = j | x_{t-1} = i), E[y, i] = P(y | x = i).

    Returns (log Z, filtered marginals, smoothed marginals, log p(y_1..t) per step).
    """
    evidence = []
    for t in range(1, num_steps + 1):
        evidence.append(E[observations[t], :] if t in observations else np.ones(A.shape[0]))

    alphas = [np.asarray(prior, dtype=float) / np.sum(prior)]
    norms = []
    for t in range(1, num_steps + 1):
        alpha = (A @ alphas[-1]) * evidence[t - 1]
        norms.append(alpha.sum())
        alphas.append(alpha / norms[-1])

    betas = [np.ones(A.shape[0])]
    for t in range(num_steps, 0, -1):
        betas.insert(0, A.T @ (evidence[t - 1] * betas[0]) / norms[t - 1])

    smoothed = []
    for alpha, beta in zip(alphas, betas):
        gamma = alpha * beta
        smoothed.append(gamma / gamma.sum())
    prefix = np.concatenate([[0.0], np.cumsum(np.log(norms))])
    return float(prefix[-1]), alphas, smoothed, prefix


def brute_force_hmm(prior, A, E, observations, num_steps):
    """Enumerate every state sequence; returns (log Z, smoothed marginals)."""
    states = A.shape[0]
    marginals = np.zeros((num_steps + 1, states))
    total = 0.0
    for path in itertools.product(range(states), repeat=num_steps + 1):
        weight = prior[path[0]]
        for t in range(1, num_steps + 1):
            weight *= A[path[t], path[t - 1]]
            if t in observations:
                weight *= E[observations[t], path[t]]
        total += weight
        for t, state in enumerate(path):
            marginals[t, state] += weight
    return float(np.log(total)), list(marginals / total)


# ----------------------------------------------------------------------
# Model fixtures
# ----------------------------------------------------------------------
LGSS_A = np.array([[1.001, 1.6], [0.0, 1.0]])


@pytest.fixture
def lgss():
    """Two-dimensional tracking model with ten simulated observations."""
    rng = np.random.default_rng(1234)
    num_steps = 10
    A, Q, C, R = LGSS_A, np.eye(2), np.eye(2), 25.0 * np.eye(2)
    prior_mean, prior_cov = np.zeros(2), 100.0 * np.eye(2)

    state = rng.multivariate_normal(prior_mean, prior_cov)
    observations = {}
    for t in range(1, num_steps + 1):
        state = rng.multivariate_normal(A @ state, Q)
        observations[t] = rng.multivariate_normal(C @ state, R)

    return {
        "prior": gaussian_chain_prior(prior_mean, prior_cov),
        "transition": LinearGaussianTransition(A, Q),
        "observation": LinearGaussianTransition(C, R),
        "prior_mean": prior_mean,
        "prior_cov": prior_cov,
        "A": A, "Q": Q, "C": C, "R": R,
        "observations": observations,
        "num_steps": num_steps,
    }


@pytest.fixture
def hmm():
    """Three-state HMM with 50 simulated observations."""
    rng = np.random.default_rng(99)
    num_steps = 50
    prior = np.array([0.6, 0.3, 0.1])
    A = np.array([
        [0.85, 0.10, 0.15],
        [0.10, 0.80, 0.05],
        [0.05, 0.10, 0.80],
    ])
    E = np.array([
        [0.70, 0.20, 0.10],
        [0.20, 0.60, 0.30],
        [0.10, 0.20, 0.60],
    ])
    state = rng.choice(3, p=prior)
    observations = {}
    for t in range(1, num_steps + 1):
        state = rng.choice(3, p=A[:, state])
        observations[t] = int(rng.choice(3, p=E[:, state]))

    return {
        "prior": categorical_chain_prior(prior),
        "transition": CategoricalTransition(A),
        "observation": CategoricalTransition(E),
        "prior_p": prior, "A": A, "E": E,
        "observations": observations,
        "num_steps": num_steps,
    }
