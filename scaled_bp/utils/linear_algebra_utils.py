#!/usr/bin/env python3
"""
Linear algebra utilities for scaled Gaussian message passing.
All inverses and log-determinants go through a single Cholesky factor.
"""

import numpy as np
from typing import Tuple

from ..exceptions import ConfigurationError, NumericalError


LOG_2PI = float(np.log(2.0 * np.pi))


def as_vector(value, name: str = "vector") -> np.ndarray:
    """Coerce scalars and sequences to a finite 1-D float array."""
    vector = np.atleast_1d(np.asarray(value, dtype=float))
    if vector.ndim != 1:
        raise ConfigurationError(f"{name} must be one-dimensional, got shape {vector.shape}")
    if not np.all(np.isfinite(vector)):
        raise NumericalError(f"{name} contains non-finite entries", reason="NonFinite")
    return vector


def checked_symmetric(matrix, dim: int, name: str = "matrix",
                      symmetry_tol: float = 1e-8) -> np.ndarray:
    """
    Validate shape and symmetry of a square matrix.

    Args:
        matrix: Candidate matrix (scalars are accepted for dim == 1)
        dim: Expected dimension
        name: Label used in error messages
        symmetry_tol: Allowed relative asymmetry before failing

    Returns:
        Symmetrized float copy of the matrix
    """
    matrix = np.asarray(matrix, dtype=float)
    if matrix.ndim == 0:
        matrix = matrix.reshape(1, 1)
    if matrix.shape != (dim, dim):
        raise ConfigurationError(f"{name} must have shape {(dim, dim)}, got {matrix.shape}")
    if not np.all(np.isfinite(matrix)):
        raise NumericalError(f"{name} contains non-finite entries", reason="NonFinite")

    scale = max(1.0, float(np.max(np.abs(matrix))))
    if np.max(np.abs(matrix - matrix.T)) > symmetry_tol * scale:
        raise NumericalError(f"{name} is not symmetric", reason="NotSymmetric")
    return 0.5 * (matrix + matrix.T)


def cholesky_factor(matrix: np.ndarray, name: str = "matrix") -> np.ndarray:
    """Lower Cholesky factor, raising NumericalError if not positive definite."""
    try:
        chol = np.linalg.cholesky(matrix)
    except np.linalg.LinAlgError as exc:
        raise NumericalError(f"{name} is not positive definite",
                             reason="NotPositiveDefinite") from exc
    if not np.all(np.diag(chol) > 0.0):
        raise NumericalError(f"{name} is not positive definite",
                             reason="NotPositiveDefinite")
    return chol


def cholesky_logdet(chol: np.ndarray) -> float:
    """log det(L Lᵀ) from the lower factor L."""
    return 2.0 * float(np.sum(np.log(np.diag(chol))))


def cholesky_whiten(chol: np.ndarray, rhs: np.ndarray) -> np.ndarray:
    """Solve L z = rhs for the lower factor L."""
    return np.linalg.solve(chol, rhs)


def cholesky_solve(chol: np.ndarray, rhs: np.ndarray) -> np.ndarray:
    """Solve (L Lᵀ) x = rhs."""
    return np.linalg.solve(chol.T, np.linalg.solve(chol, rhs))


def cholesky_inverse(chol: np.ndarray) -> np.ndarray:
    """Symmetric inverse of L Lᵀ."""
    inv_chol = np.linalg.solve(chol, np.eye(chol.shape[0]))
    inverse = inv_chol.T @ inv_chol
    return 0.5 * (inverse + inverse.T)


def mahalanobis_logdet(matrix: np.ndarray, residual: np.ndarray,
                       name: str = "matrix") -> Tuple[float, float]:
    """
    Quadratic form and log-determinant sharing one factorization.

    Args:
        matrix: Symmetric positive definite matrix V
        residual: Vector m

    Returns:
        (mᵀ V⁻¹ m, log det V)
    """
    chol = cholesky_factor(matrix, name)
    whitened = cholesky_whiten(chol, residual)
    return float(whitened @ whitened), cholesky_logdet(chol)


def gaussian_log_density(point: np.ndarray, mean: np.ndarray,
                         covariance: np.ndarray, name: str = "covariance") -> float:
    """log N(point; mean, covariance)."""
    quad, logdet = mahalanobis_logdet(covariance, point - mean, name)
    return -0.5 * (point.shape[0] * LOG_2PI + logdet + quad)
