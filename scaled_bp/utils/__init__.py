#!/usr/bin/env python3
"""
Utility modules for scaled belief propagation
"""

from .linear_algebra_utils import (
    LOG_2PI,
    cholesky_factor,
    cholesky_inverse,
    cholesky_logdet,
    cholesky_solve,
    gaussian_log_density,
    mahalanobis_logdet,
)

__all__ = [
    'LOG_2PI',
    'cholesky_factor',
    'cholesky_inverse',
    'cholesky_logdet',
    'cholesky_solve',
    'gaussian_log_density',
    'mahalanobis_logdet',
]
