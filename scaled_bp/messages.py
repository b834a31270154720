#!/usr/bin/env python3
"""
Message data structures for scaled belief propagation.

A ScaledMessage stands for the unnormalized function exp(-scale) * q(x),
where q is the normalized distribution it carries.
"""

import numpy as np
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Union

from .exceptions import ConfigurationError, NumericalError
from .utils.linear_algebra_utils import (
    as_vector,
    checked_symmetric,
    cholesky_factor,
    cholesky_inverse,
    cholesky_logdet,
    cholesky_solve,
)


PROBABILITY_FLOOR = 1e-300


class Family(Enum):
    """Distribution family of a variable."""
    GAUSSIAN = "gaussian"
    CATEGORICAL = "categorical"


class MessageKind(Enum):
    """Tag of the distribution carried by a message."""
    GAUSSIAN = "gaussian"
    CATEGORICAL = "categorical"
    POINT_MASS = "point_mass"
    FLAT = "flat"


class GaussianCanonical:
    """Gaussian in canonical form with weighted mean ξ = Λμ and precision Λ.

    Each constructor performs exactly one Cholesky factorization, of whichever
    matrix it was given, and caches the moment parameters derived from it.
    """

    kind = MessageKind.GAUSSIAN
    family = Family.GAUSSIAN

    def __init__(self, weighted_mean, precision, symmetry_tol: float = 1e-8):
        self.weighted_mean = as_vector(weighted_mean, "weighted mean")
        self.precision = checked_symmetric(
            precision, self.weighted_mean.shape[0], "precision", symmetry_tol
        )
        self._precision_chol = cholesky_factor(self.precision, "precision")
        self._covariance_chol = None
        self._mean = None
        self._covariance = None

    @classmethod
    def from_mean_cov(cls, mean, covariance, symmetry_tol: float = 1e-8) -> "GaussianCanonical":
        """Build from mean and covariance (factorizes the covariance)."""
        mean = as_vector(mean, "mean")
        covariance = checked_symmetric(covariance, mean.shape[0], "covariance", symmetry_tol)
        chol = cholesky_factor(covariance, "covariance")
        precision = cholesky_inverse(chol)

        obj = cls.__new__(cls)
        obj.weighted_mean = cholesky_solve(chol, mean)
        obj.precision = precision
        obj._precision_chol = None
        obj._covariance_chol = chol
        obj._mean = mean
        obj._covariance = covariance
        return obj

    @classmethod
    def from_mean_precision(cls, mean, precision, symmetry_tol: float = 1e-8) -> "GaussianCanonical":
        """Build from mean and precision (factorizes the precision)."""
        mean = as_vector(mean, "mean")
        precision = checked_symmetric(precision, mean.shape[0], "precision", symmetry_tol)
        obj = cls(precision @ mean, precision, symmetry_tol)
        obj._mean = mean
        return obj

    @property
    def dim(self) -> int:
        return self.weighted_mean.shape[0]

    @property
    def precision_cholesky(self) -> np.ndarray:
        if self._precision_chol is None:
            self._precision_chol = cholesky_factor(self.precision, "precision")
        return self._precision_chol

    @property
    def mean(self) -> np.ndarray:
        if self._mean is None:
            if self._covariance_chol is not None:
                self._mean = self.covariance @ self.weighted_mean
            else:
                self._mean = cholesky_solve(self._precision_chol, self.weighted_mean)
        return self._mean

    @property
    def covariance(self) -> np.ndarray:
        if self._covariance is None:
            self._covariance = cholesky_inverse(self._precision_chol)
        return self._covariance

    def logdet_covariance(self) -> float:
        if self._covariance_chol is not None:
            return cholesky_logdet(self._covariance_chol)
        return -cholesky_logdet(self.precision_cholesky)

    def __repr__(self):
        return f"GaussianCanonical(mean={self.mean!r}, covariance={self.covariance!r})"


class CategoricalProb:
    """Categorical distribution stored as a normalized probability vector."""

    kind = MessageKind.CATEGORICAL
    family = Family.CATEGORICAL

    def __init__(self, probabilities, floor: float = PROBABILITY_FLOOR):
        weights = as_vector(probabilities, "probabilities")
        if np.any(weights < 0.0):
            raise ConfigurationError("probabilities must be non-negative")
        total = float(weights.sum())
        if total <= 0.0:
            raise NumericalError("probability vector has zero mass", reason="ZeroMass")
        probs = np.maximum(weights / total, floor)
        self.p = probs / probs.sum()

    @classmethod
    def normalized(cls, weights, floor: float = PROBABILITY_FLOOR,
                   degeneracy_tol: float = 0.0) -> Tuple["CategoricalProb", float]:
        """
        Normalize non-negative weights.

        Returns:
            (distribution, log of the dropped normalizer sum(weights))
        """
        weights = np.asarray(weights, dtype=float)
        total = float(weights.sum())
        if not np.isfinite(total) or total <= degeneracy_tol:
            raise NumericalError(
                f"categorical normalizer {total!r} is degenerate", reason="DegenerateNormalizer"
            )
        return cls(weights, floor), float(np.log(total))

    @property
    def dim(self) -> int:
        return self.p.shape[0]

    def __repr__(self):
        return f"CategoricalProb(p={self.p!r})"


class PointMass:
    """Clamped value: a vector for Gaussian variables, an index for categorical ones."""

    kind = MessageKind.POINT_MASS

    def __init__(self, value, family: Family):
        self.family = family
        if family is Family.CATEGORICAL:
            if isinstance(value, (bool, np.bool_)) or int(value) != value:
                raise ConfigurationError(f"categorical point mass needs an integer index, got {value!r}")
            self.value = int(value)
        else:
            self.value = as_vector(value, "point mass value")

    @property
    def dim(self) -> Optional[int]:
        return None if self.family is Family.CATEGORICAL else self.value.shape[0]

    def __repr__(self):
        return f"PointMass({self.value!r}, {self.family.value})"


class Flat:
    """Constant function; the identity element of fusion."""

    kind = MessageKind.FLAT
    family = None
    dim = None

    def __repr__(self):
        return "Flat()"


FLAT = Flat()

Distribution = Union[GaussianCanonical, CategoricalProb, PointMass, Flat]


@dataclass(frozen=True)
class ScaledMessage:
    """A distribution together with the negative log-normalizer it dropped."""
    distribution: Distribution
    scale: float = 0.0

    def __post_init__(self):
        if not np.isfinite(self.scale):
            raise NumericalError(f"message scale {self.scale!r} is not finite", reason="NonFinite")

    @property
    def kind(self) -> MessageKind:
        return self.distribution.kind

    def rescaled(self, delta: float) -> "ScaledMessage":
        return ScaledMessage(self.distribution, self.scale + float(delta))

    @classmethod
    def flat(cls, scale: float = 0.0) -> "ScaledMessage":
        return cls(FLAT, scale)
