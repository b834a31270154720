#!/usr/bin/env python3
"""
Factor parameter types for scaled belief propagation.
Each parameter object knows its kind and validates the variables attached to it.
"""

import numpy as np
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, Optional

from ..exceptions import ConfigurationError
from ..messages import CategoricalProb, Family, GaussianCanonical, PointMass
from .linear_algebra_utils import as_vector, checked_symmetric


class FactorKind(Enum):
    PRIOR = "prior"
    LINEAR_GAUSSIAN_TRANSITION = "linear_gaussian_transition"
    CATEGORICAL_TRANSITION = "categorical_transition"
    OBSERVATION_CLAMP = "observation_clamp"
    EQUALITY = "equality"


class Role(Enum):
    """Position of a variable in a factor."""
    PARENT = "parent"
    CHILD = "child"


def _describe(variable) -> str:
    return f"{variable.name} ({variable.family.value}, dim={variable.dim})"


@dataclass
class Prior:
    """Unary factor emitting a fixed distribution."""
    distribution: Any
    kind: ClassVar[FactorKind] = FactorKind.PRIOR
    arity: ClassVar[Dict[Role, int]] = {Role.CHILD: 1}

    def __post_init__(self):
        if not isinstance(self.distribution, (GaussianCanonical, CategoricalProb)):
            raise ConfigurationError(
                f"prior must be a GaussianCanonical or CategoricalProb, got {type(self.distribution).__name__}"
            )

    def check_variable(self, variable, role: Role):
        dist = self.distribution
        if dist.family is not variable.family or dist.dim != variable.dim:
            raise ConfigurationError(f"prior of dim {dist.dim} does not fit {_describe(variable)}")


@dataclass
class LinearGaussianTransition:
    """
    Linear-Gaussian conditional x_child ~ N(A x_parent + b, Q).

    Args:
        A: Transition matrix, shape (child_dim, parent_dim)
        Q: Process noise covariance, shape (child_dim, child_dim)
        b: Optional offset, shape (child_dim,)
    """
    A: np.ndarray
    Q: np.ndarray
    b: Optional[np.ndarray] = None
    kind: ClassVar[FactorKind] = FactorKind.LINEAR_GAUSSIAN_TRANSITION
    arity: ClassVar[Dict[Role, int]] = {Role.PARENT: 1, Role.CHILD: 1}

    def __post_init__(self):
        self.A = np.atleast_2d(np.asarray(self.A, dtype=float))
        if self.A.ndim != 2:
            raise ConfigurationError(f"A must be a matrix, got shape {self.A.shape}")
        child_dim = self.A.shape[0]
        self.Q = checked_symmetric(self.Q, child_dim, "Q")
        if self.b is None:
            self.b = np.zeros(child_dim)
        else:
            self.b = as_vector(self.b, "b")
            if self.b.shape != (child_dim,):
                raise ConfigurationError(f"b must have shape {(child_dim,)}, got {self.b.shape}")

    @property
    def parent_dim(self) -> int:
        return self.A.shape[1]

    @property
    def child_dim(self) -> int:
        return self.A.shape[0]

    def check_variable(self, variable, role: Role):
        expected = self.parent_dim if role is Role.PARENT else self.child_dim
        if variable.family is not Family.GAUSSIAN or variable.dim != expected:
            raise ConfigurationError(
                f"linear-Gaussian {role.value} needs a Gaussian variable of dim {expected}, "
                f"got {_describe(variable)}"
            )


@dataclass
class CategoricalTransition:
    """Conditional table A[j, i] = P(child = j | parent = i)."""
    A: np.ndarray
    kind: ClassVar[FactorKind] = FactorKind.CATEGORICAL_TRANSITION
    arity: ClassVar[Dict[Role, int]] = {Role.PARENT: 1, Role.CHILD: 1}

    def __post_init__(self):
        self.A = np.asarray(self.A, dtype=float)
        if self.A.ndim != 2:
            raise ConfigurationError(f"A must be a matrix, got shape {self.A.shape}")
        if not np.all(np.isfinite(self.A)) or np.any(self.A < 0.0):
            raise ConfigurationError("categorical transition entries must be finite and non-negative")

    def check_variable(self, variable, role: Role):
        expected = self.A.shape[1] if role is Role.PARENT else self.A.shape[0]
        if variable.family is not Family.CATEGORICAL or variable.dim != expected:
            raise ConfigurationError(
                f"categorical {role.value} needs cardinality {expected}, got {_describe(variable)}"
            )


@dataclass
class ObservationClamp:
    """Unary factor pinning its variable to an observed value (None: unobserved)."""
    value: Any = None
    kind: ClassVar[FactorKind] = FactorKind.OBSERVATION_CLAMP
    arity: ClassVar[Dict[Role, int]] = {Role.CHILD: 1}

    def point_mass(self, variable) -> Optional[PointMass]:
        if self.value is None:
            return None
        point = PointMass(self.value, variable.family)
        if point.family is Family.GAUSSIAN and point.dim != variable.dim:
            raise ConfigurationError(f"observation of dim {point.dim} does not fit {_describe(variable)}")
        if point.family is Family.CATEGORICAL and not 0 <= point.value < variable.dim:
            raise ConfigurationError(f"observation index {point.value} out of range for {_describe(variable)}")
        return point

    def check_variable(self, variable, role: Role):
        self.point_mass(variable)


@dataclass
class Equality:
    """Constrains all attached variables to share one value."""
    kind: ClassVar[FactorKind] = FactorKind.EQUALITY
    arity: ClassVar[Optional[Dict[Role, int]]] = None
    _signature: Optional[tuple] = field(default=None, repr=False)

    def check_variable(self, variable, role: Role):
        signature = (variable.family, variable.dim)
        if self._signature is None:
            self._signature = signature
        elif signature != self._signature:
            raise ConfigurationError(f"equality constraint mixes families: {_describe(variable)}")
