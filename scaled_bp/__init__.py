#!/usr/bin/env python3
"""
Scaled Belief Propagation package

Exact sum-product inference on tree-structured factor graphs with the model
evidence carried along as a scale on every message
"""

from .config import DEFAULT_CONFIG, EngineConfig, EngineMode
from .exceptions import ConfigurationError, EngineError, NumericalError, StaleMessageError
from .messages import (
    FLAT,
    CategoricalProb,
    Family,
    Flat,
    GaussianCanonical,
    MessageKind,
    PointMass,
    ScaledMessage,
)
from .factor_graph import Direction, FactorGraph
from .fusion import fuse, fuse_all
from .rules import apply_rule, condition_linear_gaussian
from .scheduler import ScaledBP, make_plan
from .evidence import compute_evidence
from .inference import extend_chain, run_filter, run_smoother
from .utils.factor_utils import (
    CategoricalTransition,
    Equality,
    FactorKind,
    LinearGaussianTransition,
    ObservationClamp,
    Prior,
    Role,
)
from .utils.graph_utils import ChainFactory, append_step, build_chain
from .utils.bethe import bethe_free_energy

__all__ = [
    'DEFAULT_CONFIG',
    'EngineConfig',
    'EngineMode',
    'ConfigurationError',
    'EngineError',
    'NumericalError',
    'StaleMessageError',
    'FLAT',
    'CategoricalProb',
    'Family',
    'Flat',
    'GaussianCanonical',
    'MessageKind',
    'PointMass',
    'ScaledMessage',
    'Direction',
    'FactorGraph',
    'fuse',
    'fuse_all',
    'apply_rule',
    'condition_linear_gaussian',
    'ScaledBP',
    'make_plan',
    'compute_evidence',
    'extend_chain',
    'run_filter',
    'run_smoother',
    'CategoricalTransition',
    'Equality',
    'FactorKind',
    'LinearGaussianTransition',
    'ObservationClamp',
    'Prior',
    'Role',
    'ChainFactory',
    'append_step',
    'build_chain',
    'bethe_free_energy',
]
