#!/usr/bin/env python3
"""
Engine configuration passed to a factor graph at construction.
"""

from dataclasses import dataclass
from enum import Enum


class EngineMode(Enum):
    """Rule set used by the scheduler."""
    FILTERING = "filtering"              # plain sum-product, scales dropped
    SCALED_EVIDENCE = "scaled_evidence"  # scale bookkeeping for log-evidence


@dataclass(frozen=True)
class EngineConfig:
    """Numerical tolerances and engine mode for one graph."""
    mode: EngineMode = EngineMode.SCALED_EVIDENCE
    symmetry_tol: float = 1e-8
    probability_floor: float = 1e-300
    degeneracy_tol: float = 1e-250
    cut_tolerance: float = 1e-6

    @property
    def tracks_scale(self) -> bool:
        return self.mode is EngineMode.SCALED_EVIDENCE


DEFAULT_CONFIG = EngineConfig()
