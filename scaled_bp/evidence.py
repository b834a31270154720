#!/usr/bin/env python3
"""
Evidence aggregation from completed sweeps.

After a forward and a backward sweep every variable can fuse all of its
incoming messages. On a tree each of these fusions accounts for every factor
exactly once, so the scale of every belief equals -log Z. The aggregator reads
the scale at a reference variable and reports how far the other cuts stray.
"""

import logging
from typing import Dict, Optional, Tuple

from .exceptions import ConfigurationError, NumericalError
from .factor_graph import FactorGraph
from .messages import MessageKind
from .scheduler import ScaledBP


logger = logging.getLogger(__name__)


def cut_discrepancy(beliefs, reference: str) -> float:
    """Largest absolute difference between any belief scale and the reference one."""
    ref_scale = beliefs[reference].scale
    return max(abs(belief.scale - ref_scale) for belief in beliefs.values())


def compute_evidence(graph: FactorGraph, reference: Optional[str] = None) -> Tuple[Dict[str, object], float, float]:
    """
    Extract marginals and the log-evidence from fresh message slots.

    No messages are recomputed; both sweeps must have completed since the
    last change to the graph.

    Args:
        graph: Factor graph in SCALED_EVIDENCE mode
        reference: Variable whose belief scale defines log Z (default: root)

    Returns:
        (marginals by variable name, log_evidence, max_cut_discrepancy)

    Raises:
        ConfigurationError: the graph does not track scales, or unknown reference
        StaleMessageError: a message slot has not been recomputed
        NumericalError: a variable received no information at all
    """
    if not graph.tracks_scale:
        raise ConfigurationError(
            f"log-evidence needs scale tracking, graph runs in {graph.config.mode.value} mode"
        )
    reference = graph.root if reference is None else reference
    if reference not in graph.variables:
        raise ConfigurationError(f"unknown reference variable {reference!r}")

    beliefs = ScaledBP(graph).compute_beliefs(smoothed=True)
    for name, belief in beliefs.items():
        if belief.kind is MessageKind.FLAT:
            raise NumericalError("belief is flat and cannot be normalized",
                                 node=name, reason="ImproperMarginal")

    log_evidence = -beliefs[reference].scale
    discrepancy = cut_discrepancy(beliefs, reference)
    logger.info("log evidence %.10g at %s (max cut discrepancy %.3e)",
                log_evidence, reference, discrepancy)

    tolerance = graph.config.cut_tolerance * max(1.0, abs(log_evidence))
    if discrepancy > tolerance:
        logger.warning("Belief scales disagree across cuts by %.3e (tolerance %.3e)",
                       discrepancy, tolerance)

    marginals = {name: belief.distribution for name, belief in beliefs.items()}
    return marginals, log_evidence, discrepancy
