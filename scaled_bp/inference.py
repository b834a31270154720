#!/usr/bin/env python3
"""
Inference entry points for chains built by ChainFactory.

run_filter and run_smoother recompute the whole chain; extend_chain appends
one step and only computes the messages the new step invalidated.
"""

import logging
from typing import Dict, List, Optional, Tuple

from .evidence import compute_evidence
from .exceptions import ConfigurationError
from .factor_graph import FactorGraph
from .scheduler import ScaledBP
from .utils.graph_utils import ChainFactory


logger = logging.getLogger(__name__)


def _chain_engine(graph: FactorGraph) -> ScaledBP:
    if not graph.steps:
        raise ConfigurationError("graph is not a chain built by ChainFactory")
    graph.root = graph.steps[-1]
    return ScaledBP(graph)


def _smoothed_marginals(graph: FactorGraph, bp: ScaledBP):
    if graph.tracks_scale:
        marginals, log_evidence, _ = compute_evidence(graph, graph.root)
        return [marginals[name] for name in graph.steps], log_evidence
    beliefs = bp.compute_beliefs(smoothed=True)
    return [beliefs[name].distribution for name in graph.steps], None


def run_filter(graph: FactorGraph, observations: Dict[int, object]) -> Tuple[List[object], Optional[float]]:
    """
    Forward filtering.

    Args:
        graph: Chain from build_chain
        observations: Observed values keyed by step 1..T; missing steps are unobserved

    Returns:
        (filtered marginals of x_0..x_T, log evidence or None in FILTERING mode)
    """
    graph.set_observations(observations)
    bp = _chain_engine(graph)
    bp.forward_sweep()

    beliefs = [bp.compute_filtered_belief(name) for name in graph.steps]
    log_evidence = -beliefs[-1].scale if graph.tracks_scale else None
    logger.info("Filtered %d steps, log evidence %s", len(graph.steps) - 1, log_evidence)
    return [belief.distribution for belief in beliefs], log_evidence


def run_smoother(graph: FactorGraph, observations: Dict[int, object]) -> Tuple[List[object], Optional[float]]:
    """
    Forward-backward smoothing.

    Returns:
        (smoothed marginals of x_0..x_T, log evidence or None in FILTERING mode)
    """
    graph.set_observations(observations)
    bp = _chain_engine(graph)
    bp.forward_sweep()
    bp.backward_sweep()
    return _smoothed_marginals(graph, bp)


def extend_chain(graph: FactorGraph, observation=None, smooth: bool = False,
                 transition=None, observation_params=None) -> Tuple[object, Optional[float]]:
    """
    Append one step to a chain and update it incrementally.

    Messages of the existing prefix stay valid; only the inward messages of
    the new step are computed. Outward messages and every existing belief are
    marked stale unless ``smooth`` asks for a full backward sweep.

    Args:
        graph: Chain from build_chain, normally after run_filter
        observation: Value observed at the new step, or None
        smooth: Rerun the backward sweep so all smoothed marginals are current
        transition: Transition parameters for the new step (default: last used)
        observation_params: Observation parameters for the new step (default: last used)

    Returns:
        (marginal of the new latest state, log evidence or None in FILTERING mode)
    """
    step = ChainFactory.append_step(graph, transition, observation_params)
    graph.set_clamp(graph.observation_clamps[step], observation)

    bp = _chain_engine(graph)
    graph.invalidate(bp.plan.outward)
    computed = bp.forward_sweep(only_stale=True)
    logger.debug("Extended chain to step %d with %d new messages", step, computed)

    if smooth:
        bp.backward_sweep()
        marginals, log_evidence = _smoothed_marginals(graph, bp)
        return marginals[-1], log_evidence

    belief = bp.compute_filtered_belief(graph.root)
    log_evidence = -belief.scale if graph.tracks_scale else None
    return belief.distribution, log_evidence
