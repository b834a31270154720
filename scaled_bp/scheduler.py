#!/usr/bin/env python3
"""
Traversal scheduler for scaled belief propagation on trees.

The plan is computed once per graph structure: an inward (post-order) edge
list towards the root and an outward (pre-order) edge list away from it.
On a chain rooted at its last state these are the forward and backward sweeps.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import networkx as nx

from .exceptions import NumericalError
from .factor_graph import FactorGraph
from .fusion import fuse_all
from .messages import ScaledMessage
from .rules import apply_rule


logger = logging.getLogger(__name__)

DirectedEdge = Tuple[str, str]


@dataclass
class SweepPlan:
    """Fixed message order for one graph structure."""
    root: str
    inward: List[DirectedEdge]
    outward: List[DirectedEdge]
    toward_root: Dict[str, str]
    version: int


def make_plan(graph: FactorGraph) -> SweepPlan:
    """Compute inward and outward sweeps from a DFS rooted at ``graph.root``."""
    graph.check_tree()
    root = graph.root
    tree_edges = list(nx.dfs_edges(graph.graph, source=root))

    toward_root = {child: parent for parent, child in tree_edges}
    # Reversed pre-order visits every subtree before the edge leaving it
    inward = [(child, parent) for parent, child in reversed(tree_edges)]
    # Clamps and priors are leaves; nothing downstream needs a message into them
    outward = [(parent, child) for parent, child in tree_edges
               if not graph.is_leaf_factor(child)]

    logger.debug("Planned %d inward and %d outward messages rooted at %s",
                 len(inward), len(outward), root)
    return SweepPlan(root, inward, outward, toward_root, graph.structure_version)


class ScaledBP:
    """Scaled sum-product engine operating on a FactorGraph's message slots."""

    def __init__(self, graph: FactorGraph):
        self.graph = graph
        self.config = graph.config

    @property
    def plan(self) -> SweepPlan:
        plan = self.graph._plan
        if plan is None or plan.version != self.graph.structure_version or plan.root != self.graph.root:
            plan = make_plan(self.graph)
            self.graph._plan = plan
        return plan

    # ------------------------------------------------------------------
    # Single messages
    # ------------------------------------------------------------------
    def variable_to_factor_message(self, var_node: str, factor_node: str) -> ScaledMessage:
        """Product of all messages reaching the variable except from the target factor."""
        incoming = [self.graph.message(neighbor, var_node)
                    for neighbor in self.graph.neighbors(var_node) if neighbor != factor_node]
        return fuse_all(incoming, self.config, self.config.tracks_scale)

    def factor_to_variable_message(self, factor_node: str, var_node: str) -> ScaledMessage:
        """Rule output for the factor given the messages from its other variables."""
        factor = self.graph.factors[factor_node]
        incoming = [self.graph.message(neighbor, factor_node)
                    for neighbor in self.graph.neighbors(factor_node) if neighbor != var_node]
        return apply_rule(
            factor,
            factor.direction_to(var_node),
            incoming,
            self.graph.variables[var_node],
            self.config,
            self.config.tracks_scale,
        )

    def compute_message(self, source: str, target: str) -> ScaledMessage:
        try:
            if self.graph.is_variable(source):
                return self.variable_to_factor_message(source, target)
            return self.factor_to_variable_message(source, target)
        except NumericalError as err:
            if err.node is None:
                err.node = source
            raise

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------
    def _run(self, edges: List[DirectedEdge], label: str, only_stale: bool = False) -> int:
        if only_stale:
            edges = [key for key in edges if self.graph.edges[key].stale]
        else:
            for key in edges:
                self.graph.edges[key].stale = True

        for source, target in edges:
            self.graph.edges[(source, target)].store(self.compute_message(source, target))

        logger.debug("%s sweep recomputed %d messages", label, len(edges))
        return len(edges)

    def forward_sweep(self, only_stale: bool = False) -> int:
        """Inward sweep (leaves to root). Returns the number of messages computed."""
        return self._run(self.plan.inward, "Forward", only_stale)

    def backward_sweep(self) -> int:
        """Outward sweep (root to leaves). Requires a completed forward sweep."""
        return self._run(self.plan.outward, "Backward")

    # ------------------------------------------------------------------
    # Beliefs
    # ------------------------------------------------------------------
    def belief(self, var_node: str, exclude: Optional[str] = None) -> ScaledMessage:
        """Fuse the messages reaching ``var_node`` from every factor but ``exclude``."""
        try:
            return self.variable_to_factor_message(var_node, exclude)
        except NumericalError as err:
            if err.node is None:
                err.node = var_node
            raise

    def compute_filtered_belief(self, var_node: str) -> ScaledMessage:
        """Belief from the inward messages only (the filtering distribution on a chain)."""
        variable = self.graph.variables[var_node]
        variable.stale = True
        belief = self.belief(var_node, exclude=self.plan.toward_root.get(var_node))
        variable.belief, variable.belief_kind, variable.stale = belief, "filtered", False
        return belief

    def compute_beliefs(self, smoothed: bool = True) -> Dict[str, ScaledMessage]:
        """
        Compute beliefs for every variable.

        Args:
            smoothed: Fuse all incoming messages (needs both sweeps); otherwise
                use only the messages of the inward sweep

        Returns:
            Mapping from variable name to its scaled belief
        """
        for variable in self.graph.variables.values():
            variable.stale = True

        beliefs = {}
        for name, variable in self.graph.variables.items():
            if smoothed:
                variable.belief = self.belief(name)
                variable.belief_kind = "smoothed"
                variable.stale = False
            else:
                self.compute_filtered_belief(name)
            beliefs[name] = variable.belief
        return beliefs

    def run(self, smoothed: bool = True) -> Dict[str, ScaledMessage]:
        """Full recomputation: forward sweep, optional backward sweep, beliefs."""
        self.graph.invalidate()
        self.forward_sweep()
        if smoothed:
            self.backward_sweep()
        return self.compute_beliefs(smoothed)
