#!/usr/bin/env python3
"""
Factor graph data model: variables, factors and directed message slots.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

import networkx as nx

from .config import DEFAULT_CONFIG, EngineConfig
from .exceptions import ConfigurationError, StaleMessageError
from .messages import Family, ScaledMessage
from .utils.factor_utils import FactorKind, ObservationClamp, Role


logger = logging.getLogger(__name__)


class Direction(Enum):
    """Direction of a factor-to-variable message relative to the factor's roles."""
    FORWARD = "forward"    # towards a CHILD
    BACKWARD = "backward"  # towards a PARENT


@dataclass
class Variable:
    """Random variable node."""
    name: str
    family: Family
    dim: int
    factors: List[str] = field(default_factory=list)
    belief: Optional[ScaledMessage] = None
    belief_kind: Optional[str] = None  # "filtered" or "smoothed"
    stale: bool = True

    @property
    def marginal(self):
        if self.belief is None or self.stale:
            raise StaleMessageError(f"marginal of {self.name!r} is not current")
        return self.belief.distribution


@dataclass
class Factor:
    """Factor node with ordered (variable, role) connections."""
    name: str
    params: object
    connections: List[Tuple[str, Role]] = field(default_factory=list)

    @property
    def kind(self) -> FactorKind:
        return self.params.kind

    def role_of(self, variable: str) -> Role:
        for name, role in self.connections:
            if name == variable:
                return role
        raise ConfigurationError(f"{variable!r} is not attached to factor {self.name!r}")

    def direction_to(self, variable: str) -> Direction:
        return Direction.FORWARD if self.role_of(variable) is Role.CHILD else Direction.BACKWARD


@dataclass
class Edge:
    """Message slot for one direction of a variable-factor connection."""
    variable: str
    factor: str
    to_factor: bool
    message: Optional[ScaledMessage] = None
    stale: bool = True

    @property
    def source(self) -> str:
        return self.variable if self.to_factor else self.factor

    @property
    def target(self) -> str:
        return self.factor if self.to_factor else self.variable

    def store(self, message: ScaledMessage):
        self.message = message
        self.stale = False

    def read(self) -> ScaledMessage:
        if self.stale or self.message is None:
            raise StaleMessageError(f"message {self.source!r} -> {self.target!r} is stale")
        return self.message


class FactorGraph:
    """Tree-structured factor graph owning its message storage."""

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or DEFAULT_CONFIG
        self.graph = nx.Graph()
        self.variables: Dict[str, Variable] = {}
        self.factors: Dict[str, Factor] = {}
        self.edges: Dict[Tuple[str, str], Edge] = {}
        self.structure_version = 0
        self._root: Optional[str] = None
        self._plan = None

        # Chain bookkeeping, filled by ChainFactory
        self.steps: List[str] = []
        self.observation_clamps: Dict[int, str] = {}
        self.chain_params: Dict[str, object] = {}

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------
    def add_variable(self, name: str, family: Family, dim: int) -> Variable:
        """Add a variable node of the given family and dimension/cardinality."""
        self._check_new_name(name)
        if not isinstance(family, Family):
            raise ConfigurationError(f"unknown family {family!r}")
        if int(dim) < 1:
            raise ConfigurationError(f"variable {name!r} needs a positive dimension")
        variable = Variable(name, family, int(dim))
        self.variables[name] = variable
        self.graph.add_node(name, bipartite=0)
        self._structure_changed()
        return variable

    def add_factor(self, name: str, params) -> Factor:
        """Add a factor node; ``params`` carries the factor kind."""
        self._check_new_name(name)
        if not isinstance(getattr(params, "kind", None), FactorKind):
            raise ConfigurationError(f"factor {name!r} has no recognised kind")
        factor = Factor(name, params)
        self.factors[name] = factor
        self.graph.add_node(name, bipartite=1)
        self._structure_changed()
        return factor

    def connect(self, variable: str, factor: str, role: Role = Role.CHILD):
        """
        Attach a variable to a factor.

        Raises:
            ConfigurationError: unknown nodes, arity or family mismatch,
                or a connection that would close a cycle
        """
        if variable not in self.variables:
            raise ConfigurationError(f"unknown variable {variable!r}")
        if factor not in self.factors:
            raise ConfigurationError(f"unknown factor {factor!r}")
        node = self.factors[factor]
        var = self.variables[variable]

        arity = node.params.arity
        if arity is not None:
            used = sum(1 for _, r in node.connections if r is role)
            if used >= arity.get(role, 0):
                raise ConfigurationError(
                    f"factor {factor!r} ({node.kind.value}) takes no further {role.value} connection"
                )
        node.params.check_variable(var, role)

        if nx.has_path(self.graph, variable, factor):
            raise ConfigurationError(
                f"connecting {variable!r} to {factor!r} would create a cycle"
            )

        self.graph.add_edge(variable, factor)
        node.connections.append((variable, role))
        var.factors.append(factor)
        self.edges[(variable, factor)] = Edge(variable, factor, to_factor=True)
        self.edges[(factor, variable)] = Edge(variable, factor, to_factor=False)
        self._structure_changed()

    def _check_new_name(self, name: str):
        if name in self.variables or name in self.factors:
            raise ConfigurationError(f"node {name!r} already exists")

    def _structure_changed(self):
        self.structure_version += 1
        self._plan = None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    @property
    def root(self) -> str:
        if self._root is not None:
            return self._root
        if not self.variables:
            raise ConfigurationError("graph has no variables")
        return next(reversed(self.variables))

    @root.setter
    def root(self, name: str):
        if name not in self.variables:
            raise ConfigurationError(f"root must be a variable, got {name!r}")
        self._root = name
        self._plan = None

    @property
    def tracks_scale(self) -> bool:
        return self.config.tracks_scale

    def neighbors(self, node: str) -> List[str]:
        return list(self.graph.neighbors(node))

    def is_variable(self, node: str) -> bool:
        return node in self.variables

    def is_leaf_factor(self, node: str) -> bool:
        return node in self.factors and self.graph.degree(node) == 1

    def check_tree(self):
        """Validate connectivity, acyclicity and complete factor connections."""
        if self.graph.number_of_nodes() == 0:
            raise ConfigurationError("graph is empty")
        if not nx.is_tree(self.graph):
            components = nx.number_connected_components(self.graph)
            raise ConfigurationError(f"factor graph is not a tree ({components} connected components)")
        for factor in self.factors.values():
            arity = factor.params.arity
            if arity is None:
                if len(factor.connections) < 2:
                    raise ConfigurationError(f"equality factor {factor.name!r} needs two variables")
                continue
            for role, count in arity.items():
                used = sum(1 for _, r in factor.connections if r is role)
                if used != count:
                    raise ConfigurationError(
                        f"factor {factor.name!r} is missing its {role.value} connection"
                    )

    # ------------------------------------------------------------------
    # Observations and staleness
    # ------------------------------------------------------------------
    def set_clamp(self, factor: str, value):
        """Set (or clear with None) the value of an observation clamp."""
        node = self.factors.get(factor)
        if node is None or node.kind is not FactorKind.OBSERVATION_CLAMP:
            raise ConfigurationError(f"{factor!r} is not an observation clamp")
        clamp = ObservationClamp(value)
        for variable, _ in node.connections:
            clamp.check_variable(self.variables[variable], Role.CHILD)
        node.params = clamp

    def set_observations(self, observations: Dict[int, object]):
        """Clamp chain observations keyed by step; unlisted steps become unobserved."""
        unknown = set(observations) - set(self.observation_clamps)
        if unknown:
            raise ConfigurationError(f"no observation slot for steps {sorted(unknown)}")
        for step, clamp in self.observation_clamps.items():
            self.set_clamp(clamp, observations.get(step))
        self.invalidate()
        logger.debug("Clamped %d of %d observation slots", len(observations),
                     len(self.observation_clamps))

    def invalidate(self, edges=None):
        """Flag message slots (all by default) and beliefs as stale."""
        keys = self.edges.keys() if edges is None else edges
        for key in keys:
            self.edges[key].stale = True
        for variable in self.variables.values():
            variable.stale = True

    def message(self, source: str, target: str) -> ScaledMessage:
        try:
            edge = self.edges[(source, target)]
        except KeyError:
            raise ConfigurationError(f"{source!r} and {target!r} are not connected") from None
        return edge.read()

    def __repr__(self):
        return (f"FactorGraph(variables={len(self.variables)}, factors={len(self.factors)}, "
                f"mode={self.config.mode.value})")
