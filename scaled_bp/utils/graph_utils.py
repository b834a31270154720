#!/usr/bin/env python3
"""
Graph creation utilities for state-space chains
"""

from typing import Optional, Union

from ..config import EngineConfig
from ..exceptions import ConfigurationError
from ..factor_graph import FactorGraph
from ..messages import CategoricalProb, Family, GaussianCanonical
from .factor_utils import (
    CategoricalTransition,
    LinearGaussianTransition,
    ObservationClamp,
    Prior,
    Role,
)


TransitionParams = Union[LinearGaussianTransition, CategoricalTransition]


def _per_step(params, num_steps: int, label: str) -> list:
    if isinstance(params, (LinearGaussianTransition, CategoricalTransition)):
        return [params] * num_steps
    params = list(params)
    if len(params) != num_steps:
        raise ConfigurationError(f"expected {num_steps} {label} parameter sets, got {len(params)}")
    return params


def _single(params) -> Optional[TransitionParams]:
    if isinstance(params, (LinearGaussianTransition, CategoricalTransition)):
        return params
    return None


def _child_dim(params: TransitionParams) -> int:
    return params.A.shape[0]


class ChainFactory:
    """Factory for chain-structured factor graphs.

    Layout for step t >= 1::

        x_{t-1} --[f_t]--> x_t --[obs_t]--> y_t --[clamp_t]

    with a prior factor ``f_prior`` on ``x_0``.
    """

    @staticmethod
    def build_chain(prior, transition_params, observation_params, num_steps: int,
                    config: Optional[EngineConfig] = None) -> FactorGraph:
        """
        Create a state-space chain.

        Args:
            prior: GaussianCanonical, CategoricalProb or Prior factor for x_0
            transition_params: One transition parameter set, or one per step
            observation_params: One observation parameter set, or one per step
            num_steps: Number of transitions T (states x_0..x_T)
            config: Engine configuration (mode and tolerances)

        Returns:
            FactorGraph rooted at x_T with unobserved clamps at steps 1..T
        """
        if num_steps < 0:
            raise ConfigurationError("num_steps must be non-negative")
        if not isinstance(prior, Prior):
            prior = Prior(prior)
        dist = prior.distribution

        graph = FactorGraph(config)
        graph.add_variable("x_0", dist.family, dist.dim)
        graph.add_factor("f_prior", prior)
        graph.connect("x_0", "f_prior", Role.CHILD)
        graph.steps.append("x_0")
        graph.root = "x_0"

        transitions = _per_step(transition_params, num_steps, "transition")
        observations = _per_step(observation_params, num_steps, "observation")
        graph.chain_params = {
            "transition": _single(transition_params),
            "observation": _single(observation_params),
        }
        for transition, observation in zip(transitions, observations):
            ChainFactory.append_step(graph, transition, observation)
        return graph

    @staticmethod
    def append_step(graph: FactorGraph, transition: Optional[TransitionParams] = None,
                    observation: Optional[TransitionParams] = None) -> int:
        """
        Append x_{T+1}, its observation branch and make it the new root.

        Returns:
            Index of the new step
        """
        if not graph.steps:
            raise ConfigurationError("graph is not a chain built by ChainFactory")
        transition = transition or graph.chain_params.get("transition")
        observation = observation or graph.chain_params.get("observation")
        if transition is None or observation is None:
            raise ConfigurationError("no transition or observation parameters to extend the chain with")

        step = len(graph.steps)
        previous = graph.steps[-1]
        family = graph.variables[previous].family
        state, trans_factor = f"x_{step}", f"f_{step}"
        observed, obs_factor, clamp = f"y_{step}", f"obs_{step}", f"clamp_{step}"

        graph.add_variable(state, family, _child_dim(transition))
        graph.add_factor(trans_factor, transition)
        graph.connect(previous, trans_factor, Role.PARENT)
        graph.connect(state, trans_factor, Role.CHILD)

        obs_family = Family.GAUSSIAN if isinstance(observation, LinearGaussianTransition) else Family.CATEGORICAL
        graph.add_variable(observed, obs_family, _child_dim(observation))
        graph.add_factor(obs_factor, observation)
        graph.connect(state, obs_factor, Role.PARENT)
        graph.connect(observed, obs_factor, Role.CHILD)

        graph.add_factor(clamp, ObservationClamp())
        graph.connect(observed, clamp, Role.CHILD)

        graph.steps.append(state)
        graph.observation_clamps[step] = clamp
        graph.chain_params = {"transition": transition, "observation": observation}
        graph.root = state
        return step


build_chain = ChainFactory.build_chain
append_step = ChainFactory.append_step


def gaussian_chain_prior(mean, covariance) -> Prior:
    """Convenience prior factor from mean and covariance."""
    return Prior(GaussianCanonical.from_mean_cov(mean, covariance))


def categorical_chain_prior(probabilities) -> Prior:
    """Convenience prior factor from a probability vector."""
    return Prior(CategoricalProb(probabilities))
