"""Tests for numerical failures surfaced by the engine."""

import numpy as np
import pytest

from scaled_bp import (
    ConfigurationError,
    CategoricalTransition,
    EngineError,
    Family,
    FactorGraph,
    LinearGaussianTransition,
    NumericalError,
    ObservationClamp,
    Role,
    ScaledBP,
    StaleMessageError,
    build_chain,
    compute_evidence,
    run_filter,
    run_smoother,
)
from scaled_bp.utils.graph_utils import categorical_chain_prior, gaussian_chain_prior


def contradictory_chain():
    # Identity dynamics and emissions: observing state 1 contradicts the prior
    identity = CategoricalTransition(np.eye(2))
    return build_chain(categorical_chain_prior([1.0, 0.0]), identity, identity, 2)


class TestNumericalFailures:

    def test_degenerate_fusion_names_node(self):
        graph = contradictory_chain()
        with pytest.raises(NumericalError) as info:
            run_filter(graph, {1: 1})
        assert info.value.reason == "DegenerateFusion"
        assert info.value.node == "x_1"
        assert "x_1" in str(info.value)

    def test_failed_sweep_leaves_remaining_slots_stale(self):
        graph = contradictory_chain()
        with pytest.raises(NumericalError):
            run_filter(graph, {1: 1})
        assert not graph.edges[("f_1", "x_1")].stale
        assert graph.edges[("x_1", "f_2")].stale
        assert graph.edges[("f_2", "x_2")].stale
        with pytest.raises(StaleMessageError):
            compute_evidence(graph)

    def test_rank_deficient_observation(self):
        prior = gaussian_chain_prior(np.zeros(2), np.eye(2))
        transition = LinearGaussianTransition(np.eye(2), np.eye(2))
        position_only = LinearGaussianTransition(np.array([[1.0, 0.0]]), np.eye(1))
        graph = build_chain(prior, transition, position_only, 2)
        with pytest.raises(NumericalError) as info:
            run_smoother(graph, {1: [0.5], 2: [1.0]})
        assert info.value.reason == "RankDeficientConditioning"
        assert info.value.node.startswith("obs_")

    def test_flat_belief_is_improper(self):
        graph = FactorGraph()
        graph.add_variable("x", Family.GAUSSIAN, 1)
        graph.add_factor("clamp", ObservationClamp())
        graph.connect("x", "clamp", Role.CHILD)
        bp = ScaledBP(graph)
        bp.forward_sweep()
        bp.backward_sweep()
        with pytest.raises(NumericalError) as info:
            compute_evidence(graph)
        assert info.value.reason == "ImproperMarginal"


class TestConfigurationFailures:

    def test_mixed_families_in_chain(self):
        with pytest.raises(ConfigurationError):
            build_chain(categorical_chain_prior([0.5, 0.5]),
                        LinearGaussianTransition(np.eye(2), np.eye(2)),
                        LinearGaussianTransition(np.eye(2), np.eye(2)), 1)

    def test_observation_of_wrong_shape(self):
        graph = build_chain(gaussian_chain_prior([0.0], [[1.0]]),
                            LinearGaussianTransition([[1.0]], [[1.0]]),
                            LinearGaussianTransition([[1.0]], [[1.0]]), 2)
        with pytest.raises(ConfigurationError):
            run_filter(graph, {1: [1.0, 2.0]})

    def test_errors_share_a_base(self):
        assert issubclass(NumericalError, EngineError)
        assert issubclass(ConfigurationError, ValueError)
        assert issubclass(StaleMessageError, EngineError)
