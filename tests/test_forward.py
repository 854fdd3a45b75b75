"""
test_forward.py
~~~~~~~~~~~~~~~

Unit tests for the forward pass.
"""

import math

import pytest

from nnbuilder.forward import evaluate_full, evaluate_scalar, make_scalar_fn
from nnbuilder.network import InputLayer, Layer, Network, Neuron, build_network


@pytest.mark.unit
class TestEvaluateFull:
    """Full traces with every intermediate value."""

    def test_identity_output(self, identity_network):
        """Test that f(x1, x2) = x1 passes x1 through."""
        trace = evaluate_full(identity_network, (3, -2))
        assert trace.output == 3.0

    def test_layer_zero_is_input(self, hidden_network):
        """Test that layer 0 activations and pre-activations equal the inputs."""
        trace = evaluate_full(hidden_network, (0.25, -1.5))
        assert trace.activations[0] == [0.25, -1.5]
        assert trace.pre_activations[0] == [0.25, -1.5]

    def test_trace_shape(self, hidden_network):
        """Test that the trace has one entry per neuron per layer."""
        trace = evaluate_full(hidden_network, (1, 1))
        assert [len(a) for a in trace.activations] == hidden_network.layer_sizes()
        assert [len(p) for p in trace.pre_activations] == hidden_network.layer_sizes()

    def test_hand_computed_values(self):
        """Test a small relu network against hand-computed values."""
        net = build_network([
            ('relu', [(0, [1, -1]), (1, [0, 2])]),
            ('linear', [(0.5, [2, -1])]),
        ])
        trace = evaluate_full(net, (2, 3))
        # hidden pre: 2 - 3 = -1, 1 + 6 = 7; relu -> 0, 7
        assert trace.pre_activations[1] == [-1.0, 7.0]
        assert trace.activations[1] == [0.0, 7.0]
        assert trace.output == 0.5 + 0.0 * 2 - 7.0

    def test_to_dict(self, identity_network):
        """Test the JSON-ready form of a trace."""
        data = evaluate_full(identity_network, (1, 2)).to_dict()
        assert set(data) == {'activations', 'pre_activations'}

    def test_overflow_produces_non_finite(self):
        """Test that a diverging network yields a non-finite output instead of raising."""
        net = build_network([
            ('linear', [(0, [1e200, 0])]),
            ('linear', [(0, [1e200])]),
        ])
        assert not math.isfinite(evaluate_full(net, (1e10, 0)).output)


@pytest.mark.unit
class TestEvaluateScalar:
    """The grid-sampling fast path."""

    @pytest.mark.parametrize('point', [(0, 0), (0.5, 0.5), (-5, 5), (3.3, -1.7), (4.99, -4.99)])
    def test_scalar_matches_full(self, hidden_network, point):
        """Test that the scalar output is identical to the full trace output."""
        assert evaluate_scalar(hidden_network, *point) == evaluate_full(hidden_network, point).output

    def test_compiled_fn_matches_scalar(self, hidden_network):
        """Test that a compiled function matches one-shot evaluation."""
        fn = make_scalar_fn(hidden_network)
        for x1 in (-4.0, -1.0, 0.0, 2.5):
            assert fn(x1, 1.0) == evaluate_scalar(hidden_network, x1, 1.0)

    def test_initial_network_is_zero(self, initial_network):
        """Test that the initial network outputs 0 everywhere."""
        assert evaluate_scalar(initial_network, 3, -2) == 0.0

    def test_missing_weights_count_as_zero(self):
        """Test that inputs without a matching weight contribute nothing."""
        net = Network((InputLayer(2), Layer('linear', (Neuron(1.0, (2.0,)),))))
        assert evaluate_scalar(net, 3, 100) == 7.0
        assert evaluate_scalar(net, 3, 100) == evaluate_full(net, (3, 100)).output
