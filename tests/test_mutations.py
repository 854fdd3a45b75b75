"""
test_mutations.py
~~~~~~~~~~~~~~~~~

Unit tests for structural edits and limit enforcement.
"""

import pytest

from nnbuilder.config import NetworkLimits
from nnbuilder.errors import InvalidMutationError, StructuralLimitError
from nnbuilder.mutations import (
    add_hidden_layer,
    add_neuron,
    apply_mutation,
    check_limits,
    remove_layer,
    remove_neuron,
)
from nnbuilder.network import build_network, set_activation


@pytest.mark.unit
class TestAddHiddenLayer:
    """Inserting a layer before the output."""

    def test_on_initial_network(self, initial_network):
        """Test the 2 -> 3 relu -> 1 shape with zero weights everywhere."""
        net = add_hidden_layer(initial_network)
        assert net.layer_sizes() == [2, 3, 1]

        hidden = net.layers[1]
        assert hidden.activation == 'relu'
        assert all(n.weights == (0.0, 0.0) and n.bias == 0.0 for n in hidden.neurons)
        assert net.output_layer.neurons[0].weights == (0.0, 0.0, 0.0)

    def test_output_bias_kept(self):
        """Test that the output neuron keeps its bias while its weights are reset."""
        net = build_network([('linear', [(1.5, [2, 3])])])
        grown = add_hidden_layer(net)
        assert grown.output_layer.neurons[0].bias == 1.5
        assert grown.output_layer.neurons[0].weights == (0.0, 0.0, 0.0)

    def test_sized_to_previous_layer(self, hidden_network):
        """Test that the new layer's weights match the layer it follows."""
        net = add_hidden_layer(hidden_network)
        assert net.layer_sizes() == [2, 3, 2, 3, 1]
        assert all(len(n.weights) == 2 for n in net.layers[3].neurons)
        assert net.is_valid()


@pytest.mark.unit
class TestNeurons:
    """Adding and removing neurons."""

    def test_add_neuron_extends_next_layer(self, hidden_network):
        """Test that the next layer gains one trailing zero weight."""
        net = add_neuron(hidden_network, 1)
        assert net.layer_sizes() == [2, 4, 2, 1]
        assert net.layers[1].neurons[-1].weights == (0.0, 0.0)
        assert net.layers[2].neurons[0].weights == (1.0, 0.0, -1.0, 0.0)
        assert net.is_valid()

    def test_add_then_remove_restores(self, hidden_network):
        """Test that add_neuron followed by removing that neuron restores the network."""
        grown = add_neuron(hidden_network, 2)
        restored = remove_neuron(grown, 2, grown.layers[2].size - 1)
        assert restored.parameters_equal(hidden_network)

    def test_remove_neuron_drops_matching_weight(self, hidden_network):
        """Test that removing neuron n drops weight n from the next layer."""
        net = remove_neuron(hidden_network, 1, 1)
        assert net.layer_sizes() == [2, 2, 2, 1]
        assert net.layers[2].neurons[1].weights == (0.2, 0.4)

    def test_remove_last_neuron_rejected(self):
        """Test that a hidden layer must keep one neuron."""
        net = build_network([('relu', [(0, [1, 1])]), ('linear', [(0, [1])])])
        with pytest.raises(InvalidMutationError, match="at least one neuron"):
            remove_neuron(net, 1, 0)

    @pytest.mark.parametrize('layer_idx', [0, 3, 7, -1])
    def test_non_hidden_layers_rejected(self, hidden_network, layer_idx):
        """Test that only hidden layers accept neuron edits."""
        with pytest.raises(InvalidMutationError):
            add_neuron(hidden_network, layer_idx)

    def test_remove_neuron_bad_index(self, hidden_network):
        """Test that an out-of-range neuron index is rejected."""
        with pytest.raises(InvalidMutationError):
            remove_neuron(hidden_network, 1, 3)


@pytest.mark.unit
class TestRemoveLayer:
    """Removing hidden layers."""

    def test_next_layer_weights_reset(self, hidden_network):
        """Test that the following layer gets zero weights of the new width."""
        net = remove_layer(hidden_network, 1)
        assert net.layer_sizes() == [2, 2, 1]
        assert [n.weights for n in net.layers[1].neurons] == [(0.0, 0.0), (0.0, 0.0)]
        assert [n.bias for n in net.layers[1].neurons] == [0.0, 0.5]
        assert net.is_valid()

    def test_remove_only_hidden_layer(self, initial_network):
        """Test that removing the single hidden layer returns to 2 -> 1."""
        net = remove_layer(add_hidden_layer(initial_network), 1)
        assert net.layer_sizes() == [2, 1]
        assert net.output_layer.neurons[0].weights == (0.0, 0.0)

    def test_output_layer_not_removable(self, hidden_network):
        """Test that the output layer cannot be removed."""
        with pytest.raises(InvalidMutationError):
            remove_layer(hidden_network, 3)


@pytest.mark.unit
class TestLimits:
    """Global ceilings and apply_mutation."""

    def test_check_limits_layers(self, hidden_network):
        """Test that too many layers raises a limit error naming the limit."""
        with pytest.raises(StructuralLimitError) as exc_info:
            check_limits(hidden_network, NetworkLimits(max_layers=3))
        assert exc_info.value.limit == 'layers'
        assert exc_info.value.actual == 4

    def test_apply_mutation_success(self, initial_network):
        """Test that an accepted mutation returns the new network."""
        result = apply_mutation(initial_network, add_hidden_layer)
        assert result.ok
        assert result.network.layer_sizes() == [2, 3, 1]

    def test_apply_mutation_over_limit_keeps_network(self, hidden_network):
        """Test that an edit over a limit leaves the network unchanged."""
        limits = NetworkLimits(max_neurons_per_layer=3)
        result = apply_mutation(hidden_network, add_neuron, 1, limits=limits)
        assert not result.ok
        assert result.network is hidden_network
        assert result.limit == 'neurons_per_layer'

    def test_apply_mutation_total_weights(self, hidden_network):
        """Test the total weight ceiling."""
        limits = NetworkLimits(max_total_weights=hidden_network.count_weights())
        result = apply_mutation(hidden_network, add_neuron, 2, limits=limits)
        assert not result.ok
        assert result.limit == 'total_weights'
        assert "too many weights" in result.error

    def test_apply_mutation_invalid_edit(self, hidden_network):
        """Test that an illegal edit is reported, not raised."""
        result = apply_mutation(hidden_network, set_activation, 1, 'bogus')
        assert not result.ok
        assert result.network is hidden_network
        assert result.limit is None

    def test_max_layers_reached(self, initial_network):
        """Test that hidden layers stop at the layer ceiling."""
        limits = NetworkLimits(max_layers=4)
        net = initial_network
        for _ in range(2):
            result = apply_mutation(net, add_hidden_layer, limits=limits)
            assert result.ok
            net = result.network
        assert not apply_mutation(net, add_hidden_layer, limits=limits).ok
