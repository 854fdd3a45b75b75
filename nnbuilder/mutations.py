"""
mutations.py
~~~~~~~~~~~~

Structural edits of a Network.

Each operation is pure and keeps every weight vector sized to the width of
the previous layer. The operations do not enforce the global size limits;
``apply_mutation`` runs an operation, checks the result against the limits
and the invariants, and returns the previous network untouched when either
check fails.
"""

import logging
from dataclasses import dataclass, replace
from typing import Callable, List, Optional

from nnbuilder.config import DEFAULT_LIMITS, NEW_HIDDEN_LAYER_ACTIVATION, NEW_HIDDEN_LAYER_SIZE, NetworkLimits
from nnbuilder.errors import InvalidMutationError, InvariantError, StructuralLimitError
from nnbuilder.network import AnyLayer, Layer, Network, Neuron

logger = logging.getLogger(__name__)


def _zero_weights(layer: Layer, width: int) -> Layer:
    """Replace every neuron's weights with ``width`` zeros, keeping bias and name."""
    return replace(layer, neurons=tuple(
        replace(neuron, weights=(0.0,) * width) for neuron in layer.neurons
    ))


def _require_hidden_layer(network: Network, layer_idx: int, action: str) -> None:
    if layer_idx <= 0 or layer_idx >= network.output_index:
        raise InvalidMutationError(
            f"Cannot {action} layer {layer_idx}: only hidden layers can be changed."
        )


def add_hidden_layer(network: Network) -> Network:
    """
    Insert a ReLU hidden layer of 3 zero neurons before the output layer.

    The output neurons get exactly 3 zero weights each; their previous
    weights are discarded.
    """
    output_idx = network.output_index
    hidden_width = network.previous_width(output_idx)
    hidden = Layer(
        NEW_HIDDEN_LAYER_ACTIVATION,
        tuple(Neuron.zeros(hidden_width) for _ in range(NEW_HIDDEN_LAYER_SIZE)),
    )
    output = _zero_weights(network.layers[output_idx], NEW_HIDDEN_LAYER_SIZE)
    return Network(network.layers[:output_idx] + (hidden, output))


def add_neuron(network: Network, layer_idx: int) -> Network:
    """
    Append a zero neuron to hidden layer ``layer_idx``.

    Every neuron of the next layer gains one trailing zero weight.

    Raises:
        InvalidMutationError: For the input layer, the output layer or a bad index
    """
    _require_hidden_layer(network, layer_idx, 'add a neuron to')

    layers: List[AnyLayer] = list(network.layers)
    layer = layers[layer_idx]
    layers[layer_idx] = replace(
        layer,
        neurons=layer.neurons + (Neuron.zeros(network.previous_width(layer_idx)),),
    )
    following = layers[layer_idx + 1]
    layers[layer_idx + 1] = replace(following, neurons=tuple(
        replace(neuron, weights=neuron.weights + (0.0,)) for neuron in following.neurons
    ))
    return Network(tuple(layers))


def remove_layer(network: Network, layer_idx: int) -> Network:
    """
    Remove hidden layer ``layer_idx``.

    The layer that moves into its place gets fresh all-zero weight vectors
    sized to its new previous width; old weights are not remapped.

    Raises:
        InvalidMutationError: For the input layer, the output layer or a bad index
    """
    _require_hidden_layer(network, layer_idx, 'remove')

    layers: List[AnyLayer] = list(network.layers)
    del layers[layer_idx]
    if layer_idx < len(layers):
        layers[layer_idx] = _zero_weights(layers[layer_idx], layers[layer_idx - 1].size)
    return Network(tuple(layers))


def remove_neuron(network: Network, layer_idx: int, neuron_idx: int) -> Network:
    """
    Remove one neuron from hidden layer ``layer_idx``.

    The matching weight is dropped from every neuron of the next layer.

    Raises:
        InvalidMutationError: For input/output layers, a bad index, or the
            last remaining neuron of a layer
    """
    _require_hidden_layer(network, layer_idx, 'remove a neuron from')

    layer = network.layers[layer_idx]
    if neuron_idx < 0 or neuron_idx >= len(layer.neurons):
        raise InvalidMutationError(f"Layer {layer_idx} has no neuron {neuron_idx}.")
    if len(layer.neurons) <= 1:
        raise InvalidMutationError(f"Layer {layer_idx} must keep at least one neuron.")

    layers: List[AnyLayer] = list(network.layers)
    layers[layer_idx] = replace(
        layer,
        neurons=layer.neurons[:neuron_idx] + layer.neurons[neuron_idx + 1:],
    )
    following = layers[layer_idx + 1]
    layers[layer_idx + 1] = replace(following, neurons=tuple(
        replace(neuron, weights=neuron.weights[:neuron_idx] + neuron.weights[neuron_idx + 1:])
        for neuron in following.neurons
    ))
    return Network(tuple(layers))


def check_limits(network: Network, limits: NetworkLimits = DEFAULT_LIMITS) -> None:
    """
    Verify the layer, per-layer neuron and total weight ceilings.

    Raises:
        StructuralLimitError: Naming the first limit exceeded
    """
    if len(network.layers) > limits.max_layers:
        raise StructuralLimitError('layers', limits.max_layers, len(network.layers))

    for layer in network.layers[1:]:
        if len(layer.neurons) > limits.max_neurons_per_layer:
            raise StructuralLimitError(
                'neurons_per_layer', limits.max_neurons_per_layer, len(layer.neurons)
            )

    total = network.count_weights()
    if total > limits.max_total_weights:
        raise StructuralLimitError('total_weights', limits.max_total_weights, total)


@dataclass
class MutationResult:
    """Outcome of a checked structural edit."""

    ok: bool
    network: Network
    error: Optional[str] = None
    limit: Optional[str] = None


def apply_mutation(
    network: Network,
    operation: Callable[..., Network],
    *args,
    limits: NetworkLimits = DEFAULT_LIMITS
) -> MutationResult:
    """
    Run a structural operation and commit it only if the result is legal.

    Args:
        network: Current network
        operation: One of the operations in this module
        *args: Extra arguments for ``operation``
        limits: Size limits to enforce

    Returns:
        MutationResult holding the new network, or the unchanged network and
        the reason the edit was rejected
    """
    name = getattr(operation, '__name__', 'mutation')
    try:
        candidate = operation(network, *args)
        check_limits(candidate, limits)
        candidate.validate()
    except StructuralLimitError as e:
        logger.warning(f"Rejected {name}{args}: {e}")
        return MutationResult(False, network, str(e), e.limit)
    except (InvalidMutationError, InvariantError) as e:
        logger.warning(f"Rejected {name}{args}: {e}")
        return MutationResult(False, network, str(e))

    logger.info(f"Applied {name}{args}: layer sizes {candidate.layer_sizes()}")
    return MutationResult(True, candidate)
