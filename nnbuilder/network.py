"""
network.py
~~~~~~~~~~

Data model for a variable-topology feed-forward network.

A Network is an ordered tuple of layers. Layer 0 is the input layer, which
only has a fixed width. Every later layer holds an activation id and an
ordered tuple of neurons; the last layer is the output layer and holds
exactly one neuron. Each neuron's weight vector has exactly as many entries
as the previous layer is wide.

All values are immutable; operations return new networks.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from nnbuilder.activations import is_activation
from nnbuilder.config import DEFAULT_INPUT_VALUES, INPUT_WIDTH
from nnbuilder.errors import InvalidMutationError, InvariantError

logger = logging.getLogger(__name__)


def normalize_name(raw_name) -> str:
    """Trim a display name; anything that is not a string becomes ''."""
    if not isinstance(raw_name, str):
        return ''
    return raw_name.strip()


@dataclass(frozen=True)
class Neuron:
    """Bias plus one weight per neuron of the previous layer."""

    bias: float = 0.0
    weights: Tuple[float, ...] = ()
    name: str = ''

    def __post_init__(self) -> None:
        object.__setattr__(self, 'bias', float(self.bias))
        object.__setattr__(self, 'weights', tuple(float(w) for w in self.weights))
        object.__setattr__(self, 'name', normalize_name(self.name))

    @classmethod
    def zeros(cls, input_count: int, name: str = '') -> 'Neuron':
        """Neuron with bias 0 and ``input_count`` zero weights."""
        return cls(0.0, (0.0,) * input_count, name)


@dataclass(frozen=True)
class InputLayer:
    """Layer 0: a fixed width and optional per-input display names."""

    width: int = INPUT_WIDTH
    neuron_names: Tuple[str, ...] = ()

    type = 'input'
    activation = 'linear'

    def __post_init__(self) -> None:
        names = tuple(normalize_name(n) for n in self.neuron_names)
        # All-blank names collapse to "no names"
        object.__setattr__(self, 'neuron_names', names if any(names) else ())

    @property
    def size(self) -> int:
        return self.width


@dataclass(frozen=True)
class Layer:
    """A hidden or output layer."""

    activation: str
    neurons: Tuple[Neuron, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, 'neurons', tuple(self.neurons))

    @property
    def size(self) -> int:
        return len(self.neurons)


AnyLayer = Union[InputLayer, Layer]


@dataclass(frozen=True)
class Network:
    """
    Ordered layers of a feed-forward network.

    ``layers[0]`` is always the InputLayer; ``layers[-1]`` is the output
    layer.
    """

    layers: Tuple[AnyLayer, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, 'layers', tuple(self.layers))

    def __len__(self) -> int:
        return len(self.layers)

    @property
    def input_layer(self) -> InputLayer:
        return self.layers[0]

    @property
    def output_layer(self) -> Layer:
        return self.layers[-1]

    @property
    def output_index(self) -> int:
        return len(self.layers) - 1

    def layer_type(self, layer_idx: int) -> str:
        """Return ``'input'``, ``'hidden'`` or ``'output'``."""
        if layer_idx == 0:
            return 'input'
        if layer_idx == self.output_index:
            return 'output'
        return 'hidden'

    def previous_width(self, layer_idx: int) -> int:
        """
        Width feeding into ``layer_idx``.

        Args:
            layer_idx: Index of a non-input layer

        Returns:
            The input width for layer 1, else the previous layer's neuron count
        """
        return self.layers[layer_idx - 1].size

    def layer_sizes(self) -> List[int]:
        """Width of every layer, input first."""
        return [layer.size for layer in self.layers]

    def count_weights(self) -> int:
        """Total number of weights across all non-input layers."""
        return sum(
            len(neuron.weights)
            for layer in self.layers[1:]
            for neuron in layer.neurons
        )

    def validate(self) -> None:
        """
        Check the structural invariants.

        Raises:
            InvariantError: On the first violation found
        """
        if len(self.layers) < 2:
            raise InvariantError("Network must include at least an input and output layer.")
        if not isinstance(self.layers[0], InputLayer):
            raise InvariantError("Layer 0 must be the input layer.")
        if self.layers[0].width != INPUT_WIDTH:
            raise InvariantError(f"Input layer must have exactly {INPUT_WIDTH} neurons.")

        for layer_idx in range(1, len(self.layers)):
            layer = self.layers[layer_idx]
            if not isinstance(layer, Layer):
                raise InvariantError(f"Layer {layer_idx} is malformed.")
            if not is_activation(layer.activation):
                raise InvariantError(f"Layer {layer_idx} has an unsupported activation function.")
            if not layer.neurons:
                raise InvariantError(f"Layer {layer_idx} must include at least one neuron.")
            if layer_idx == self.output_index and len(layer.neurons) != 1:
                raise InvariantError("Output layer must contain exactly one neuron.")

            expected = self.previous_width(layer_idx)
            for neuron_idx, neuron in enumerate(layer.neurons):
                if len(neuron.weights) != expected:
                    raise InvariantError(
                        f"Layer {layer_idx}, neuron {neuron_idx} must have "
                        f"exactly {expected} weights, got {len(neuron.weights)}."
                    )

    def is_valid(self) -> bool:
        try:
            self.validate()
        except InvariantError:
            return False
        return True

    def architecture_matches(self, other: 'Network') -> bool:
        """
        True if both networks have the same shape.

        Shape means layer count, input width, activation ids, neuron counts
        and every weight-vector length. Parameter values and names are
        ignored.
        """
        if other is None or len(self.layers) != len(other.layers):
            return False
        if self.layers[0].size != other.layers[0].size:
            return False
        for a, b in zip(self.layers[1:], other.layers[1:]):
            if a.activation != b.activation or len(a.neurons) != len(b.neurons):
                return False
            for na, nb in zip(a.neurons, b.neurons):
                if len(na.weights) != len(nb.weights):
                    return False
        return True

    def parameters_equal(self, other: 'Network') -> bool:
        """Same architecture and identical biases and weights (names ignored)."""
        if not self.architecture_matches(other):
            return False
        for a, b in zip(self.layers[1:], other.layers[1:]):
            for na, nb in zip(a.neurons, b.neurons):
                if na.bias != nb.bias or na.weights != nb.weights:
                    return False
        return True

    def zero_like(self) -> 'Network':
        """Same architecture and names with every bias and weight set to 0."""
        layers: List[AnyLayer] = [self.layers[0]]
        for layer in self.layers[1:]:
            layers.append(replace(layer, neurons=tuple(
                Neuron.zeros(len(n.weights), n.name) for n in layer.neurons
            )))
        return Network(tuple(layers))

    def replace_layer(self, layer_idx: int, layer: AnyLayer) -> 'Network':
        layers = list(self.layers)
        layers[layer_idx] = layer
        return Network(tuple(layers))


def create_initial_network() -> Network:
    """Identity network: 2 inputs into one linear output with zero weights."""
    return Network((
        InputLayer(INPUT_WIDTH),
        Layer('linear', (Neuron.zeros(INPUT_WIDTH),)),
    ))


def default_input_values() -> Tuple[float, ...]:
    return tuple(DEFAULT_INPUT_VALUES)


def build_network(
    layer_specs: Sequence[Tuple[str, Sequence[Tuple[float, Sequence[float]]]]],
    input_names: Sequence[str] = ()
) -> Network:
    """
    Build a network from compact ``(activation, [(bias, weights), ...])`` specs.

    A neuron tuple may carry a third element, its display name.

    Example:
        >>> net = build_network([('linear', [(0, [1, 0])])])
        >>> net.layer_sizes()
        [2, 1]
    """
    layers: List[AnyLayer] = [InputLayer(INPUT_WIDTH, tuple(input_names))]
    for activation, neurons in layer_specs:
        layers.append(Layer(activation, tuple(Neuron(*spec) for spec in neurons)))
    return Network(tuple(layers))


def set_activation(network: Network, layer_idx: int, activation_id: str) -> Network:
    """
    Replace the activation of one non-input layer.

    Raises:
        InvalidMutationError: For the input layer, a bad index or an unknown id
    """
    if layer_idx <= 0 or layer_idx >= len(network.layers):
        raise InvalidMutationError(f"Layer {layer_idx} has no activation to change.")
    if not is_activation(activation_id):
        raise InvalidMutationError(f"Unknown activation function: {activation_id!r}.")
    return network.replace_layer(
        layer_idx, replace(network.layers[layer_idx], activation=activation_id)
    )


def randomize_parameters(
    network: Network,
    rng: Optional[np.random.Generator] = None
) -> Network:
    """
    Draw every bias and weight uniformly from [-1, 1).

    Args:
        network: Network whose shape and names are kept
        rng: Optional numpy Generator (a fresh default_rng() otherwise)

    Returns:
        New network with random parameters
    """
    rng = rng if rng is not None else np.random.default_rng()
    layers: List[AnyLayer] = [network.layers[0]]
    for layer in network.layers[1:]:
        neurons = []
        for neuron in layer.neurons:
            values = rng.uniform(-1.0, 1.0, size=len(neuron.weights) + 1)
            neurons.append(Neuron(float(values[0]), values[1:].tolist(), neuron.name))
        layers.append(replace(layer, neurons=tuple(neurons)))
    logger.debug(f"Randomized parameters of network {network.layer_sizes()}")
    return Network(tuple(layers))


# ============================================================================
# NEURON NAMES
# ============================================================================

def default_neuron_name(layer_idx: int, neuron_idx: int, layer_count: int) -> str:
    """``x_1`` style for inputs, ``f(x_1, x_2)`` for the output, ``h_{l,n}`` otherwise."""
    if layer_idx == 0:
        return f"x_{neuron_idx + 1}"
    if layer_idx == layer_count - 1:
        return "f(x_1, x_2)"
    return f"h_{{{layer_idx},{neuron_idx + 1}}}"


def custom_neuron_name(network: Network, layer_idx: int, neuron_idx: int) -> str:
    if layer_idx < 0 or layer_idx >= len(network.layers):
        return ''
    layer = network.layers[layer_idx]
    if layer_idx == 0:
        names = layer.neuron_names
        return names[neuron_idx] if 0 <= neuron_idx < len(names) else ''
    if 0 <= neuron_idx < len(layer.neurons):
        return layer.neurons[neuron_idx].name
    return ''


def neuron_name(network: Network, layer_idx: int, neuron_idx: int) -> str:
    """Custom display name if set, otherwise the default name."""
    return (
        custom_neuron_name(network, layer_idx, neuron_idx)
        or default_neuron_name(layer_idx, neuron_idx, len(network.layers))
    )


def with_neuron_name(network: Network, layer_idx: int, neuron_idx: int, name: str) -> Network:
    """
    Rename one neuron; an empty name restores the default.

    Raises:
        InvalidMutationError: If the address does not exist
    """
    if layer_idx < 0 or layer_idx >= len(network.layers):
        raise InvalidMutationError(f"Layer {layer_idx} does not exist.")
    layer = network.layers[layer_idx]
    if neuron_idx < 0 or neuron_idx >= layer.size:
        raise InvalidMutationError(f"Layer {layer_idx}, neuron {neuron_idx} does not exist.")

    if layer_idx == 0:
        names = list(layer.neuron_names) or [''] * layer.width
        names[neuron_idx] = name
        return network.replace_layer(0, replace(layer, neuron_names=tuple(names)))

    neurons = list(layer.neurons)
    neurons[neuron_idx] = replace(neurons[neuron_idx], name=name)
    return network.replace_layer(layer_idx, replace(layer, neurons=tuple(neurons)))
