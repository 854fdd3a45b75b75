"""
forward.py
~~~~~~~~~~

Forward pass over a Network.

Two entry points share one recurrence, ``pre = bias + sum(w_i * a_i)``
followed by the layer's activation:

- ``evaluate_full`` keeps every layer's activations and pre-activations for
  inspection and visualization.
- ``evaluate_scalar`` only returns the output neuron's activation. It is
  called once per grid cell, so it runs from a precompiled plan and keeps no
  intermediate bookkeeping.

Both accumulate in the same order, so the scalar result is bit-identical to
the output entry of the full trace.

A weight index past the end of a neuron's weight vector counts as 0, which
tolerates transitional shapes during structural edits.
"""

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from nnbuilder.activations import activation_fn
from nnbuilder.network import Network

# One entry per non-input layer: activation fn and (bias, weights) per neuron
CompiledLayer = Tuple[Callable[[float], float], Tuple[Tuple[float, Tuple[float, ...]], ...]]


@dataclass
class ForwardTrace:
    """Per-layer, per-neuron values of one forward pass."""

    activations: List[List[float]]
    pre_activations: List[List[float]]

    @property
    def output(self) -> float:
        last = self.activations[-1]
        return last[0] if last else 0.0

    def to_dict(self) -> dict:
        return {
            'activations': self.activations,
            'pre_activations': self.pre_activations,
        }


def _weighted_sum(bias: float, weights: Sequence[float], inputs: Sequence[float]) -> float:
    total = bias
    weight_count = len(weights)
    for i, x in enumerate(inputs):
        total += (weights[i] if i < weight_count else 0.0) * x
    return total


def _run_layer(
    activate: Callable[[float], float],
    neurons: Sequence[Tuple[float, Sequence[float]]],
    inputs: Sequence[float],
    pre_out: Optional[List[float]] = None
) -> List[float]:
    outputs = []
    for bias, weights in neurons:
        pre = _weighted_sum(bias, weights, inputs)
        if pre_out is not None:
            pre_out.append(pre)
        outputs.append(activate(pre))
    return outputs


def compile_network(network: Network) -> List[CompiledLayer]:
    """Resolve activation functions and unpack neurons once per network."""
    return [
        (
            activation_fn(layer.activation),
            tuple((neuron.bias, neuron.weights) for neuron in layer.neurons),
        )
        for layer in network.layers[1:]
    ]


def evaluate_full(network: Network, input_values: Sequence[float]) -> ForwardTrace:
    """
    Evaluate every neuron for one input vector.

    Args:
        network: Network to evaluate
        input_values: One value per input neuron

    Returns:
        ForwardTrace whose layer 0 entries are both the input vector itself
    """
    inputs = [float(v) for v in input_values]
    activations = [list(inputs)]
    pre_activations = [list(inputs)]

    for activate, neurons in compile_network(network):
        pres: List[float] = []
        activations.append(_run_layer(activate, neurons, activations[-1], pres))
        pre_activations.append(pres)

    return ForwardTrace(activations, pre_activations)


def evaluate_compiled(plan: Sequence[CompiledLayer], x1: float, x2: float) -> float:
    """Scalar forward pass over a plan from ``compile_network``."""
    values: Sequence[float] = (float(x1), float(x2))
    for activate, neurons in plan:
        values = _run_layer(activate, neurons, values)
    return values[0] if values else 0.0


def evaluate_scalar(network: Network, x1: float, x2: float) -> float:
    """Output neuron activation for the input point ``(x1, x2)``."""
    return evaluate_compiled(compile_network(network), x1, x2)


def make_scalar_fn(network: Network) -> Callable[[float, float], float]:
    """
    Compile once and return ``fn(x1, x2) -> float`` for repeated sampling.

    Example:
        >>> fn = make_scalar_fn(net)
        >>> grid = sample_grid(fn)
    """
    plan = compile_network(network)

    def fn(x1: float, x2: float) -> float:
        return evaluate_compiled(plan, x1, x2)

    return fn
