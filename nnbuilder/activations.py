"""
activations.py
~~~~~~~~~~~~~~

Fixed catalogue of scalar activation functions.

Each id maps to a pure ``float -> float`` function plus a label and an
abbreviation used by presentation layers. Any id not in ``ACTIVATIONS`` is
invalid wherever it appears.
"""

import math
from dataclasses import dataclass
from typing import Callable, Dict, List

from nnbuilder.config import SIGMOID_CLAMP


@dataclass(frozen=True)
class Activation:
    """A registered activation function."""

    id: str
    fn: Callable[[float], float]
    label: str
    abbr: str


def _linear(x: float) -> float:
    return x


def _relu(x: float) -> float:
    return x if x > 0 else 0.0


def _lrelu(x: float) -> float:
    return x if x > 0 else 0.01 * x


def _sigmoid(x: float) -> float:
    if math.isnan(x):
        return x
    # Clamp so exp() cannot overflow
    clamped = max(-SIGMOID_CLAMP, min(SIGMOID_CLAMP, x))
    return 1.0 / (1.0 + math.exp(-clamped))


# math.sin/math.cos raise on infinities; a diverging network yields NaN instead
def _sin(x: float) -> float:
    return math.sin(x) if math.isfinite(x) else math.nan


def _cos(x: float) -> float:
    return math.cos(x) if math.isfinite(x) else math.nan


ACTIVATIONS: Dict[str, Activation] = {
    act.id: act for act in (
        Activation('linear', _linear, 'Linear', 'Lin'),
        Activation('relu', _relu, 'ReLU', 'ReLU'),
        Activation('lrelu', _lrelu, 'Leaky ReLU', 'LReLU'),
        Activation('sigmoid', _sigmoid, 'Sigmoid', 'σ'),
        Activation('tanh', math.tanh, 'Tanh', 'tanh'),
        Activation('sin', _sin, 'Sine', 'sin'),
        Activation('cos', _cos, 'Cosine', 'cos'),
    )
}


def is_activation(activation_id) -> bool:
    """Return True if ``activation_id`` is a registered id string."""
    return isinstance(activation_id, str) and activation_id in ACTIVATIONS


def get_activation(activation_id: str) -> Activation:
    """
    Look up a registered activation.

    Args:
        activation_id: Registry id such as ``'relu'``

    Returns:
        The Activation entry

    Raises:
        KeyError: If the id is not registered
    """
    if not is_activation(activation_id):
        raise KeyError(f"Unknown activation: {activation_id!r}")
    return ACTIVATIONS[activation_id]


def activation_fn(activation_id: str) -> Callable[[float], float]:
    """Shortcut for ``get_activation(activation_id).fn``."""
    return get_activation(activation_id).fn


def list_activations() -> List[Dict[str, str]]:
    """Registry contents as JSON-ready dictionaries."""
    return [
        {'id': act.id, 'label': act.label, 'abbr': act.abbr}
        for act in ACTIVATIONS.values()
    ]
