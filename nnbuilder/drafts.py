"""
drafts.py
~~~~~~~~~

Text drafts for every editable scalar of a network.

Users type into text fields; a field may briefly hold text that is not a
number ("-", "1e", "0."). Drafts keep that text per ParameterAddress,
separate from the canonical numeric Network. The canonical network only
changes when every draft parses at the same time.
"""

import logging
import math
import re
from dataclasses import dataclass, replace
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from nnbuilder.errors import ParseError
from nnbuilder.network import AnyLayer, Network

logger = logging.getLogger(__name__)

REAL_NUMBER_PATTERN = re.compile(r'[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?', re.ASCII)

# JS-style formatting renders integers without a decimal point up to this magnitude
_INTEGER_TEXT_LIMIT = 1e21


@dataclass(frozen=True, order=True)
class ParameterAddress:
    """
    Key of one editable scalar.

    ``kind`` is ``'input'`` (``neuron`` is the input slot), ``'bias'``
    (``layer``, ``neuron``) or ``'weight'`` (``layer``, ``neuron``,
    ``weight``).
    """

    kind: str
    layer: int = 0
    neuron: int = 0
    weight: int = -1

    @classmethod
    def input_slot(cls, index: int) -> 'ParameterAddress':
        return cls('input', 0, index)

    @classmethod
    def bias(cls, layer: int, neuron: int) -> 'ParameterAddress':
        return cls('bias', layer, neuron)

    @classmethod
    def weight_of(cls, layer: int, neuron: int, weight: int) -> 'ParameterAddress':
        return cls('weight', layer, neuron, weight)

    @property
    def key(self) -> str:
        """Compact string form: ``i:0``, ``b:1:0`` or ``w:1:0:1``."""
        if self.kind == 'input':
            return f"i:{self.neuron}"
        if self.kind == 'bias':
            return f"b:{self.layer}:{self.neuron}"
        return f"w:{self.layer}:{self.neuron}:{self.weight}"

    @classmethod
    def from_key(cls, key: str) -> 'ParameterAddress':
        """
        Parse the string form produced by ``key``.

        Raises:
            ValueError: If the key is malformed
        """
        parts = key.split(':') if isinstance(key, str) else []
        try:
            numbers = [int(p) for p in parts[1:]]
        except ValueError:
            numbers = []
        if parts and parts[0] == 'i' and len(numbers) == 1:
            return cls.input_slot(numbers[0])
        if parts and parts[0] == 'b' and len(numbers) == 2:
            return cls.bias(*numbers)
        if parts and parts[0] == 'w' and len(numbers) == 3:
            return cls.weight_of(*numbers)
        raise ValueError(f"Malformed parameter address: {key!r}")


Drafts = Dict[ParameterAddress, str]


def format_number(value: float) -> str:
    """
    Canonical text for a number.

    Integers render without decimal noise (``3``, not ``3.0``); other values
    use the shortest round-tripping representation. Non-finite values render
    as ``0``.
    """
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        return '0'
    value = float(value)
    if value.is_integer() and abs(value) < _INTEGER_TEXT_LIMIT:
        return str(int(value))
    return repr(value)


def parse_number(text) -> Optional[float]:
    """
    Parse user text as a finite real number.

    Accepts optional sign, digits with an optional fraction (or a bare
    fraction like ``.5``) and an optional exponent, surrounded by optional
    whitespace.

    Returns:
        The value, or None if the text is empty, malformed or not finite
    """
    if not isinstance(text, str):
        return None
    stripped = text.strip()
    if not stripped or not REAL_NUMBER_PATTERN.fullmatch(stripped):
        return None
    value = float(stripped)
    if not math.isfinite(value):
        return None
    return value


def parse_number_strict(text: str) -> float:
    """
    Like ``parse_number`` but raises.

    Raises:
        ParseError: If the text is not a finite real number
    """
    value = parse_number(text)
    if value is None:
        raise ParseError(text)
    return value


def iter_parameters(network: Network, input_values: Sequence[float]) -> Iterator[Tuple[ParameterAddress, float]]:
    """Every editable address with its canonical value, inputs first."""
    for i, value in enumerate(input_values):
        yield ParameterAddress.input_slot(i), value
    for layer_idx in range(1, len(network.layers)):
        for neuron_idx, neuron in enumerate(network.layers[layer_idx].neurons):
            yield ParameterAddress.bias(layer_idx, neuron_idx), neuron.bias
            for weight_idx, weight in enumerate(neuron.weights):
                yield ParameterAddress.weight_of(layer_idx, neuron_idx, weight_idx), weight


def build_drafts(network: Network, input_values: Sequence[float]) -> Drafts:
    """Canonical text for every address."""
    return {
        address: format_number(value)
        for address, value in iter_parameters(network, input_values)
    }


def reconcile(prev_drafts: Drafts, network: Network, input_values: Sequence[float]) -> Drafts:
    """
    Refresh drafts after the network or inputs changed.

    A previous text is kept verbatim when it still parses to exactly the
    canonical value, so formatting typed mid-edit (``1.50``, ``2e0``)
    survives. Everything else becomes canonical text; addresses that no
    longer exist are dropped.

    Returns:
        ``prev_drafts`` itself when nothing changed, else a new mapping
    """
    canonical = build_drafts(network, input_values)
    next_drafts: Drafts = {}
    changed = False

    for address, canonical_text in canonical.items():
        prev_text = prev_drafts.get(address)
        if isinstance(prev_text, str) and parse_number(prev_text) == float(canonical_text):
            next_drafts[address] = prev_text
            continue
        next_drafts[address] = canonical_text
        if prev_text != canonical_text:
            changed = True

    if not changed and len(prev_drafts) == len(next_drafts):
        return prev_drafts
    return next_drafts


def field_validity(drafts: Drafts) -> Dict[ParameterAddress, bool]:
    """Whether each draft currently parses."""
    return {address: parse_number(text) is not None for address, text in drafts.items()}


@dataclass
class CommitResult:
    """
    Outcome of one field edit.

    ``network`` and ``input_values`` are the new canonical values when
    ``ok``; otherwise they are the unchanged inputs and ``invalid`` lists the
    addresses whose text does not parse.
    """

    ok: bool
    drafts: Drafts
    network: Network
    input_values: Tuple[float, ...]
    invalid: Tuple[ParameterAddress, ...] = ()


def parse_drafts(
    drafts: Drafts,
    network: Network,
    input_values: Sequence[float]
) -> Tuple[Optional[Network], Optional[Tuple[float, ...]], List[ParameterAddress]]:
    """
    Parse every draft into a network shaped exactly like ``network``.

    Addresses without a draft fall back to the canonical value.

    Returns:
        (network, inputs, []) on success, (None, None, invalid) otherwise
    """
    invalid: List[ParameterAddress] = []

    def read(address: ParameterAddress, fallback: float) -> float:
        text = drafts.get(address)
        value = parse_number(text if isinstance(text, str) else format_number(fallback))
        if value is None:
            invalid.append(address)
            return fallback
        return value

    next_inputs = tuple(
        read(ParameterAddress.input_slot(i), v) for i, v in enumerate(input_values)
    )
    layers: List[AnyLayer] = [network.layers[0]]
    for layer_idx in range(1, len(network.layers)):
        layer = network.layers[layer_idx]
        neurons = []
        for neuron_idx, neuron in enumerate(layer.neurons):
            bias = read(ParameterAddress.bias(layer_idx, neuron_idx), neuron.bias)
            weights = [
                read(ParameterAddress.weight_of(layer_idx, neuron_idx, w_idx), w)
                for w_idx, w in enumerate(neuron.weights)
            ]
            neurons.append(replace(neuron, bias=bias, weights=weights))
        layers.append(replace(layer, neurons=tuple(neurons)))

    if invalid:
        return None, None, invalid
    return Network(tuple(layers)), next_inputs, invalid


def commit_edit(
    drafts: Drafts,
    address: ParameterAddress,
    text: str,
    network: Network,
    input_values: Sequence[float]
) -> CommitResult:
    """
    Store ``text`` for ``address`` and apply the numbers if all fields parse.

    The text is always accepted into the drafts. The canonical network and
    inputs are only rebuilt when every draft parses; otherwise they are
    returned unchanged and the invalid addresses are reported.

    Raises:
        KeyError: If ``address`` does not exist in ``network``
    """
    known = dict(iter_parameters(network, input_values))
    if address not in known:
        raise KeyError(f"No editable parameter at {address.key}")

    next_drafts = dict(drafts)
    next_drafts[address] = text

    parsed_network, parsed_inputs, invalid = parse_drafts(next_drafts, network, input_values)
    if parsed_network is None:
        logger.debug(f"Edit at {address.key} paused: {len(invalid)} invalid field(s)")
        return CommitResult(False, next_drafts, network, tuple(input_values), tuple(invalid))

    return CommitResult(True, next_drafts, parsed_network, parsed_inputs)
