"""
codec.py
~~~~~~~~

Versioned JSON export and import of a Network plus its input values.

Export payload::

    {
        "schema": "nn-builder/network",
        "version": 1,
        "exportedAt": "2026-01-01T00:00:00.000Z",
        "network": {"layers": [...], "inputValues": [x1, x2]}
    }

Imports are untrusted. ``parse_payload`` first resolves which of the
accepted shapes the payload has (versioned, nested legacy, bare legacy) and
then validates the network structure in one pass. Any failure rejects the
whole payload; nothing is partially applied.
"""

import json
import logging
import math
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from nnbuilder.activations import is_activation
from nnbuilder.config import (
    DEFAULT_LIMITS,
    INPUT_WIDTH,
    NETWORK_JSON_SCHEMA,
    NETWORK_JSON_VERSION,
    NetworkLimits,
)
from nnbuilder.errors import ValidationError
from nnbuilder.network import AnyLayer, InputLayer, Layer, Network, Neuron

logger = logging.getLogger(__name__)


# ============================================================================
# RESULTS
# ============================================================================

@dataclass
class ImportResult:
    """Either a validated network and inputs, or the reason for rejection."""

    ok: bool
    network: Optional[Network] = None
    input_values: Optional[Tuple[float, ...]] = None
    error: Optional[str] = None
    code: Optional[str] = None


@dataclass
class ExportResult:
    """A self-validated export payload and its JSON text, or an error."""

    ok: bool
    payload: Optional[Dict[str, Any]] = None
    text: Optional[str] = None
    error: Optional[str] = None


# ============================================================================
# EXPORT
# ============================================================================

def _timestamp() -> str:
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def serialize_layers(network: Network) -> List[Dict[str, Any]]:
    """Plain JSON-ready layer list; layer 0 only carries its neuron count."""
    input_layer = network.input_layer
    first: Dict[str, Any] = {
        'type': 'input',
        'activation': 'linear',
        'neuronCount': input_layer.width,
    }
    if input_layer.neuron_names:
        first['neuronNames'] = list(input_layer.neuron_names)
    layers = [first]

    for layer_idx in range(1, len(network.layers)):
        layer = network.layers[layer_idx]
        neurons = []
        for neuron in layer.neurons:
            entry: Dict[str, Any] = {'bias': neuron.bias, 'weights': list(neuron.weights)}
            if neuron.name:
                entry['name'] = neuron.name
            neurons.append(entry)
        layers.append({
            'type': network.layer_type(layer_idx),
            'activation': layer.activation,
            'neurons': neurons,
        })
    return layers


def build_export_payload(
    network: Network,
    input_values: Sequence[float],
    exported_at: Optional[str] = None
) -> Dict[str, Any]:
    """Assemble the versioned payload without validating it."""
    return {
        'schema': NETWORK_JSON_SCHEMA,
        'version': NETWORK_JSON_VERSION,
        'exportedAt': exported_at or _timestamp(),
        'network': {
            'layers': serialize_layers(network),
            'inputValues': [float(v) for v in input_values],
        },
    }


def export_network(
    network: Network,
    input_values: Sequence[float],
    exported_at: Optional[str] = None,
    limits: NetworkLimits = DEFAULT_LIMITS
) -> ExportResult:
    """
    Build the export payload and check it through the import path.

    Args:
        network: Network to export
        input_values: Current sandbox inputs
        exported_at: ISO 8601 timestamp (defaults to now, UTC)
        limits: Limits the payload must satisfy on re-import

    Returns:
        ExportResult with ``payload`` and pretty-printed ``text`` on success
    """
    payload = build_export_payload(network, input_values, exported_at)
    check = parse_payload(payload, limits)
    if not check.ok:
        logger.error(f"Refusing to export network that fails validation: {check.error}")
        return ExportResult(False, error=check.error)

    text = json.dumps(payload, indent=2, allow_nan=False)
    logger.info(f"Exported network {network.layer_sizes()} ({len(text)} bytes)")
    return ExportResult(True, payload=payload, text=text)


# ============================================================================
# IMPORT
# ============================================================================

def _is_finite_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def _schema_matches(value: Any) -> bool:
    return isinstance(value, str) and value == NETWORK_JSON_SCHEMA


def _version_matches(value: Any) -> bool:
    return _is_finite_number(value) and value == NETWORK_JSON_VERSION


@dataclass
class _NetworkSource:
    """Which shape a payload has, resolved once before validation."""

    kind: str  # 'versioned' | 'nested' | 'bare'
    body: Dict[str, Any]
    legacy_inputs: Optional[Any] = None
    has_legacy_inputs: bool = False


def _resolve_source(payload: Any) -> _NetworkSource:
    if not isinstance(payload, dict):
        raise ValidationError("JSON root must be an object.", 'root_not_object')

    has_schema = 'schema' in payload
    has_version = 'version' in payload
    if has_schema != has_version:
        raise ValidationError("JSON metadata is incomplete.", 'metadata_incomplete')

    if has_schema:
        if not _schema_matches(payload['schema']):
            raise ValidationError("Unsupported JSON schema.", 'unsupported_schema')
        if not _version_matches(payload['version']):
            raise ValidationError("Unsupported JSON version.", 'unsupported_version')
        if not isinstance(payload.get('network'), dict):
            raise ValidationError("Missing network payload.", 'missing_network')
        return _NetworkSource('versioned', payload['network'])

    if isinstance(payload.get('network'), dict):
        # Legacy nested layout may keep inputValues beside "network"
        return _NetworkSource(
            'nested',
            payload['network'],
            legacy_inputs=payload.get('inputValues'),
            has_legacy_inputs='inputValues' in payload,
        )

    if 'layers' in payload:
        return _NetworkSource('bare', payload)

    raise ValidationError(
        "JSON root must be an object containing a network.", 'missing_network'
    )


def _parse_name(raw: Any, error: str) -> str:
    if raw is None:
        return ''
    if not isinstance(raw, str):
        raise ValidationError(error, 'name')
    return raw.strip()


def _parse_input_layer(raw: Any) -> InputLayer:
    if not isinstance(raw, dict):
        raise ValidationError("Input layer is missing or malformed.", 'input_layer')

    count = raw.get('neuronCount')
    if isinstance(count, bool) or count != INPUT_WIDTH:
        raise ValidationError(
            f"Input layer must have exactly {INPUT_WIDTH} neurons.", 'input_layer'
        )

    names: Tuple[str, ...] = ()
    if 'neuronNames' in raw:
        raw_names = raw['neuronNames']
        if not isinstance(raw_names, list) or len(raw_names) != INPUT_WIDTH:
            raise ValidationError(
                f"Input layer names must contain exactly {INPUT_WIDTH} values.", 'name'
            )
        names = tuple(
            _parse_name(n, f"Input neuron {i} has an invalid name.")
            for i, n in enumerate(raw_names)
        )
    return InputLayer(INPUT_WIDTH, names)


def _parse_layers(raw_layers: Any, limits: NetworkLimits) -> Network:
    if not isinstance(raw_layers, list) or len(raw_layers) < 2:
        raise ValidationError(
            "Network must include at least an input and output layer.", 'layers'
        )
    if len(raw_layers) > limits.max_layers:
        raise ValidationError(
            f"Network has too many layers (max {limits.max_layers}).", 'limit'
        )

    layers: List[AnyLayer] = [_parse_input_layer(raw_layers[0])]
    prev_width = INPUT_WIDTH
    total_weights = 0
    last_idx = len(raw_layers) - 1

    for layer_idx in range(1, len(raw_layers)):
        raw = raw_layers[layer_idx]
        if not isinstance(raw, dict):
            raise ValidationError(f"Layer {layer_idx} is malformed.", 'layers')
        if not is_activation(raw.get('activation')):
            raise ValidationError(
                f"Layer {layer_idx} has an unsupported activation function.", 'activation'
            )

        raw_neurons = raw.get('neurons')
        if not isinstance(raw_neurons, list) or not raw_neurons:
            raise ValidationError(
                f"Layer {layer_idx} must include at least one neuron.", 'neurons'
            )
        if len(raw_neurons) > limits.max_neurons_per_layer:
            raise ValidationError(
                f"Layer {layer_idx} has too many neurons "
                f"(max {limits.max_neurons_per_layer}).", 'limit'
            )
        if layer_idx == last_idx and len(raw_neurons) != 1:
            raise ValidationError("Output layer must contain exactly one neuron.", 'neurons')

        neurons = []
        for neuron_idx, raw_neuron in enumerate(raw_neurons):
            where = f"Layer {layer_idx}, neuron {neuron_idx}"
            if not isinstance(raw_neuron, dict):
                raise ValidationError(f"{where} is malformed.", 'neurons')
            if not _is_finite_number(raw_neuron.get('bias')):
                raise ValidationError(f"{where} has an invalid bias.", 'bias')

            weights = raw_neuron.get('weights')
            if not isinstance(weights, list) or len(weights) != prev_width:
                raise ValidationError(
                    f"{where} must have exactly {prev_width} weights.", 'dimension'
                )
            name = _parse_name(raw_neuron.get('name'), f"{where} has an invalid name.")
            if not all(_is_finite_number(w) for w in weights):
                raise ValidationError(f"{where} has invalid weights.", 'weights')

            total_weights += len(weights)
            if total_weights > limits.max_total_weights:
                raise ValidationError(
                    f"Network has too many weights (max {limits.max_total_weights}).", 'limit'
                )
            neurons.append(Neuron(raw_neuron['bias'], weights, name))

        layers.append(Layer(raw['activation'], tuple(neurons)))
        prev_width = len(neurons)

    return Network(tuple(layers))


def _parse_input_values(source: _NetworkSource) -> Tuple[float, ...]:
    if 'inputValues' in source.body:
        raw = source.body['inputValues']
    elif source.has_legacy_inputs:
        raw = source.legacy_inputs
    else:
        raise ValidationError("Missing input values.", 'inputs')

    if not isinstance(raw, list) or len(raw) != INPUT_WIDTH:
        raise ValidationError(
            f"Input values must contain exactly {INPUT_WIDTH} numbers.", 'inputs'
        )
    if not all(_is_finite_number(v) for v in raw):
        raise ValidationError("Input values must all be finite numbers.", 'inputs')
    return tuple(float(v) for v in raw)


def parse_payload(payload: Any, limits: NetworkLimits = DEFAULT_LIMITS) -> ImportResult:
    """
    Validate an already-decoded JSON payload.

    Args:
        payload: Decoded JSON value (untrusted)
        limits: Size limits to enforce

    Returns:
        ImportResult with the network and inputs, or the rejection reason
    """
    try:
        source = _resolve_source(payload)
        network = _parse_layers(source.body.get('layers'), limits)
        input_values = _parse_input_values(source)
    except ValidationError as e:
        logger.warning(f"Rejected network payload ({e.code}): {e.reason}")
        return ImportResult(False, error=e.reason, code=e.code)

    logger.debug(f"Accepted {source.kind} payload with layer sizes {network.layer_sizes()}")
    return ImportResult(True, network=network, input_values=input_values)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Non-standard JSON constant {name}")


def import_text(text: Union[str, bytes], limits: NetworkLimits = DEFAULT_LIMITS) -> ImportResult:
    """
    Decode and validate raw JSON text.

    The byte size is checked before any parsing. ``NaN`` and ``Infinity``
    literals are rejected as invalid JSON.
    """
    raw = text.encode('utf-8') if isinstance(text, str) else text
    if len(raw) > limits.max_import_bytes:
        logger.warning(f"Rejected import of {len(raw)} bytes (max {limits.max_import_bytes})")
        return ImportResult(
            False,
            error=f"File is too large (max {limits.max_import_bytes} bytes).",
            code='too_large',
        )

    try:
        payload = json.loads(raw.decode('utf-8'), parse_constant=_reject_constant)
    except (UnicodeDecodeError, ValueError, RecursionError) as e:
        logger.warning(f"Rejected import: invalid JSON ({e})")
        return ImportResult(False, error="File is not valid JSON.", code='invalid_json')

    return parse_payload(payload, limits)


def import_file(path: str, limits: NetworkLimits = DEFAULT_LIMITS) -> ImportResult:
    """Validate a JSON file, checking its size on disk before reading it."""
    try:
        size = os.path.getsize(path)
        if size > limits.max_import_bytes:
            logger.warning(f"Rejected import of '{path}': {size} bytes")
            return ImportResult(
                False,
                error=f"File is too large (max {limits.max_import_bytes} bytes).",
                code='too_large',
            )
        with open(path, 'rb') as f:
            data = f.read()
    except OSError as e:
        logger.error(f"Could not read '{path}': {e}")
        return ImportResult(False, error="File could not be read.", code='io')

    return import_text(data, limits)
