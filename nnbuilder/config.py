"""
config.py
~~~~~~~~~

Global limits and constants shared by every engine module, plus the
environment-driven settings used by the server and persistence layer.
"""

import os
from dataclasses import dataclass
from typing import Tuple

# ============================================================================
# NETWORK LIMITS
# ============================================================================

INPUT_WIDTH = 2
MAX_LAYERS = 20
MAX_NEURONS_PER_LAYER = 128
MAX_TOTAL_WEIGHTS = 20_000
MAX_IMPORT_BYTES = 5_000_000


@dataclass(frozen=True)
class NetworkLimits:
    """Size ceilings enforced after every mutation and import."""

    max_layers: int = MAX_LAYERS
    max_neurons_per_layer: int = MAX_NEURONS_PER_LAYER
    max_total_weights: int = MAX_TOTAL_WEIGHTS
    max_import_bytes: int = MAX_IMPORT_BYTES


DEFAULT_LIMITS = NetworkLimits()

# ============================================================================
# SANDBOX DEFAULTS
# ============================================================================

DEFAULT_INPUT_VALUES: Tuple[float, float] = (0.5, 0.5)

# Added by add_hidden_layer, directly before the output layer
NEW_HIDDEN_LAYER_SIZE = 3
NEW_HIDDEN_LAYER_ACTIVATION = "relu"

# ============================================================================
# GRID & SCORE
# ============================================================================

GRID_SIZE = 100
DOMAIN: Tuple[float, float] = (-5.0, 5.0)

SCORE_EPSILON = 1e-12
MATCH_SCORE_THRESHOLD = 95

SIGMOID_CLAMP = 500.0

# ============================================================================
# SERIALIZATION
# ============================================================================

NETWORK_JSON_SCHEMA = "nn-builder/network"
NETWORK_JSON_VERSION = 1

# ============================================================================
# SOLUTION REVEAL
# ============================================================================

REVEAL_DURATION_SECONDS = 1.5
REVEAL_FRAME_INTERVAL = 1 / 60

# ============================================================================
# ENVIRONMENT
# ============================================================================

MODEL_DIR = os.getenv('NNBUILDER_MODEL_DIR', 'models')
CLEANUP_DAYS = int(os.getenv('NNBUILDER_CLEANUP_DAYS', '30'))
