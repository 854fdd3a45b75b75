"""
errors.py
~~~~~~~~~

Exception hierarchy for the network engine.

Every failure in the engine degrades to "keep the previous valid state and
report why". The boundary functions (import, commit, mutation) catch these
exceptions and return a result object carrying the reason string.
"""

from typing import Optional


class NetworkError(Exception):
    """Base class for all engine errors."""


class ParseError(NetworkError, ValueError):
    """A draft text field does not represent a finite real number."""

    def __init__(self, text: str):
        super().__init__(f"Not a real number: {text!r}")
        self.text = text


class StructuralLimitError(NetworkError):
    """A mutation or import would exceed one of the network size limits."""

    LIMIT_LABELS = {
        'layers': 'layers',
        'neurons_per_layer': 'neurons per layer',
        'total_weights': 'weights',
    }

    def __init__(self, limit: str, maximum: int, actual: int):
        label = self.LIMIT_LABELS.get(limit, limit)
        super().__init__(
            f"Network would have too many {label} "
            f"({actual}, max {maximum})."
        )
        self.limit = limit
        self.maximum = maximum
        self.actual = actual


class InvalidMutationError(NetworkError, ValueError):
    """A structural edit targets a layer or neuron it may not touch."""


class InvariantError(NetworkError):
    """A network violates the weight-length-matches-previous-width rule."""


class ValidationError(NetworkError, ValueError):
    """An import payload was rejected; the message is user-facing."""

    def __init__(self, reason: str, code: Optional[str] = None):
        super().__init__(reason)
        self.reason = reason
        self.code = code or 'invalid'


class ArchitectureMismatchError(NetworkError, ValueError):
    """Interpolation was requested between differently-shaped networks."""
