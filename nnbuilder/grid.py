"""
grid.py
~~~~~~~

Grid sampling over the fixed input domain and the R²-style score.

The domain is the square [-5, 5] x [-5, 5] sampled on a GRID_SIZE x
GRID_SIZE grid. Column ``i`` maps to ``x1``, row ``j`` maps to ``x2`` with
row 0 at the top (``x2 = +5``). Values are stored row-major in a flat numpy
array.
"""

import logging
import math
from dataclasses import dataclass
from typing import Callable, List, Tuple, Union

import numpy as np

from nnbuilder.config import DOMAIN, GRID_SIZE, MATCH_SCORE_THRESHOLD, SCORE_EPSILON
from nnbuilder.forward import make_scalar_fn
from nnbuilder.network import Network

logger = logging.getLogger(__name__)

SampleFn = Callable[[float, float], float]


@dataclass
class Grid:
    """Sampled values of a function plus the color range for display."""

    values: np.ndarray
    min: float
    max: float

    @property
    def size(self) -> int:
        return int(round(math.sqrt(len(self.values))))

    def to_dict(self) -> dict:
        return {
            'values': [float(v) for v in self.values],
            'min': float(self.min),
            'max': float(self.max),
        }


def grid_axes(size: int = GRID_SIZE) -> Tuple[List[float], List[float]]:
    """
    Sample coordinates of the grid.

    Returns:
        (x1 per column, x2 per row); row 0 is the top of the domain
    """
    lo, hi = DOMAIN
    span = hi - lo
    x1s = [lo + (i / (size - 1)) * span for i in range(size)]
    x2s = [hi - (j / (size - 1)) * span for j in range(size)]
    return x1s, x2s


def sample_grid(fn: SampleFn, size: int = GRID_SIZE) -> Grid:
    """
    Evaluate ``fn(x1, x2)`` at every cell of the grid.

    Non-finite results are stored as 0 so a diverging network still renders.
    If no cell produced a finite value the range defaults to [0, 1]; a flat
    range is widened by 0.5 on both sides.

    Args:
        fn: Function to sample
        size: Cells per side

    Returns:
        Grid with ``size * size`` values
    """
    x1s, x2s = grid_axes(size)
    values = np.zeros(size * size, dtype=np.float64)
    any_finite = False

    for j, x2 in enumerate(x2s):
        row = j * size
        for i, x1 in enumerate(x1s):
            raw = float(fn(x1, x2))
            if math.isfinite(raw):
                values[row + i] = raw
                any_finite = True

    if any_finite:
        lo, hi = float(values.min()), float(values.max())
    else:
        lo, hi = 0.0, 1.0
    if lo == hi:
        lo -= 0.5
        hi += 0.5

    return Grid(values, lo, hi)


def sample_network_grid(network: Network, size: int = GRID_SIZE) -> Grid:
    """Sample a network's output over the domain."""
    grid = sample_grid(make_scalar_fn(network), size)
    logger.debug(f"Sampled network grid {network.layer_sizes()}: range [{grid.min}, {grid.max}]")
    return grid


def _as_array(values: Union[Grid, np.ndarray, list]) -> np.ndarray:
    if isinstance(values, Grid):
        values = values.values
    return np.asarray(values, dtype=np.float64)


def variance(values: Union[Grid, np.ndarray, list]) -> float:
    """Population variance; 0 for an empty array."""
    arr = _as_array(values)
    if arr.size == 0:
        return 0.0
    deviation = arr - arr.mean()
    return float(np.mean(deviation * deviation))


def mse(a: Union[Grid, np.ndarray, list], b: Union[Grid, np.ndarray, list]) -> float:
    """Mean squared difference over the shorter of the two arrays."""
    arr_a, arr_b = _as_array(a), _as_array(b)
    n = min(arr_a.size, arr_b.size)
    if n == 0:
        return 0.0
    diff = arr_a[:n] - arr_b[:n]
    return float(np.mean(diff * diff))


def score(network_grid: Union[Grid, np.ndarray, list], target_grid: Union[Grid, np.ndarray, list]) -> float:
    """
    R²-style fit percentage of a network grid against a target grid.

    A near-constant target (variance <= 1e-12) scores 100 for an exact match
    and 0 otherwise.

    Returns:
        Score in [0, 100]
    """
    target_variance = variance(target_grid)
    error = mse(network_grid, target_grid)

    if target_variance <= SCORE_EPSILON:
        return 100.0 if error <= SCORE_EPSILON else 0.0

    fit = 100.0 * max(0.0, 1.0 - error / target_variance)
    if math.isnan(fit):
        return 0.0
    return min(100.0, max(0.0, fit))


def is_matched(value: float) -> bool:
    return value >= MATCH_SCORE_THRESHOLD


def score_label(value: float) -> str:
    """Qualitative label shown next to a score."""
    if value >= MATCH_SCORE_THRESHOLD:
        return "Matched!"
    if value >= 80:
        return "Almost there"
    if value >= 50:
        return "Getting closer"
    return "Keep going"
