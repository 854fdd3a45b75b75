"""
challenges.py
~~~~~~~~~~~~~

Catalogue of target functions ("challenges") with hand-authored solution
networks.

Each challenge pairs a ``target_fn(x1, x2)`` with a solution network that
reaches the match threshold against it. Target grids are sampled once per
challenge and cached.
"""

import functools
import logging
import math
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from nnbuilder.grid import Grid, sample_grid, sample_network_grid, score
from nnbuilder.network import Network, build_network

logger = logging.getLogger(__name__)

DIFFICULTIES = ('tutorial', 'easy', 'medium', 'hard', 'insane')


@dataclass(frozen=True)
class Challenge:
    """A target function and the metadata shown alongside it."""

    id: str
    name: str
    formula: str
    difficulty: str
    target_fn: Callable[[float, float], float]
    solution_factory: Callable[[], Network]
    hint: Optional[str] = None

    def solution(self) -> Network:
        return self.solution_factory()

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'formula': self.formula,
            'difficulty': self.difficulty,
            'hint': self.hint,
        }


# ============================================================================
# SOLUTION BUILDERS
# ============================================================================

def _linear_solution(weights: Sequence[float], bias: float = 0.0, activation: str = 'linear') -> Callable[[], Network]:
    return lambda: build_network([(activation, [(bias, weights)])])


def _single_hidden_solution(
    hidden: Sequence[Tuple[float, Sequence[float]]],
    output_weights: Sequence[float],
    output_bias: float = 0.0,
    hidden_activation: str = 'relu',
    output_activation: str = 'linear'
) -> Callable[[], Network]:
    return lambda: build_network([
        (hidden_activation, hidden),
        (output_activation, [(output_bias, output_weights)]),
    ])


def _one_hot(size: int, index: int, value: float = 1.0) -> List[float]:
    weights = [0.0] * size
    weights[index] = value
    return weights


def _product_solution() -> Network:
    """
    x1 * x2 = (|x1 + x2|^2 - |x1|^2 - |x2|^2) / 2.

    Each absolute value is rebuilt from two ReLUs, then squared by a
    piecewise-linear fit made of five ReLU hinges.
    """
    channels = ('s', 'x', 'y')
    directions = ([1, 1], [1, 0], [0, 1])

    rectified = [(0, d, f"relu({c})") for c, d in zip(channels, directions)]
    rectified += [(0, [-w for w in d], f"relu(-{c})") for c, d in zip(channels, directions)]

    absolute = [
        (0, [1.0 if j in (i, i + 3) else 0.0 for j in range(6)], f"|{c}|")
        for i, c in enumerate(channels)
    ]

    # (bias, slope, label) of the hinges approximating v -> v^2 on [0, 10]
    hinges = ((0, 1, 'f(|{c}|)'), (-1, 1, 'f(|{c}|-1)'), (-5, 5, 'g(|{c}|-1)'),
              (-25, 5, 'g(|{c}|-5)'), (-70, 14, 'h(|{c}|-5)'))
    squares = [
        (bias, _one_hot(3, i, slope), label.format(c=c))
        for i, c in enumerate(channels)
        for bias, slope, label in hinges
    ]

    block = [1, -1, 1, -1, 1]
    parabolas = [
        (0, [0] * (5 * i) + block + [0] * (5 * (2 - i)), f"p(|{c}|)")
        for i, c in enumerate(channels)
    ]

    return build_network([
        ('relu', rectified),
        ('linear', absolute),
        ('relu', squares),
        ('linear', parabolas),
        ('linear', [(0, [0.5, -0.5, -0.5])]),
    ])


def _nested_trig_solution() -> Network:
    relay_eps = 0.02
    arg_relay = 0.07
    sin_relay = 0.1
    cos_relay = 0.3
    half_pi = math.pi / 2

    return build_network([
        ('linear', [
            (0, [1, 0], 'x'),
            (0, [2, 0], '2x'),
            (0, [3, 0], '3x'),
        ]),
        ('sin', [
            (0, [1, 0, 0], 'sin(x)'),
            (0, [0, 1, 0], 'sin(2x)'),
            (0, [0, 0, 1], 'sin(3x)'),
            (half_pi, [1, 0, 0], 'cos(x) via phase'),
            (0, [relay_eps, 0, 0], 'relay(x)'),
        ]),
        ('linear', [
            (0, [0, 1, 0, 1, 0], 'sin(2x) + cos(x)'),
            (0, [0, 0, 1, 1, 0], 'sin(3x) + cos(x)'),
            (0, [1, 0, 0, 0, 0], 'sin(x)'),
            (0, [0, 0, 0, 0, 1 / relay_eps], 'x~'),
        ]),
        ('sin', [
            (0, [1, 0, 0, 0], 'sin(sin(2x) + cos(x))'),
            (0, [0, arg_relay, 0, 0], 'relay(sin(3x) + cos(x))'),
            (0, [0, 0, sin_relay, 0], 'relay(sin(x))'),
            (0, [0, 0, 0, relay_eps], 'relay(x)'),
        ]),
        ('cos', [
            (0, [1, 0, 0, 0], 'cos(sin(...))'),
            (0, [0, 1 / arg_relay, 0, 0], 'cos(sin(3x) + cos(x))'),
            (-half_pi, [0, 0, cos_relay, 0], 'relay(sin(x))'),
            (-half_pi, [0, 0, 0, 1], 'relay(x)'),
        ]),
        ('linear', [
            (-1, [1, 3, -1 / (sin_relay * cos_relay), -0.5 / relay_eps]),
        ]),
    ])


def _three_axis_fold(x1: float, x2: float) -> float:
    return (
        0.2 * x1
        + max(0.0, x1 + x2 - 1)
        - 0.9 * max(0.0, x1 - 1.5 * x2 - 0.5)
        + 0.7 * max(0.0, -x1 + 0.4 * x2 + 1.5)
    )


def _nested_trig(x1: float, x2: float) -> float:
    return (
        math.cos(math.sin(math.sin(2 * x1) + math.cos(x1)))
        + 3 * math.cos(math.sin(3 * x1) + math.cos(x1))
        - math.sin(x1)
        - 0.5 * x1
        - 1
    )


# ============================================================================
# CATALOGUE
# ============================================================================

CHALLENGES: List[Challenge] = [
    Challenge(
        'identity', 'Identity', r"f(x_1, x_2) = x_1", 'tutorial',
        lambda x1, x2: x1,
        _linear_solution([1, 0]),
    ),
    Challenge(
        'input_sum', 'Input Sum', r"f(x_1, x_2) = x_1 + x_2", 'tutorial',
        lambda x1, x2: x1 + x2,
        _linear_solution([1, 1]),
    ),
    Challenge(
        'tanh_curve', 'Tanh Curve', r"f(x_1, x_2) = \tanh(x_1)", 'tutorial',
        lambda x1, x2: math.tanh(x1),
        _linear_solution([1, 0], activation='tanh'),
    ),
    Challenge(
        'linear_combo', 'Linear Combo', r"f(x_1, x_2) = 2x_1 - x_2 + 1", 'easy',
        lambda x1, x2: 2 * x1 - x2 + 1,
        _linear_solution([2, -1], bias=1),
    ),
    Challenge(
        'step_edge', 'Step Edge',
        r"f(x_1, x_2) = \begin{cases}1,&x_1 \ge 0\\-1,&x_1 < 0\end{cases}", 'easy',
        lambda x1, x2: 1.0 if x1 >= 0 else -1.0,
        _linear_solution([2.8, 0], activation='tanh'),
    ),
    Challenge(
        'absolute_value', 'Absolute Value', r"f(x_1, x_2) = \left|x_1\right|", 'medium',
        lambda x1, x2: abs(x1),
        _single_hidden_solution([(0, [1, 0]), (0, [-1, 0])], [1, 1]),
    ),
    Challenge(
        'absolute_difference', 'Absolute Difference', r"f(x_1, x_2) = \left|x_1 - x_2\right|", 'medium',
        lambda x1, x2: abs(x1 - x2),
        _single_hidden_solution([(0, [1, -1]), (0, [-1, 1])], [1, 1]),
    ),
    Challenge(
        'three_axis_fold', 'Three Axis Fold',
        r"f(x_1, x_2) = 0.2x_1 + \max(0, x_1 + x_2 - 1) - 0.9\max(0, x_1 - 1.5x_2 - 0.5)"
        r" + 0.7\max(0, -x_1 + 0.4x_2 + 1.5)",
        'medium',
        _three_axis_fold,
        _single_hidden_solution(
            [(6, [1, 0]), (-1, [1, 1]), (-0.5, [1, -1.5]), (1.5, [-1, 0.4])],
            [0.2, 1, -0.9, 0.7],
            output_bias=-1.2,
        ),
        hint="3 hinges: one x₁ + x₂ diagonal and two opposing diagonals.",
    ),
    Challenge(
        'max_two_inputs', 'Max Of Two', r"f(x_1, x_2) = \max(x_1, x_2)", 'hard',
        lambda x1, x2: max(x1, x2),
        _single_hidden_solution([(0, [1, -1]), (0, [0, 1]), (0, [0, -1])], [1, 1, -1]),
    ),
    Challenge(
        'offcenter_diamond_cap', 'Offcenter Diamond Cap',
        r"f(x_1, x_2) = \max(0, 2.2 - \left|x_1 - 1.2\right| - 0.6\left|x_2 + 0.8\right|)", 'hard',
        lambda x1, x2: max(0.0, 2.2 - abs(x1 - 1.2) - 0.6 * abs(x2 + 0.8)),
        _single_hidden_solution(
            [(-1.2, [1, 0]), (1.2, [-1, 0]), (0.8, [0, 1]), (-0.8, [0, -1])],
            [-1, -1, -0.6, -0.6],
            output_bias=2.2,
            output_activation='relu',
        ),
    ),
    Challenge(
        'input_product', 'Input Product', r"f(x_1, x_2) = x_1 \cdot x_2", 'insane',
        lambda x1, x2: x1 * x2,
        _product_solution,
        hint="Build |x+y|, |x|, |y|, then approximate squares with ReLU hinges.",
    ),
    Challenge(
        'nested_trig_stack', 'Nested Trig Stack',
        r"f(x_1, x_2) = \cos\left(\sin\left(\sin\left(2x_1\right) + \cos\left(x_1\right)\right)\right)"
        r" + 3\cos\left(\sin\left(3x_1\right) + \cos\left(x_1\right)\right) - \sin\left(x_1\right)"
        r" - 0.5x_1 - 1",
        'insane',
        _nested_trig,
        _nested_trig_solution,
        hint="Carry x and sin(x) with tiny-angle relays while composing trig features.",
    ),
]

_BY_ID: Dict[str, Challenge] = {challenge.id: challenge for challenge in CHALLENGES}


def get_challenge(challenge_id: str) -> Optional[Challenge]:
    """Return the challenge with this id, or None."""
    if not isinstance(challenge_id, str):
        return None
    return _BY_ID.get(challenge_id)


def list_challenges() -> List[dict]:
    return [challenge.to_dict() for challenge in CHALLENGES]


@functools.lru_cache(maxsize=None)
def target_grid(challenge_id: str) -> Grid:
    """
    Sampled target function of a challenge, computed once per id.

    Raises:
        KeyError: If the challenge does not exist
    """
    challenge = _BY_ID[challenge_id]
    logger.debug(f"Sampling target grid for challenge '{challenge_id}'")
    grid = sample_grid(challenge.target_fn)
    # Shared between callers
    grid.values.setflags(write=False)
    return grid


def score_network(network: Network, challenge_id: str) -> float:
    """Score of ``network`` against a challenge's target grid."""
    return score(sample_network_grid(network), target_grid(challenge_id))
