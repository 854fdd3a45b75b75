"""
interpolate.py
~~~~~~~~~~~~~~

Linear interpolation between two networks of identical architecture, and
the reveal animation that drives it.

``interpolate`` is a pure elementwise lerp. ``RevealAnimation`` owns the
progress value: an external clock asks it for the frame at a given elapsed
time; cancelling is simply not asking again.
"""

import logging
from dataclasses import replace
from typing import Callable, Iterator, List

from nnbuilder.config import REVEAL_DURATION_SECONDS, REVEAL_FRAME_INTERVAL
from nnbuilder.errors import ArchitectureMismatchError
from nnbuilder.network import AnyLayer, Network

logger = logging.getLogger(__name__)


def lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


def ease_out_cubic(t: float) -> float:
    return 1 - (1 - t) ** 3


def interpolate(start: Network, end: Network, t: float) -> Network:
    """
    Blend every bias and weight from ``start`` towards ``end``.

    The input layer, activations and neuron names come from ``end``.

    Args:
        start: Network at t = 0
        end: Network at t = 1, same architecture as ``start``
        t: Progress, normally in [0, 1]

    Raises:
        ArchitectureMismatchError: If the two networks differ in shape
    """
    if not start.architecture_matches(end):
        raise ArchitectureMismatchError(
            f"Cannot interpolate {start.layer_sizes()} into {end.layer_sizes()}."
        )

    layers: List[AnyLayer] = [end.layers[0]]
    for start_layer, end_layer in zip(start.layers[1:], end.layers[1:]):
        neurons = tuple(
            replace(
                b,
                bias=lerp(a.bias, b.bias, t),
                weights=[lerp(wa, wb, t) for wa, wb in zip(a.weights, b.weights)],
            )
            for a, b in zip(start_layer.neurons, end_layer.neurons)
        )
        layers.append(replace(end_layer, neurons=neurons))
    return Network(tuple(layers))


def prepare_reveal_start(current: Network, solution: Network) -> Network:
    """
    Starting point for revealing ``solution``.

    Returns ``current`` when it already has the solution's architecture,
    otherwise a zero network shaped like the solution.
    """
    if current.architecture_matches(solution):
        return current
    logger.debug("Reveal starts from zero network: architectures differ")
    return solution.zero_like()


class RevealAnimation:
    """
    Animates a network from ``start`` to ``end`` over a fixed duration.

    Example:
        >>> anim = RevealAnimation(current, solution)
        >>> for frame in anim.frames():
        ...     render(frame)
    """

    def __init__(
        self,
        start: Network,
        end: Network,
        duration: float = REVEAL_DURATION_SECONDS,
        easing: Callable[[float], float] = ease_out_cubic
    ):
        if duration <= 0:
            raise ValueError(f"duration must be positive, got {duration}")
        self.start = prepare_reveal_start(start, end)
        self.end = end
        self.duration = duration
        self.easing = easing

    def progress(self, elapsed: float) -> float:
        """Linear progress in [0, 1]."""
        return max(0.0, min(1.0, elapsed / self.duration))

    def is_finished(self, elapsed: float) -> bool:
        return self.progress(elapsed) >= 1.0

    def frame_at(self, elapsed: float) -> Network:
        """
        Network to show ``elapsed`` seconds after the reveal started.

        Once progress reaches 1 the exact end network is returned, never an
        interpolated copy.
        """
        t = self.progress(elapsed)
        if t >= 1.0:
            return self.end
        return interpolate(self.start, self.end, self.easing(t))

    def frames(self, interval: float = REVEAL_FRAME_INTERVAL) -> Iterator[Network]:
        """Every frame at ``interval`` spacing, ending with the exact end network."""
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        step = 0
        while True:
            elapsed = step * interval
            yield self.frame_at(elapsed)
            if self.is_finished(elapsed):
                return
            step += 1
