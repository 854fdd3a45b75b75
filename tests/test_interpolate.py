"""
test_interpolate.py
~~~~~~~~~~~~~~~~~~~

Unit tests for network interpolation and the reveal animation.
"""

import pytest

from nnbuilder.errors import ArchitectureMismatchError
from nnbuilder.interpolate import (
    RevealAnimation,
    ease_out_cubic,
    interpolate,
    lerp,
    prepare_reveal_start,
)
from nnbuilder.network import build_network, with_neuron_name


@pytest.fixture
def start():
    return build_network([('relu', [(0, [0, 0]), (2, [4, -4])]), ('linear', [(1, [0, 2])])])


@pytest.fixture
def end():
    return build_network([('relu', [(1, [2, 2]), (0, [0, 0])]), ('linear', [(3, [1, 0])])])


@pytest.mark.unit
class TestInterpolate:
    """Elementwise blending."""

    def test_lerp(self):
        """Test scalar interpolation."""
        assert lerp(2.0, 6.0, 0.25) == 3.0

    def test_easing_endpoints(self):
        """Test that the easing curve starts at 0 and ends at 1."""
        assert ease_out_cubic(0.0) == 0.0
        assert ease_out_cubic(1.0) == 1.0
        assert ease_out_cubic(0.5) == pytest.approx(0.875)

    def test_endpoints(self, start, end):
        """Test that t=0 gives start values and t=1 gives end values."""
        assert interpolate(start, end, 0.0).parameters_equal(start)
        assert interpolate(start, end, 1.0).parameters_equal(end)

    def test_midpoint(self, start, end):
        """Test the halfway network."""
        mid = interpolate(start, end, 0.5)
        assert mid.layers[1].neurons[0].bias == 0.5
        assert mid.layers[1].neurons[1].weights == (2.0, -2.0)
        assert mid.output_layer.neurons[0].bias == 2.0

    def test_names_come_from_end(self, start, end):
        """Test that display names are taken from the end network."""
        named_end = with_neuron_name(end, 1, 1, 'target')
        assert interpolate(start, named_end, 0.3).layers[1].neurons[1].name == 'target'

    def test_mismatch_raises(self, start):
        """Test that networks of different shape cannot be blended."""
        other = build_network([('linear', [(0, [1, 0])])])
        with pytest.raises(ArchitectureMismatchError):
            interpolate(start, other, 0.5)


@pytest.mark.unit
class TestReveal:
    """The solution reveal animation."""

    def test_start_kept_when_shapes_match(self, start, end):
        """Test that a matching network animates from its own values."""
        assert prepare_reveal_start(start, end) is start

    def test_start_zeroed_when_shapes_differ(self, end):
        """Test that a different architecture animates from zeros."""
        other = build_network([('linear', [(5, [1, 1])])])
        begin = prepare_reveal_start(other, end)
        assert begin.architecture_matches(end)
        assert begin.parameters_equal(end.zero_like())

    def test_final_frame_is_exact_end(self, start, end):
        """Test that the animation lands on the exact solution object."""
        animation = RevealAnimation(start, end, duration=1.5)
        assert animation.frame_at(1.5) is end
        assert animation.frame_at(10.0) is end
        assert animation.is_finished(1.5)
        assert not animation.is_finished(1.0)

    def test_first_frame_is_start(self, start, end):
        """Test that elapsed 0 shows the start values."""
        animation = RevealAnimation(start, end)
        assert animation.frame_at(0.0).parameters_equal(start)

    def test_frames_end_on_solution(self, start, end):
        """Test that iterating frames finishes with the solution."""
        frames = list(RevealAnimation(start, end, duration=0.1).frames(interval=0.02))
        assert frames[-1] is end
        assert 5 <= len(frames) <= 7

    def test_invalid_duration(self, start, end):
        """Test that the duration must be positive."""
        with pytest.raises(ValueError):
            RevealAnimation(start, end, duration=0)
