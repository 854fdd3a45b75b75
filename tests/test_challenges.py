"""
test_challenges.py
~~~~~~~~~~~~~~~~~~

Tests for the challenge catalogue and its solutions.
"""

import pytest

from nnbuilder.challenges import (
    CHALLENGES,
    DIFFICULTIES,
    get_challenge,
    list_challenges,
    score_network,
    target_grid,
)
from nnbuilder.codec import export_network, import_text
from nnbuilder.config import MATCH_SCORE_THRESHOLD
from nnbuilder.network import create_initial_network, default_input_values

# Solutions that reproduce their target exactly, or within a few percent
MATCHING_SOLUTIONS = [
    'identity',
    'input_sum',
    'tanh_curve',
    'linear_combo',
    'step_edge',
    'absolute_value',
    'absolute_difference',
    'three_axis_fold',
    'max_two_inputs',
    'offcenter_diamond_cap',
]


@pytest.mark.unit
class TestCatalogue:
    """Catalogue metadata and lookup."""

    def test_ids_unique(self):
        """Test that challenge ids are unique."""
        ids = [challenge.id for challenge in CHALLENGES]
        assert len(ids) == len(set(ids))

    def test_difficulties_known(self):
        """Test that every challenge uses a known difficulty."""
        assert all(challenge.difficulty in DIFFICULTIES for challenge in CHALLENGES)

    def test_lookup(self):
        """Test lookup by id and the unknown-id case."""
        assert get_challenge('identity').name == 'Identity'
        assert get_challenge('does_not_exist') is None

    @pytest.mark.parametrize('challenge_id', [None, 5, ['identity'], {'id': 'identity'}])
    def test_lookup_non_string(self, challenge_id):
        """Test that a non-string id is treated as unknown."""
        assert get_challenge(challenge_id) is None

    def test_listing_hides_solutions(self):
        """Test that the listing exposes metadata only."""
        listed = list_challenges()
        assert len(listed) == len(CHALLENGES)
        assert all(set(entry) == {'id', 'name', 'formula', 'difficulty', 'hint'} for entry in listed)

    def test_target_grid_cached(self):
        """Test that a target grid is sampled once per challenge."""
        assert target_grid('input_sum') is target_grid('input_sum')

    def test_target_grid_read_only(self):
        """Test that the shared target grid cannot be modified in place."""
        grid = target_grid('identity')
        with pytest.raises(ValueError):
            grid.values[0] = 123.0

    def test_target_grid_unknown(self):
        """Test that an unknown id has no target grid."""
        with pytest.raises(KeyError):
            target_grid('does_not_exist')


@pytest.mark.unit
class TestSolutions:
    """Hand-authored solution networks."""

    @pytest.mark.parametrize('challenge', CHALLENGES, ids=lambda c: c.id)
    def test_solution_is_valid(self, challenge):
        """Test that every solution satisfies the network invariants."""
        assert challenge.solution().is_valid()

    @pytest.mark.parametrize('challenge', CHALLENGES, ids=lambda c: c.id)
    def test_solution_exports(self, challenge):
        """Test that every solution survives export and re-import unchanged."""
        solution = challenge.solution()
        result = import_text(export_network(solution, default_input_values()).text)
        assert result.ok
        assert result.network.parameters_equal(solution)

    @pytest.mark.parametrize('challenge_id', MATCHING_SOLUTIONS)
    def test_solution_matches_target(self, challenge_id):
        """Test that the solution reaches the match threshold."""
        assert score_network(get_challenge(challenge_id).solution(), challenge_id) >= MATCH_SCORE_THRESHOLD

    def test_identity_solution_exact(self):
        """Test that the identity solution scores a perfect 100."""
        assert score_network(get_challenge('identity').solution(), 'identity') == 100.0

    def test_blank_network_does_not_match(self):
        """Test that the initial network scores near 0 on a linear target."""
        assert score_network(create_initial_network(), 'input_sum') < 1.0

    @pytest.mark.parametrize('challenge', CHALLENGES, ids=lambda c: c.id)
    def test_solution_score_in_range(self, challenge):
        """Test that every solution scores within [0, 100]."""
        assert 0.0 <= score_network(challenge.solution(), challenge.id) <= 100.0
