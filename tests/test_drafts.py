"""
test_drafts.py
~~~~~~~~~~~~~~

Unit tests for text drafts and edit reconciliation.
"""

import math

import pytest

from nnbuilder.drafts import (
    ParameterAddress,
    build_drafts,
    commit_edit,
    field_validity,
    format_number,
    parse_number,
    parse_number_strict,
    reconcile,
)
from nnbuilder.errors import ParseError
from nnbuilder.mutations import add_hidden_layer

INPUTS = (0.5, 0.5)


@pytest.mark.unit
class TestNumberText:
    """Parsing and formatting of single values."""

    @pytest.mark.parametrize('text, expected', [
        ('1', 1.0),
        ('-2.5', -2.5),
        ('.5', 0.5),
        ('+4.', 4.0),
        ('1e3', 1000.0),
        ('2.5E-1', 0.25),
        ('  3  ', 3.0),
    ])
    def test_accepts_real_numbers(self, text, expected):
        """Test that well-formed real numbers parse."""
        assert parse_number(text) == expected

    @pytest.mark.parametrize('text', ['', ' ', '-', '.', '1e', '1e+', 'abc', '1,5', 'nan', 'inf', '0x10', '1e999', '١'])
    def test_rejects_partial_or_malformed(self, text):
        """Test that partial, malformed or non-finite text does not parse."""
        assert parse_number(text) is None

    def test_parse_strict_raises(self):
        """Test that strict parsing raises ParseError."""
        with pytest.raises(ParseError):
            parse_number_strict('1e')

    @pytest.mark.parametrize('value, text', [
        (3.0, '3'),
        (-0.0, '0'),
        (0.1, '0.1'),
        (-1.25, '-1.25'),
        (math.nan, '0'),
        (math.inf, '0'),
    ])
    def test_format_number(self, value, text):
        """Test canonical text for numbers."""
        assert format_number(value) == text

    def test_format_round_trips(self):
        """Test that canonical text parses back to the same float."""
        for value in (1 / 3, 1e-7, 123456.789, -2.0 ** 60):
            assert parse_number(format_number(value)) == value


@pytest.mark.unit
class TestAddresses:
    """String keys of parameter addresses."""

    def test_keys(self):
        """Test the compact key for each kind."""
        assert ParameterAddress.input_slot(1).key == 'i:1'
        assert ParameterAddress.bias(2, 0).key == 'b:2:0'
        assert ParameterAddress.weight_of(1, 0, 1).key == 'w:1:0:1'

    @pytest.mark.parametrize('key', ['i:0', 'b:3:2', 'w:1:0:1'])
    def test_from_key_inverts_key(self, key):
        """Test that parsing a key gives back the same address."""
        assert ParameterAddress.from_key(key).key == key

    @pytest.mark.parametrize('key', ['', 'x:1', 'b:1', 'w:1:a:2', 'i:0:1'])
    def test_malformed_keys(self, key):
        """Test that malformed keys raise ValueError."""
        with pytest.raises(ValueError):
            ParameterAddress.from_key(key)


@pytest.mark.unit
class TestReconcile:
    """Keeping drafts in sync with the canonical network."""

    def test_build_drafts_covers_every_parameter(self, hidden_network):
        """Test one draft per input, bias and weight."""
        drafts = build_drafts(hidden_network, INPUTS)
        biases = sum(layer.size for layer in hidden_network.layers[1:])
        assert len(drafts) == 2 + biases + hidden_network.count_weights()
        assert drafts[ParameterAddress.bias(3, 0)] == '-0.25'

    def test_idempotent(self, hidden_network):
        """Test that reconciling twice returns the same mapping object."""
        once = reconcile({}, hidden_network, INPUTS)
        assert reconcile(once, hidden_network, INPUTS) is once

    def test_keeps_equivalent_text(self, identity_network):
        """Test that text equal in value to the canonical number survives."""
        address = ParameterAddress.weight_of(1, 0, 0)
        drafts = build_drafts(identity_network, INPUTS)
        drafts[address] = '1.00'
        assert reconcile(drafts, identity_network, INPUTS)[address] == '1.00'

    def test_drops_stale_addresses(self, initial_network):
        """Test that a structural change removes and adds drafts as needed."""
        drafts = build_drafts(initial_network, INPUTS)
        grown = add_hidden_layer(initial_network)
        updated = reconcile(drafts, grown, INPUTS)
        assert set(updated) == set(build_drafts(grown, INPUTS))
        assert ParameterAddress.weight_of(2, 0, 2) in updated


@pytest.mark.unit
class TestCommitEdit:
    """Applying typed text to the canonical network."""

    def test_valid_edit_applies(self, initial_network):
        """Test that a parsable edit updates the network."""
        address = ParameterAddress.weight_of(1, 0, 0)
        drafts = build_drafts(initial_network, INPUTS)
        result = commit_edit(drafts, address, '1.5', initial_network, INPUTS)
        assert result.ok
        assert result.network.output_layer.neurons[0].weights == (1.5, 0.0)
        assert result.drafts[address] == '1.5'

    def test_input_edit_applies(self, initial_network):
        """Test that editing an input slot updates the input values."""
        drafts = build_drafts(initial_network, INPUTS)
        result = commit_edit(drafts, ParameterAddress.input_slot(0), '3', initial_network, INPUTS)
        assert result.ok
        assert result.input_values == (3.0, 0.5)

    def test_invalid_edit_pauses(self, initial_network):
        """Test that unparsable text is kept while the network stays unchanged."""
        address = ParameterAddress.bias(1, 0)
        drafts = build_drafts(initial_network, INPUTS)
        result = commit_edit(drafts, address, '-', initial_network, INPUTS)
        assert not result.ok
        assert result.network is initial_network
        assert result.drafts[address] == '-'
        assert result.invalid == (address,)
        assert field_validity(result.drafts)[address] is False

    def test_all_fields_must_parse(self, initial_network):
        """Test that fixing one of two bad fields still leaves the edit paused."""
        bias = ParameterAddress.bias(1, 0)
        weight = ParameterAddress.weight_of(1, 0, 1)
        drafts = build_drafts(initial_network, INPUTS)

        drafts = commit_edit(drafts, bias, '1e', initial_network, INPUTS).drafts
        drafts = commit_edit(drafts, weight, '.', initial_network, INPUTS).drafts
        result = commit_edit(drafts, bias, '2', initial_network, INPUTS)
        assert not result.ok
        assert result.invalid == (weight,)

        result = commit_edit(result.drafts, weight, '-4', initial_network, INPUTS)
        assert result.ok
        assert result.network.output_layer.neurons[0].bias == 2.0
        assert result.network.output_layer.neurons[0].weights == (0.0, -4.0)

    def test_unknown_address(self, initial_network):
        """Test that editing a parameter that does not exist raises KeyError."""
        drafts = build_drafts(initial_network, INPUTS)
        with pytest.raises(KeyError):
            commit_edit(drafts, ParameterAddress.weight_of(1, 0, 5), '1', initial_network, INPUTS)
