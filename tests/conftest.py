"""
conftest.py
~~~~~~~~~~~

Shared fixtures. The default model directory is pointed at a throwaway
location before any nnbuilder module reads it.
"""

import os
import tempfile

import pytest

os.environ.setdefault('NNBUILDER_MODEL_DIR', tempfile.mkdtemp(prefix='nnbuilder-test-models-'))

from nnbuilder.network import build_network, create_initial_network  # noqa: E402


@pytest.fixture
def initial_network():
    """The identity network a fresh workspace starts with."""
    return create_initial_network()


@pytest.fixture
def identity_network():
    """f(x1, x2) = x1 as a single linear output."""
    return build_network([('linear', [(0, [1, 0])])])


@pytest.fixture
def hidden_network():
    """2 -> 3 (relu) -> 2 (tanh) -> 1 (linear), with distinct parameters."""
    return build_network([
        ('relu', [(0.1, [1, -1]), (-0.2, [0.5, 0.5]), (0.3, [-1, 2])]),
        ('tanh', [(0.0, [1, 0, -1]), (0.5, [0.2, 0.3, 0.4])]),
        ('linear', [(-0.25, [1.5, -2])]),
    ])
