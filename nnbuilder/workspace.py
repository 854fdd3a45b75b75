"""
workspace.py
~~~~~~~~~~~~

One editing session: the canonical network, the sandbox inputs, the text
drafts indexing them, and the active challenge.

The workspace replaces its values instead of mutating them: every edit
builds a new Network and a new drafts mapping and swaps them in, so anything
holding an earlier network keeps seeing a consistent value.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from nnbuilder import codec, mutations
from nnbuilder.challenges import get_challenge, target_grid
from nnbuilder.config import DEFAULT_LIMITS, NetworkLimits
from nnbuilder.drafts import (
    CommitResult,
    Drafts,
    ParameterAddress,
    build_drafts,
    commit_edit,
    field_validity,
    reconcile,
)
from nnbuilder.errors import InvalidMutationError
from nnbuilder.forward import ForwardTrace, evaluate_full
from nnbuilder.grid import Grid, sample_network_grid, score
from nnbuilder.interpolate import RevealAnimation
from nnbuilder.network import (
    Network,
    create_initial_network,
    default_input_values,
    randomize_parameters,
    set_activation,
)

logger = logging.getLogger(__name__)


@dataclass
class Workspace:
    """Editing session state for one network."""

    network: Network = field(default_factory=create_initial_network)
    input_values: Tuple[float, ...] = field(default_factory=default_input_values)
    drafts: Drafts = field(default_factory=dict)
    challenge_id: Optional[str] = None
    limits: NetworkLimits = DEFAULT_LIMITS

    def __post_init__(self) -> None:
        self.input_values = tuple(float(v) for v in self.input_values)
        self.drafts = reconcile(self.drafts, self.network, self.input_values)

    # ------------------------------------------------------------------
    # State replacement
    # ------------------------------------------------------------------

    def _install(self, network: Network, input_values: Optional[Sequence[float]] = None) -> None:
        self.network = network
        if input_values is not None:
            self.input_values = tuple(input_values)
        self.drafts = reconcile(self.drafts, self.network, self.input_values)

    def _load(self, network: Network, input_values: Optional[Sequence[float]] = None) -> None:
        """Replace the network wholesale; drafts are rebuilt from scratch."""
        self.network = network
        if input_values is not None:
            self.input_values = tuple(input_values)
        self.drafts = build_drafts(self.network, self.input_values)

    # ------------------------------------------------------------------
    # Parameter edits
    # ------------------------------------------------------------------

    def edit(self, address: ParameterAddress, text: str) -> CommitResult:
        """
        Type ``text`` into one field.

        The text is always kept. Numbers are applied only once every field
        parses; until then the canonical network is unchanged.
        """
        result = commit_edit(self.drafts, address, text, self.network, self.input_values)
        self.drafts = result.drafts
        if result.ok:
            self.network = result.network
            self.input_values = result.input_values
            self.drafts = reconcile(self.drafts, self.network, self.input_values)
        return result

    def field_validity(self) -> Dict[ParameterAddress, bool]:
        return field_validity(self.drafts)

    @property
    def is_paused(self) -> bool:
        """True while at least one draft does not parse."""
        return not all(self.field_validity().values())

    # ------------------------------------------------------------------
    # Structural edits
    # ------------------------------------------------------------------

    def _mutate(self, operation, *args) -> mutations.MutationResult:
        result = mutations.apply_mutation(self.network, operation, *args, limits=self.limits)
        if result.ok:
            self._install(result.network)
        return result

    def add_hidden_layer(self) -> mutations.MutationResult:
        return self._mutate(mutations.add_hidden_layer)

    def add_neuron(self, layer_idx: int) -> mutations.MutationResult:
        return self._mutate(mutations.add_neuron, layer_idx)

    def remove_layer(self, layer_idx: int) -> mutations.MutationResult:
        return self._mutate(mutations.remove_layer, layer_idx)

    def remove_neuron(self, layer_idx: int, neuron_idx: int) -> mutations.MutationResult:
        return self._mutate(mutations.remove_neuron, layer_idx, neuron_idx)

    def set_activation(self, layer_idx: int, activation_id: str) -> mutations.MutationResult:
        return self._mutate(set_activation, layer_idx, activation_id)

    def randomize(self, rng: Optional[np.random.Generator] = None) -> None:
        self._load(randomize_parameters(self.network, rng))
        logger.info("Randomized all parameters")

    def reset(self) -> None:
        """Back to the identity network and default inputs."""
        self._load(create_initial_network(), default_input_values())
        logger.info("Workspace reset")

    # ------------------------------------------------------------------
    # Challenges
    # ------------------------------------------------------------------

    def load_challenge(self, challenge_id: Optional[str]) -> None:
        """
        Enter challenge mode (or leave it with None).

        Raises:
            InvalidMutationError: If the challenge does not exist
        """
        if challenge_id is not None and get_challenge(challenge_id) is None:
            raise InvalidMutationError(f"Unknown challenge: {challenge_id!r}")
        self.challenge_id = challenge_id
        logger.info(f"Active challenge: {challenge_id}")

    def begin_reveal(self) -> RevealAnimation:
        """
        Animation from the current network to the challenge solution.

        Raises:
            InvalidMutationError: If no challenge is active
        """
        challenge = get_challenge(self.challenge_id) if self.challenge_id else None
        if challenge is None:
            raise InvalidMutationError("No active challenge to reveal.")
        return RevealAnimation(self.network, challenge.solution())

    def apply_reveal_frame(self, network: Network) -> None:
        self._load(network)

    # ------------------------------------------------------------------
    # Import / export
    # ------------------------------------------------------------------

    def import_text(self, text) -> codec.ImportResult:
        """Replace the network from JSON text; rejected imports change nothing."""
        result = codec.import_text(text, self.limits)
        if result.ok:
            self._load(result.network, result.input_values)
            logger.info(f"Imported network {self.network.layer_sizes()}")
        return result

    def import_payload(self, payload) -> codec.ImportResult:
        result = codec.parse_payload(payload, self.limits)
        if result.ok:
            self._load(result.network, result.input_values)
            logger.info(f"Imported network {self.network.layer_sizes()}")
        return result

    def export(self) -> codec.ExportResult:
        return codec.export_network(self.network, self.input_values, limits=self.limits)

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def evaluate(self) -> ForwardTrace:
        return evaluate_full(self.network, self.input_values)

    def output_grid(self) -> Grid:
        return sample_network_grid(self.network)

    def target_grid(self) -> Optional[Grid]:
        return target_grid(self.challenge_id) if self.challenge_id else None

    def score(self) -> Optional[float]:
        """Score against the active challenge, or None outside challenge mode."""
        target = self.target_grid()
        if target is None:
            return None
        return score(self.output_grid(), target)
