"""
Fixed-topology feedforward genome for NPC policies.

A genome is both the agent's policy network and the unit of heredity:
an ordered list of layer sizes plus one dense weight matrix per pair of
consecutive layers. The genetic operators (mutation, crossover and the
locked-weight override) work directly on those matrices.

Weight layout:
    weights[l] has shape (layer_sizes[l], layer_sizes[l + 1]) and
    weights[l][k][j] connects neuron k of layer l to neuron j of layer l + 1.

Gene locks only ever touch the last weight layer. A lock mask is indexed
by output neuron, so locking output i freezes column i of weights[-1].

Example:
    genome = Genome((8, 8, 6, 4))
    actions = genome.forward(sensors)

    child = genome.copy()
    child.crossover(other, locks=(False, False, False, True))
    child.mutate(0.05, locks=(False, False, False, True))
"""
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import torch

logger = logging.getLogger(__name__)

# Added to every connection feeding output 0 (forward thrust) so that
# fresh networks start out moving instead of idling in place.
FORWARD_BIAS = 0.5

# Half-width of the uniform perturbation applied by mutate().
MUTATION_STRENGTH = 0.1

CROSSOVER_PROBABILITY = 0.5


class ShapeMismatchError(ValueError):
    """Raised when a weight tensor does not match a genome's topology."""


class Genome:
    """
    Feedforward tanh network with a fixed topology.

    Attributes:
        layer_sizes: Neurons per layer (input, hidden..., output).
    """

    def __init__(
        self,
        layer_sizes: Sequence[int],
        weights: Optional[Sequence[Any]] = None,
        generator: Optional[torch.Generator] = None,
    ):
        """
        Create a genome.

        Args:
            layer_sizes: Neurons per layer, at least two entries.
            weights: Optional initial weights (one matrix per layer pair).
                     If None, weights are drawn uniformly from [-1, 1].
            generator: Optional torch generator for reproducible init.

        Raises:
            ValueError: If layer_sizes is invalid.
            ShapeMismatchError: If weights do not match layer_sizes.
        """
        self.layer_sizes: Tuple[int, ...] = self._validate_layer_sizes(layer_sizes)

        if weights is None:
            self._weights = self._init_weights(generator)
        else:
            self._weights = self._coerce_weights(weights)

    @staticmethod
    def _validate_layer_sizes(layer_sizes: Sequence[int]) -> Tuple[int, ...]:
        sizes = tuple(int(size) for size in layer_sizes)
        if len(sizes) < 2:
            raise ValueError("A genome needs at least an input and an output layer")
        if any(size <= 0 for size in sizes):
            raise ValueError(f"Layer sizes must be positive, got {sizes}")
        return sizes

    def _init_weights(self, generator: Optional[torch.Generator]) -> List[torch.Tensor]:
        weights = []
        for rows, cols in self.weight_shapes:
            weights.append(torch.rand(rows, cols, generator=generator) * 2.0 - 1.0)

        weights[-1][:, 0] += FORWARD_BIAS
        return weights

    def _coerce_weights(self, weights: Sequence[Any]) -> List[torch.Tensor]:
        """
        Validate a full weight set against the topology and return copies.

        Nothing is assigned here, so a failure leaves the genome untouched.
        """
        if weights is None:
            raise ShapeMismatchError("Weight set is None")

        weights = list(weights)
        expected = self.weight_shapes

        if len(weights) != len(expected):
            raise ShapeMismatchError(
                f"Expected {len(expected)} weight layers, got {len(weights)}"
            )

        coerced = []
        for i, (layer, shape) in enumerate(zip(weights, expected)):
            if layer is None:
                raise ShapeMismatchError(f"Weight layer {i} is None")

            try:
                tensor = torch.as_tensor(layer, dtype=torch.float32)
            except (TypeError, ValueError, RuntimeError) as e:
                raise ShapeMismatchError(
                    f"Weight layer {i} is not a rectangular matrix: {e}"
                ) from e

            if tuple(tensor.shape) != shape:
                raise ShapeMismatchError(
                    f"Weight layer {i} has shape {tuple(tensor.shape)}, expected {shape}"
                )
            if not torch.isfinite(tensor).all():
                raise ValueError(f"Weight layer {i} contains non-finite values")

            coerced.append(tensor.clone())

        return coerced

    # ------------------------------------------------------------------
    # Topology
    # ------------------------------------------------------------------

    @property
    def weight_shapes(self) -> List[Tuple[int, int]]:
        """Shape of each weight matrix, derived from layer_sizes."""
        return [
            (self.layer_sizes[i], self.layer_sizes[i + 1])
            for i in range(len(self.layer_sizes) - 1)
        ]

    @property
    def input_size(self) -> int:
        return self.layer_sizes[0]

    @property
    def output_size(self) -> int:
        return self.layer_sizes[-1]

    @property
    def parameter_count(self) -> int:
        return sum(rows * cols for rows, cols in self.weight_shapes)

    # ------------------------------------------------------------------
    # Forward pass
    # ------------------------------------------------------------------

    def forward(self, sensors: Any) -> torch.Tensor:
        """
        Compute the action vector for a sensor vector.

        Each layer is tanh(previous @ W). A short sensor vector is padded
        with zeros and a long one truncated; both are logged.

        Args:
            sensors: Sensor values (list, numpy array or tensor).

        Returns:
            1-D tensor of length output_size.
        """
        x = self.prepare_input(sensors)

        with torch.no_grad():
            for w in self._weights:
                x = torch.tanh(x @ w)

        return x

    __call__ = forward

    def prepare_input(self, sensors: Any) -> torch.Tensor:
        """Coerce a sensor vector to a 1-D float tensor of input_size."""
        x = torch.as_tensor(sensors, dtype=torch.float32).flatten()
        size = x.numel()

        if size < self.input_size:
            logger.warning(
                f"Sensor vector has {size} values, expected {self.input_size}; padding with zeros"
            )
            x = torch.cat([x, torch.zeros(self.input_size - size)])
        elif size > self.input_size:
            logger.warning(
                f"Sensor vector has {size} values, expected {self.input_size}; truncating"
            )
            x = x[:self.input_size]

        return x

    # ------------------------------------------------------------------
    # Genetic operators
    # ------------------------------------------------------------------

    def _locked_columns(self, locks: Optional[Sequence[bool]]) -> torch.Tensor:
        """Boolean mask over output neurons, True where the column is locked."""
        mask = torch.zeros(self.output_size, dtype=torch.bool)
        if locks is not None:
            for output, locked in enumerate(locks[:self.output_size]):
                mask[output] = bool(locked)
        return mask

    def mutate(
        self,
        rate: float,
        locks: Optional[Sequence[bool]] = None,
        generator: Optional[torch.Generator] = None,
    ) -> None:
        """
        Perturb weights in place.

        Every weight outside a locked output column is, with probability
        `rate`, shifted by a uniform draw from [-0.1, 0.1].

        Args:
            rate: Per-weight mutation probability (0-1).
            locks: Optional per-output lock flags.
            generator: Optional torch generator.
        """
        if not 0.0 <= rate <= 1.0:
            raise ValueError(f"Mutation rate must be in [0, 1], got {rate}")

        last = len(self._weights) - 1

        with torch.no_grad():
            for i, w in enumerate(self._weights):
                mask = torch.rand(w.shape, generator=generator) < rate
                noise = (torch.rand(w.shape, generator=generator) * 2.0 - 1.0) * MUTATION_STRENGTH

                if i == last:
                    mask &= ~self._locked_columns(locks)

                w.add_(noise * mask.to(w.dtype))

    def crossover(
        self,
        other: 'Genome',
        locks: Optional[Sequence[bool]] = None,
        generator: Optional[torch.Generator] = None,
    ) -> None:
        """
        Uniform crossover with another genome, in place.

        Every weight outside a locked output column is replaced by the
        other genome's weight with probability 0.5. Call this on a copy
        of a parent, never on the parent itself.

        Args:
            other: Second parent. Must share layer_sizes.
            locks: Optional per-output lock flags.
            generator: Optional torch generator.

        Raises:
            ValueError: If the topologies differ.
        """
        if other.layer_sizes != self.layer_sizes:
            raise ValueError(
                f"Parents must have identical layer sizes: {self.layer_sizes} vs {other.layer_sizes}"
            )

        last = len(self._weights) - 1

        with torch.no_grad():
            for i, (w, w_other) in enumerate(zip(self._weights, other._weights)):
                take = torch.rand(w.shape, generator=generator) < CROSSOVER_PROBABILITY

                if i == last:
                    take &= ~self._locked_columns(locks)

                w.copy_(torch.where(take, w_other, w))

    def apply_locked_weights(
        self,
        locks: Optional[Sequence[bool]],
        locked_columns: Optional[Sequence[Optional[Sequence[float]]]],
    ) -> None:
        """
        Overwrite locked output columns with reference values.

        For each locked output i, every incoming weight of that output
        neuron is replaced by locked_columns[i][k]. Missing columns, and
        columns whose length is not the size of the last hidden layer, are
        skipped.

        Args:
            locks: Per-output lock flags.
            locked_columns: One reference column per output.
        """
        if locks is None or locked_columns is None:
            return

        last = self._weights[-1]

        with torch.no_grad():
            for output, locked in enumerate(locks[:self.output_size]):
                if not locked or output >= len(locked_columns):
                    continue

                column = locked_columns[output]
                if column is None:
                    continue

                values = torch.as_tensor(column, dtype=torch.float32).flatten()
                if values.numel() != last.shape[0]:
                    logger.warning(
                        f"Skipping locked column for output {output}: "
                        f"expected {last.shape[0]} weights, got {values.numel()}"
                    )
                    continue
                last[:, output] = values

    def copy(self) -> 'Genome':
        """Deep copy with the same topology and weights."""
        return Genome(self.layer_sizes, weights=self._weights)

    # ------------------------------------------------------------------
    # Accessors and serialization
    # ------------------------------------------------------------------

    def get_weights(self) -> List[torch.Tensor]:
        """Return copies of all weight matrices."""
        return [w.clone() for w in self._weights]

    def set_weights(self, weights: Sequence[Any]) -> None:
        """
        Replace all weights after validating the whole set.

        Raises:
            ShapeMismatchError: If any layer has the wrong shape. The
                genome keeps its previous weights.
        """
        try:
            self._weights = self._coerce_weights(weights)
        except ValueError as e:
            logger.error(f"Rejected weights for genome {self.layer_sizes}: {e}")
            raise

    def output_column(self, output: int) -> torch.Tensor:
        """Incoming weights of one output neuron (a column of the last layer)."""
        return self._weights[-1][:, output].clone()

    def flatten(self) -> torch.Tensor:
        """All weights as a single 1-D tensor, layer by layer, row-major."""
        return torch.cat([w.flatten() for w in self._weights])

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to {'layers': [...], 'weights': [flat floats]}."""
        return {
            'layers': list(self.layer_sizes),
            'weights': self.flatten().tolist(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Genome':
        """
        Rebuild a genome from to_dict() output.

        Raises:
            ShapeMismatchError: If the flat weight count does not match
                the layer sizes.
        """
        layers = cls._validate_layer_sizes(data['layers'])
        flat = torch.as_tensor(data['weights'], dtype=torch.float32).flatten()

        shapes = list(zip(layers[:-1], layers[1:]))
        expected = sum(rows * cols for rows, cols in shapes)
        if flat.numel() != expected:
            raise ShapeMismatchError(
                f"Expected {expected} weights for layers {layers}, got {flat.numel()}"
            )

        weights = []
        offset = 0
        for rows, cols in shapes:
            weights.append(flat[offset:offset + rows * cols].reshape(rows, cols))
            offset += rows * cols

        return cls(layers, weights=weights)

    def __repr__(self) -> str:
        return f"Genome(layer_sizes={self.layer_sizes})"
