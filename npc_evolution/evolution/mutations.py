"""
Weight mutation and gene locking for NPC genomes.

Topology is fixed, so mutation only perturbs weights. Gene locks pin
individual action outputs to a captured elite reference:

1. GeneLocks: which action outputs are frozen
2. EliteReference: immutable snapshot of the best genome's output columns
3. WeightMutator: sparse uniform perturbation that skips locked columns

A typical generation runs:
    reference = EliteReference.capture(best_genome)
    for genome in next_generation:
        mutator.mutate(genome, locks, generator)
        reference.apply(genome, locks)
"""
import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Tuple

import torch

from ..networks.architectures import ACTION_NAMES
from ..networks.genome import Genome

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeneLocks:
    """Per-action lock flags, in output-neuron order."""
    movement: bool = False
    turn_left: bool = False
    turn_right: bool = False
    jump: bool = False

    def as_mask(self) -> Tuple[bool, ...]:
        return tuple(getattr(self, name) for name in ACTION_NAMES)

    @property
    def any_locked(self) -> bool:
        return any(self.as_mask())

    def locked_names(self) -> List[str]:
        return [name for name in ACTION_NAMES if getattr(self, name)]

    def to_dict(self) -> Dict[str, bool]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GeneLocks':
        return cls(**{name: bool(data.get(name, False)) for name in ACTION_NAMES})


@dataclass(frozen=True)
class EliteReference:
    """
    Frozen copy of one genome's final-layer weight columns.

    columns[i][k] is the weight from penultimate neuron k to output i.
    Captured once per selection and passed explicitly to mutation, so
    later changes to the source genome never leak into it.
    """
    columns: Tuple[Tuple[float, ...], ...]

    @classmethod
    def capture(cls, genome: Genome) -> 'EliteReference':
        """
        Snapshot the output columns of a genome.

        Args:
            genome: Genome to copy from (usually the best agent's).

        Returns:
            EliteReference with one column per output neuron.
        """
        columns = tuple(
            tuple(genome.output_column(i).tolist())
            for i in range(genome.output_size)
        )
        logger.debug(f"Captured elite reference: {len(columns)} columns of {genome.layer_sizes[-2]} weights")
        return cls(columns=columns)

    def apply(self, genome: Genome, locks: Optional[GeneLocks]) -> bool:
        """
        Force the locked output columns of `genome` back to this reference.

        Returns:
            True if anything was locked (and therefore applied).
        """
        if locks is None or not locks.any_locked:
            return False

        genome.apply_locked_weights(locks.as_mask(), self.columns)
        return True


class WeightMutator:
    """
    Sparse uniform weight perturbation.

    Each weight outside a locked output column is shifted, with
    probability `mutation_rate`, by a uniform draw from [-0.1, 0.1].

    Attributes:
        mutation_rate: Per-weight mutation probability.

    Example:
        mutator = WeightMutator(mutation_rate=0.01)
        mutator.mutate(genome, locks=GeneLocks(jump=True))
    """

    def __init__(self, mutation_rate: float = 0.01):
        """
        Initialize the weight mutator.

        Args:
            mutation_rate: Probability of mutating each weight (0-1).
                          0.01 = roughly one weight in a hundred
        """
        if not 0.0 <= mutation_rate <= 1.0:
            raise ValueError(f"mutation_rate must be in [0, 1], got {mutation_rate}")
        self.mutation_rate = mutation_rate

    def mutate(
        self,
        genome: Genome,
        locks: Optional[GeneLocks] = None,
        generator: Optional[torch.Generator] = None,
        rate: Optional[float] = None,
    ) -> Genome:
        """
        Mutate a genome in place.

        Args:
            genome: Genome to perturb.
            locks: Active gene locks.
            generator: Optional torch generator for reproducibility.
            rate: Override for this call (e.g. seeding extra slots
                  from a snapshot at twice the usual rate).

        Returns:
            The same genome, for chaining.
        """
        rate = self.mutation_rate if rate is None else min(rate, 1.0)
        mask = locks.as_mask() if locks is not None else None

        genome.mutate(rate, locks=mask, generator=generator)
        return genome
