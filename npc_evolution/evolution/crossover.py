"""
Crossover operator for NPC genomes.

All genomes in a population share one topology, so crossover is plain
uniform weight exchange: each weight of the child comes from either
parent with equal probability. Locked output columns always come from
the first parent.
"""
from typing import Optional

import torch

from ..networks.genome import Genome
from .mutations import GeneLocks


class WeightCrossover:
    """
    Uniform weight-level crossover for genomes with identical topology.

    The child starts as a copy of parent A, so neither parent is
    modified.

    Example:
        crossover = WeightCrossover()
        child = crossover.crossover(parent_a, parent_b, locks)
    """

    def crossover(
        self,
        parent_a: Genome,
        parent_b: Genome,
        locks: Optional[GeneLocks] = None,
        generator: Optional[torch.Generator] = None,
    ) -> Genome:
        """
        Create offspring from two parent genomes.

        Args:
            parent_a: First parent (child's base).
            parent_b: Second parent.
            locks: Active gene locks.
            generator: Optional torch generator.

        Returns:
            New child genome.

        Raises:
            ValueError: If parents have different layer sizes.
        """
        if not self.compatible(parent_a, parent_b):
            raise ValueError("Parents must have identical architectures")

        child = parent_a.copy()
        mask = locks.as_mask() if locks is not None else None
        child.crossover(parent_b, locks=mask, generator=generator)
        return child

    @staticmethod
    def compatible(genome_a: Genome, genome_b: Genome) -> bool:
        """Check if two genomes share a topology."""
        return genome_a.layer_sizes == genome_b.layer_sizes
