"""
Selection strategies for the NPC generation cycle.

Selection works on Candidates: frozen (index, genome, fitness) records
taken from the population at the start of the selecting phase. Parents
are always read from this snapshot, never from agents whose genomes
are already being replaced.

- Tournament: sample a few candidates with replacement, fittest wins
- Elite: stable top-k by fitness, copied into the next generation
"""
import logging
import math
import random
from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..networks.genome import Genome

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Candidate:
    """An agent's genome and fitness as seen by selection."""
    index: int
    genome: Optional[Genome]
    fitness: float

    @property
    def is_valid(self) -> bool:
        return self.genome is not None and math.isfinite(self.fitness)


class TournamentSelection:
    """
    Tournament selection strategy.

    Picks min(tournament_size, n) contenders uniformly at random *with
    replacement* and keeps the one with the highest fitness. The first
    contender wins ties.

    Example:
        selection = TournamentSelection(tournament_size=5)
        parent = selection.select(candidates, rng)
    """

    def __init__(self, tournament_size: int = 5):
        """
        Initialize tournament selection.

        Args:
            tournament_size: Contenders per tournament.
        """
        if tournament_size < 1:
            raise ValueError(f"tournament_size must be >= 1, got {tournament_size}")
        self.tournament_size = tournament_size

    def select(
        self,
        candidates: Sequence[Candidate],
        rng: Optional[random.Random] = None,
    ) -> Optional[Candidate]:
        """
        Run one tournament.

        Contenders without a genome or with a non-finite fitness never
        win. If no contender is valid, falls back to the first
        candidate that has a genome and logs a warning.

        Args:
            candidates: Fitness snapshot of the current population.
            rng: Random source. Defaults to the module-level generator.

        Returns:
            The winning candidate, or None if candidates is empty.
        """
        if not candidates:
            logger.warning("Tournament selection called on an empty population")
            return None

        rng = rng or random
        size = min(self.tournament_size, len(candidates))

        best = None
        for _ in range(size):
            contender = candidates[rng.randrange(len(candidates))]
            if not contender.is_valid:
                continue
            if best is None or contender.fitness > best.fitness:
                best = contender

        if best is None:
            best = next((c for c in candidates if c.genome is not None), None)
            logger.warning(
                f"Tournament found no valid contender among {size} draws; "
                f"falling back to candidate {best.index if best else None}"
            )

        return best

    def select_pair(
        self,
        candidates: Sequence[Candidate],
        rng: Optional[random.Random] = None,
    ) -> tuple:
        """Run two independent tournaments and return (parent_a, parent_b)."""
        return self.select(candidates, rng), self.select(candidates, rng)


class EliteSelection:
    """
    Elitism: carry the best genomes into the next generation.

    Ordering is a stable descending sort, so equal fitness keeps the
    population order.
    """

    def __init__(self, elite_count: int = 1):
        """
        Initialize elite selection.

        Args:
            elite_count: Number of elite candidates to preserve.
        """
        self.elite_count = elite_count

    def get_elite(self, candidates: Sequence[Candidate]) -> List[Candidate]:
        """
        Get the elite candidates.

        Args:
            candidates: Fitness snapshot of the population.

        Returns:
            Up to elite_count candidates, best first.
        """
        if not candidates:
            return []

        ranked = sorted(
            (c for c in candidates if c.genome is not None),
            key=lambda c: c.fitness if math.isfinite(c.fitness) else -math.inf,
            reverse=True,
        )
        return ranked[:self.elite_count]
