"""
Population management for NPC neuroevolution.

The population owns a fixed set of agents and drives the generation
state machine:

    RUNNING -> ENDED -> EVALUATING -> SELECTING -> MUTATING -> RESETTING -> RUNNING

A generation ends when every agent is dead or the generation timer
reaches the time limit. force_next_generation() runs the same cycle on
demand. Agents are never recreated: each cycle assigns the new genomes
to the existing agents and resets them.

Reproduction:
1. Elites (top elite_count by fitness) are copied into the next generation
2. The best genome's output columns are captured as the elite reference
3. Remaining slots are crossover children of two tournament winners
4. Every genome is mutated, elites included
5. Locked output columns are forced back to the elite reference
"""
import logging
import random
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import torch

from ..agents.agent import Agent
from ..evaluation.checkpoints import CheckpointTracker
from ..evaluation.fitness import RewardConfig
from ..networks.architectures import npc_architecture
from ..networks.genome import Genome
from .crossover import WeightCrossover
from .mutations import EliteReference, GeneLocks, WeightMutator
from .selection import Candidate, EliteSelection, TournamentSelection

logger = logging.getLogger(__name__)

MIN_ELITE_COUNT = 1
MAX_ELITE_COUNT = 10


class GenerationPhase(Enum):
    RUNNING = 'running'
    ENDED = 'ended'
    EVALUATING = 'evaluating'
    SELECTING = 'selecting'
    MUTATING = 'mutating'
    RESETTING = 'resetting'


@dataclass
class EvolutionConfig:
    """Configuration for an evolution run."""

    # Population
    population_size: int = 50
    elite_count: int = 1
    layer_sizes: Tuple[int, ...] = field(default_factory=npc_architecture)

    # Selection
    tournament_size: int = 5

    # Mutation
    mutation_rate: float = 0.01
    gene_locks: GeneLocks = field(default_factory=GeneLocks)

    # Generation limits
    generation_time_limit: float = 30.0
    max_collisions: int = 1
    invincibility_time: float = 3.0

    # Reward shaping (max_collisions / invincibility_time above take precedence)
    rewards: RewardConfig = field(default_factory=RewardConfig)

    # Reproducibility
    seed: Optional[int] = None

    # Persistence
    autosave_interval: int = 5
    snapshot_top_n: int = 10

    def __post_init__(self):
        self.layer_sizes = tuple(self.layer_sizes)

        if self.population_size < 1:
            raise ValueError(f"population_size must be >= 1, got {self.population_size}")
        if not MIN_ELITE_COUNT <= self.elite_count <= MAX_ELITE_COUNT:
            raise ValueError(
                f"elite_count must be in [{MIN_ELITE_COUNT}, {MAX_ELITE_COUNT}], got {self.elite_count}"
            )
        if not 0.0 <= self.mutation_rate <= 1.0:
            raise ValueError(f"mutation_rate must be in [0, 1], got {self.mutation_rate}")
        if self.tournament_size < 1:
            raise ValueError(f"tournament_size must be >= 1, got {self.tournament_size}")
        if self.generation_time_limit <= 0:
            raise ValueError(f"generation_time_limit must be positive, got {self.generation_time_limit}")
        if self.max_collisions < 1:
            raise ValueError(f"max_collisions must be >= 1, got {self.max_collisions}")
        if len(self.layer_sizes) < 2 or any(size <= 0 for size in self.layer_sizes):
            raise ValueError(f"Invalid layer sizes: {self.layer_sizes}")
        if self.autosave_interval < 0:
            raise ValueError(f"autosave_interval must be >= 0, got {self.autosave_interval}")
        if self.snapshot_top_n < 1:
            raise ValueError(f"snapshot_top_n must be >= 1, got {self.snapshot_top_n}")

    def reward_config(self) -> RewardConfig:
        """Per-agent reward constants with the population-level limits applied."""
        data = self.rewards.to_dict()
        data['max_collisions'] = self.max_collisions
        data['invincibility_time'] = self.invincibility_time
        return RewardConfig.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['layer_sizes'] = list(self.layer_sizes)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EvolutionConfig':
        data = dict(data)
        if 'gene_locks' in data:
            data['gene_locks'] = GeneLocks.from_dict(data['gene_locks'])
        if 'rewards' in data:
            data['rewards'] = RewardConfig.from_dict(data['rewards'])
        return cls(**data)


@dataclass
class GenerationStats:
    """Statistics for a generation, taken when it ends."""
    generation: int = 0
    best_fitness: float = 0.0
    avg_fitness: float = 0.0
    min_fitness: float = 0.0
    fitness_std: float = 0.0
    population_size: int = 0
    alive_count: int = 0
    avg_distance: float = 0.0
    avg_time_alive: float = 0.0

    @property
    def fitness_range(self) -> float:
        return self.best_fitness - self.min_fitness

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SelectionResult:
    """
    Output of the selecting phase.

    Attributes:
        fitness: Fitness of every agent, frozen when selection started.
        genomes: Next generation's genomes, elites first.
        elite_indices: Agent indices of the elites, best first.
        elite_reference: Output columns of the best genome.
        parent_pairs: Agent indices of both parents for each crossover child.
    """
    fitness: Tuple[float, ...] = ()
    genomes: Tuple[Genome, ...] = ()
    elite_indices: Tuple[int, ...] = ()
    elite_reference: Optional[EliteReference] = None
    parent_pairs: Tuple[Tuple[int, int], ...] = ()


GenerationCallback = Callable[['Population', GenerationStats], None]


class Population:
    """
    Manages a population of NPC agents and their evolution.

    Example:
        config = EvolutionConfig(population_size=20, seed=42)
        population = Population(config, checkpoint_tracker=tracker)

        while running:
            actions = population.think(sensor_batch)
            ...  # engine moves bodies, reports poses
            for agent, (position, heading) in zip(population.agents, poses):
                agent.update(position, heading, dt)
            stats = population.update(dt)
            if stats:
                print(f"Gen {stats.generation}: best={stats.best_fitness:.1f}")
    """

    def __init__(
        self,
        config: Optional[EvolutionConfig] = None,
        checkpoint_tracker: Optional[CheckpointTracker] = None,
        start_position: Sequence[float] = (0.0, 0.0, 0.0),
        start_heading: float = 0.0,
    ):
        """
        Create the population and its agents.

        Args:
            config: Evolution configuration.
            checkpoint_tracker: Active level's checkpoints, if any.
            start_position: Spawn position shared by all agents.
            start_heading: Spawn heading in degrees.
        """
        self.config = config or EvolutionConfig()
        self.checkpoint_tracker = checkpoint_tracker
        self.start_position = tuple(start_position)
        self.start_heading = start_heading

        # Random sources
        self.rng = random.Random(self.config.seed)
        self.generator = torch.Generator()
        if self.config.seed is not None:
            self.generator.manual_seed(self.config.seed)
        else:
            self.generator.seed()

        # Evolution operators
        self.mutator = WeightMutator(mutation_rate=self.config.mutation_rate)
        self.crossover = WeightCrossover()
        self.selection = TournamentSelection(tournament_size=self.config.tournament_size)
        self.elite_selection = EliteSelection(elite_count=self.config.elite_count)

        # State
        self.agents: List[Agent] = []
        self.generation = 1
        self.timer = 0.0
        self.paused = False
        self.phase = GenerationPhase.RUNNING
        self.elite_reference: Optional[EliteReference] = None

        # Statistics
        self.stats_history: List[GenerationStats] = []
        self._callbacks: List[GenerationCallback] = []

        self.initialize()

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Create population_size agents with random genomes."""
        reward_config = self.config.reward_config()

        self.agents = [
            Agent(
                agent_id=f"npc_{i:03d}",
                genome=Genome(self.config.layer_sizes, generator=self.generator),
                reward_config=reward_config,
                checkpoint_tracker=self.checkpoint_tracker,
                start_position=self.start_position,
                start_heading=self.start_heading,
            )
            for i in range(self.config.population_size)
        ]
        self.generation = 1
        self.timer = 0.0
        self.phase = GenerationPhase.RUNNING

        logger.info(
            f"Population initialized: {len(self.agents)} agents, "
            f"layers {self.config.layer_sizes}, seed {self.config.seed}"
        )

    def add_generation_callback(self, callback: GenerationCallback) -> None:
        """
        Register a function called as callback(population, stats) when a
        generation ends.

        It runs after evaluation and before reproduction, so agents still
        hold the finished generation's genomes and fitness.
        """
        self._callbacks.append(callback)

    @property
    def gene_locks(self) -> GeneLocks:
        return self.config.gene_locks

    def set_gene_locks(self, locks: GeneLocks) -> None:
        self.config.gene_locks = locks

    def set_mutation_rate(self, rate: float) -> None:
        if not 0.0 <= rate <= 1.0:
            raise ValueError(f"mutation_rate must be in [0, 1], got {rate}")
        self.config.mutation_rate = rate
        self.mutator.mutation_rate = rate

    def set_elite_count(self, count: int) -> None:
        if not MIN_ELITE_COUNT <= count <= MAX_ELITE_COUNT:
            raise ValueError(f"elite_count must be in [{MIN_ELITE_COUNT}, {MAX_ELITE_COUNT}], got {count}")
        self.config.elite_count = count
        self.elite_selection.elite_count = count

    def swap_checkpoint_tracker(self, tracker: Optional[CheckpointTracker]) -> None:
        """
        Switch to another level's checkpoints.

        The previous tracker is cleared and every agent is registered on
        the new one. Rewards already earned stay until the next reset.
        """
        previous = self.checkpoint_tracker
        if previous is not None and previous is not tracker:
            previous.clear_all()

        self.checkpoint_tracker = tracker
        for agent in self.agents:
            agent.attach_checkpoints(tracker)

        logger.info(
            f"Checkpoint tracker swapped: {len(tracker) if tracker is not None else 0} checkpoints"
        )

    # ------------------------------------------------------------------
    # Per-tick
    # ------------------------------------------------------------------

    def think(
        self,
        sensor_batch: Sequence[Any],
        max_workers: Optional[int] = None,
    ) -> List[List[float]]:
        """
        Run every agent's policy on its sensor vector.

        Args:
            sensor_batch: One sensor vector per agent, in agent order.
            max_workers: If > 1, run forward passes on a thread pool.

        Returns:
            One action vector per agent.

        Raises:
            ValueError: If the batch size does not match the population.
        """
        if len(sensor_batch) != len(self.agents):
            raise ValueError(
                f"Expected {len(self.agents)} sensor vectors, got {len(sensor_batch)}"
            )

        if max_workers and max_workers > 1:
            with ThreadPoolExecutor(max_workers=max_workers) as executor:
                return list(executor.map(Agent.think, self.agents, sensor_batch))

        return [agent.think(sensors) for agent, sensors in zip(self.agents, sensor_batch)]

    def update(self, dt: float) -> Optional[GenerationStats]:
        """
        Advance the generation timer.

        Returns:
            Stats of the generation that just ended, or None if it is
            still running.
        """
        if self.paused or not self.agents:
            return None

        self.timer += dt

        if self.all_dead or self.timer >= self.config.generation_time_limit:
            return self._advance()
        return None

    def force_next_generation(self) -> Optional[GenerationStats]:
        """End the current generation now, whatever its state."""
        if not self.agents:
            logger.warning("Cannot advance generation: population is empty")
            return None

        logger.info(f"Generation {self.generation} ended manually")
        return self._advance()

    def _advance(self) -> GenerationStats:
        self.phase = GenerationPhase.ENDED

        stats = self.evaluate()
        for callback in self._callbacks:
            callback(self, stats)

        selection = self.select()
        genomes = self.mutate(selection)
        self.reset(genomes)
        return stats

    # ------------------------------------------------------------------
    # Generation cycle
    # ------------------------------------------------------------------

    def evaluate(self) -> GenerationStats:
        """
        Compute fitness statistics for the current generation.

        Read-only with respect to agents.
        """
        self.phase = GenerationPhase.EVALUATING

        if not self.agents:
            logger.warning("Evaluating an empty population")
            return GenerationStats(generation=self.generation)

        fitness = np.array([agent.fitness for agent in self.agents], dtype=float)
        telemetry = [agent.telemetry for agent in self.agents]

        stats = GenerationStats(
            generation=self.generation,
            best_fitness=float(fitness.max()),
            avg_fitness=float(fitness.mean()),
            min_fitness=float(fitness.min()),
            fitness_std=float(fitness.std()),
            population_size=len(self.agents),
            alive_count=sum(1 for agent in self.agents if not agent.is_dead),
            avg_distance=float(np.mean([t.total_distance for t in telemetry])),
            avg_time_alive=float(np.mean([t.time_alive for t in telemetry])),
        )
        self.stats_history.append(stats)

        logger.info(
            f"Generation {stats.generation}: best={stats.best_fitness:.2f}, "
            f"worst={stats.min_fitness:.2f}, avg={stats.avg_fitness:.2f}"
        )
        return stats

    def select(self) -> SelectionResult:
        """
        Build the next generation's genomes from the current fitness.

        Fitness is frozen once at the start; parents are read from that
        snapshot. Elites come first, unmodified, followed by crossover
        children of tournament winners.
        """
        self.phase = GenerationPhase.SELECTING

        if not self.agents:
            logger.warning("Selection skipped: population is empty")
            return SelectionResult()

        candidates = [
            Candidate(index=i, genome=agent.genome, fitness=float(agent.fitness))
            for i, agent in enumerate(self.agents)
        ]
        size = len(candidates)
        locks = self.config.gene_locks

        elites = self.elite_selection.get_elite(candidates)
        reference = EliteReference.capture(elites[0].genome) if elites else None
        self.elite_reference = reference

        genomes = [elite.genome.copy() for elite in elites]
        parent_pairs = []

        while len(genomes) < size:
            if size >= 2:
                parent_a, parent_b = self.selection.select_pair(candidates, self.rng)
                child = self.crossover.crossover(
                    parent_a.genome, parent_b.genome, locks, self.generator,
                )
                genomes.append(child)
                parent_pairs.append((parent_a.index, parent_b.index))
            else:
                genomes.append(candidates[0].genome.copy())

        if elites:
            summary = ', '.join(f"{i + 1}: {e.fitness:.1f}" for i, e in enumerate(elites))
            logger.info(f"Generation {self.generation}: {len(elites)} elites preserved - {summary}")

        return SelectionResult(
            fitness=tuple(c.fitness for c in candidates),
            genomes=tuple(genomes),
            elite_indices=tuple(e.index for e in elites),
            elite_reference=reference,
            parent_pairs=tuple(parent_pairs),
        )

    def mutate(self, selection: SelectionResult) -> List[Genome]:
        """
        Mutate every selected genome, then re-apply locked weights.

        Elites are mutated too; only locked output columns are pinned.

        Returns:
            The mutated genomes, in selection order.
        """
        self.phase = GenerationPhase.MUTATING

        genomes = list(selection.genomes)
        if not genomes:
            logger.warning("Mutation skipped: no genomes selected")
            return []

        locks = self.config.gene_locks
        for genome in genomes:
            self.mutator.mutate(genome, locks, self.generator)

        if locks.any_locked and selection.elite_reference is not None:
            for genome in genomes:
                selection.elite_reference.apply(genome, locks)
            logger.info(f"Locked weights applied: {', '.join(locks.locked_names())}")

        return genomes

    def reset(self, genomes: Sequence[Genome]) -> None:
        """
        Assign genomes to agents and start the next generation.

        Agents beyond the end of `genomes` keep their current genome.
        """
        self.phase = GenerationPhase.RESETTING

        if not self.agents:
            logger.warning("Reset skipped: population is empty")
            return

        for i, agent in enumerate(self.agents):
            genome = genomes[i] if i < len(genomes) else None
            agent.reset(genome, self.start_position, self.start_heading)

        self.generation += 1
        self.timer = 0.0
        self.phase = GenerationPhase.RUNNING

    def load_genomes(self, genomes: Sequence[Genome]) -> None:
        """
        Replace the population's genomes with externally built ones.

        Slot i gets a copy of genomes[i]. Extra slots get a copy of
        genomes[i % len(genomes)] mutated at twice the mutation rate.
        All agents are reset; the generation counter is unchanged.

        Raises:
            ValueError: If genomes is empty or mixes topologies.
        """
        if not genomes:
            raise ValueError("No genomes to load")

        layer_sizes = genomes[0].layer_sizes
        if any(g.layer_sizes != layer_sizes for g in genomes):
            raise ValueError("Loaded genomes must share one topology")

        size = len(self.agents)
        if len(genomes) < size:
            logger.warning(
                f"Loading {len(genomes)} genomes into {size} slots; "
                f"filling the rest with mutated copies"
            )

        locks = self.config.gene_locks
        loaded = []
        for i in range(size):
            genome = genomes[i % len(genomes)].copy()
            if i >= len(genomes):
                self.mutator.mutate(
                    genome, locks, self.generator, rate=self.config.mutation_rate * 2,
                )
            loaded.append(genome)

        if layer_sizes != self.config.layer_sizes:
            logger.info(f"Population topology changed: {self.config.layer_sizes} -> {layer_sizes}")
            self.config.layer_sizes = layer_sizes

        for agent, genome in zip(self.agents, loaded):
            agent.reset(genome, self.start_position, self.start_heading)

        self.timer = 0.0
        self.phase = GenerationPhase.RUNNING
        logger.info(f"Loaded {len(genomes)} genomes into generation {self.generation}")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def best_agent(self) -> Optional[Agent]:
        """Agent with the highest fitness (first one on ties)."""
        if not self.agents:
            return None
        return max(self.agents, key=lambda agent: agent.fitness)

    def get_top_n(self, n: int) -> List[Agent]:
        return sorted(self.agents, key=lambda agent: agent.fitness, reverse=True)[:n]

    @property
    def best_fitness(self) -> float:
        return max((agent.fitness for agent in self.agents), default=0.0)

    @property
    def avg_fitness(self) -> float:
        if not self.agents:
            return 0.0
        return sum(agent.fitness for agent in self.agents) / len(self.agents)

    @property
    def alive_count(self) -> int:
        return sum(1 for agent in self.agents if not agent.is_dead)

    @property
    def all_dead(self) -> bool:
        return all(agent.is_dead for agent in self.agents)

    def __len__(self) -> int:
        return len(self.agents)

    def __repr__(self) -> str:
        return (
            f"Population(size={len(self.agents)}, generation={self.generation}, "
            f"phase={self.phase.value})"
        )
