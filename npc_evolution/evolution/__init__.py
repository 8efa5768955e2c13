"""
Neuroevolution of NPC policies.

Weights evolve under a fixed topology. This module provides:
- Mutation with per-action gene locks
- Uniform weight crossover
- Tournament and elite selection
- Population management and the generation state machine

Example usage:
    from npc_evolution.evolution import Population, EvolutionConfig, GeneLocks

    config = EvolutionConfig(
        population_size=50,
        elite_count=2,
        mutation_rate=0.01,
        gene_locks=GeneLocks(jump=True),
        seed=7,
    )
    population = Population(config, checkpoint_tracker=tracker)

    # each simulation tick
    actions = population.think(sensor_batch)
    stats = population.update(dt)
"""
from .mutations import (
    GeneLocks,
    EliteReference,
    WeightMutator,
)
from .crossover import WeightCrossover
from .selection import (
    Candidate,
    TournamentSelection,
    EliteSelection,
)
from .population import (
    Population,
    EvolutionConfig,
    GenerationStats,
    GenerationPhase,
    SelectionResult,
)

__all__ = [
    # Mutations
    'GeneLocks',
    'EliteReference',
    'WeightMutator',

    # Crossover
    'WeightCrossover',

    # Selection
    'Candidate',
    'TournamentSelection',
    'EliteSelection',

    # Population management
    'Population',
    'EvolutionConfig',
    'GenerationStats',
    'GenerationPhase',
    'SelectionResult',
]
