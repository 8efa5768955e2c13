"""
Visualization and reporting for evolution runs.

Provides plotting and reporting utilities for:
- Fitness progression and population diversity
- Genome weight distributions and output influence

All visualizations use matplotlib for static plots that can
be saved to files.

Example usage:
    from npc_evolution.visualization import (
        plot_fitness_over_generations,
        plot_weight_distributions,
    )

    plot_fitness_over_generations(population.stats_history, save_path='fitness.png')
    plot_weight_distributions(population.best_agent().genome, save_path='weights.png')
"""
from .evolution import (
    plot_fitness_over_generations,
    plot_population_diversity,
    format_evolution_summary,
)
from .network import (
    get_network_stats,
    output_influence,
    plot_weight_distributions,
    plot_output_influence,
    format_network_summary,
)

__all__ = [
    # Evolution
    'plot_fitness_over_generations',
    'plot_population_diversity',
    'format_evolution_summary',

    # Network
    'get_network_stats',
    'output_influence',
    'plot_weight_distributions',
    'plot_output_influence',
    'format_network_summary',
]
