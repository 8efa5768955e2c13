"""
Evolution visualization utilities.

Generate visualizations for an evolution run:
- Fitness over generations
- Population diversity
- Text summary
"""
from dataclasses import asdict, is_dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import numpy as np

from ..evolution.population import GenerationStats

StatsLike = Union[GenerationStats, Dict[str, Any]]


def _as_dicts(stats_history: Sequence[StatsLike]) -> List[Dict[str, Any]]:
    return [asdict(s) if is_dataclass(s) else dict(s) for s in stats_history]


def plot_fitness_over_generations(
    stats_history: Sequence[StatsLike],
    save_path: Optional[str] = None,
    show_range: bool = True,
    figsize: Tuple[int, int] = (12, 6),
) -> Optional[str]:
    """
    Plot fitness progression over generations.

    Shows best, average, and optionally the min-max range per generation.

    Args:
        stats_history: GenerationStats objects or their dicts.
        save_path: Path to save figure.
        show_range: If True, show min-max range as shaded area.
        figsize: Figure size.

    Returns:
        Path to saved figure.
    """
    if not stats_history:
        return None

    history = _as_dicts(stats_history)
    generations = [s.get('generation', i) for i, s in enumerate(history)]
    best = [s.get('best_fitness', 0) for s in history]
    avg = [s.get('avg_fitness', 0) for s in history]
    min_fit = [s.get('min_fitness', 0) for s in history]

    fig, ax = plt.subplots(figsize=figsize)

    ax.plot(generations, best, 'g-', linewidth=2, label='Best')
    ax.plot(generations, avg, 'b-', linewidth=2, label='Average')

    if show_range:
        ax.fill_between(
            generations, min_fit, best,
            alpha=0.2, color='gray',
            label='Range'
        )

    ax.set_xlabel('Generation')
    ax.set_ylabel('Fitness')
    ax.set_title('Fitness Over Generations')
    ax.legend()
    ax.grid(True, alpha=0.3)

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        plt.close(fig)
        return save_path

    plt.close(fig)
    return None


def plot_population_diversity(
    stats_history: Sequence[StatsLike],
    save_path: Optional[str] = None,
    figsize: Tuple[int, int] = (10, 6),
) -> Optional[str]:
    """
    Plot population diversity over generations.

    Diversity is the fitness standard deviation, normalized by the
    average fitness (std / (avg + 0.1)).

    Args:
        stats_history: GenerationStats objects or their dicts.
        save_path: Path to save figure.
        figsize: Figure size.

    Returns:
        Path to saved figure.
    """
    if not stats_history:
        return None

    history = _as_dicts(stats_history)
    generations = [s.get('generation', i) for i, s in enumerate(history)]
    diversity = [
        s.get('fitness_std', 0) / (s.get('avg_fitness', 0) + 0.1)
        for s in history
    ]

    fig, ax = plt.subplots(figsize=figsize)

    ax.plot(generations, diversity, 'purple', linewidth=2)
    ax.fill_between(generations, 0, diversity, alpha=0.3, color='purple')

    ax.set_xlabel('Generation')
    ax.set_ylabel('Diversity')
    ax.set_title('Population Diversity Over Time')
    ax.grid(True, alpha=0.3)

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        plt.close(fig)
        return save_path

    plt.close(fig)
    return None


def format_evolution_summary(
    stats_history: Sequence[StatsLike],
    best_network: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Generate a text summary of an evolution run.

    Args:
        stats_history: Generation statistics.
        best_network: Best saved network (SerializedNetwork dict).

    Returns:
        Formatted text summary.
    """
    history = _as_dicts(stats_history)

    lines = [
        "=" * 50,
        "EVOLUTION SUMMARY",
        "=" * 50,
        "",
        f"Total generations: {len(history)}",
    ]

    if history:
        first = history[0]
        last = history[-1]
        best_overall = max(s.get('best_fitness', 0) for s in history)

        lines.extend([
            "",
            "Fitness progression:",
            f"  Initial best: {first.get('best_fitness', 0):.3f}",
            f"  Final best: {last.get('best_fitness', 0):.3f}",
            f"  Final average: {last.get('avg_fitness', 0):.3f}",
            f"  Best overall: {best_overall:.3f}",
            f"  Improvement: {last.get('best_fitness', 0) - first.get('best_fitness', 0):.3f}",
            f"  Mean std: {np.mean([s.get('fitness_std', 0) for s in history]):.3f}",
        ])

    if best_network:
        total_jumps = best_network.get('correct_jumps', 0) + best_network.get('incorrect_jumps', 0)
        lines.extend([
            "",
            "Best network:",
            f"  Layers: {best_network.get('layers', [])}",
            f"  Fitness: {best_network.get('fitness', 0):.3f}",
            f"  Distance: {best_network.get('total_distance', 0):.1f}",
            f"  Jumps: {best_network.get('correct_jumps', 0)}/{total_jumps} correct",
            f"  Checkpoints: {best_network.get('checkpoints_reached', 0)}",
        ])

    lines.extend(["", "=" * 50])

    return "\n".join(lines)
