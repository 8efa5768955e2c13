"""
Genome visualization utilities.

Inspect an evolved genome:
- Per-layer weight statistics and histograms
- Active weight count and complexity
- How strongly each action output is wired in
"""
from typing import Any, Dict, Optional, Sequence, Tuple

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import numpy as np

from ..networks.architectures import ACTION_NAMES
from ..networks.genome import Genome
from ..training.snapshots import ACTIVE_WEIGHT_THRESHOLD


def output_influence(genome: Genome) -> Dict[str, float]:
    """
    Share of each output in the final layer's total absolute weight.

    Returns:
        Mapping of action name to percentage (sums to 100).
    """
    last = genome.get_weights()[-1].abs().numpy()
    sums = last.sum(axis=0)
    total = float(sums.sum())

    names = _output_names(genome.output_size)
    if total == 0:
        return {name: 0.0 for name in names}
    return {name: float(s / total * 100.0) for name, s in zip(names, sums)}


def _output_names(count: int) -> Sequence[str]:
    if count == len(ACTION_NAMES):
        return ACTION_NAMES
    return [f'output_{i}' for i in range(count)]


def get_network_stats(genome: Genome) -> Dict[str, Any]:
    """
    Compute statistics about a genome.

    Args:
        genome: Genome to analyze.

    Returns:
        Dictionary of genome statistics.
    """
    flat = genome.flatten().numpy()
    active = int(np.count_nonzero(np.abs(flat) > ACTIVE_WEIGHT_THRESHOLD))

    weight_stats = {}
    for i, weights in enumerate(genome.get_weights()):
        values = weights.numpy()
        weight_stats[f'layer_{i}'] = {
            'shape': list(values.shape),
            'mean': float(values.mean()),
            'std': float(values.std()),
            'min': float(values.min()),
            'max': float(values.max()),
        }

    return {
        'layer_sizes': list(genome.layer_sizes),
        'total_parameters': genome.parameter_count,
        'active_weights': active,
        'complexity': active / flat.size if flat.size else 0.0,
        'weight_stats': weight_stats,
        'output_influence': output_influence(genome),
    }


def plot_weight_distributions(
    genome: Genome,
    save_path: Optional[str] = None,
    figsize: Tuple[int, int] = (12, 8),
) -> Optional[str]:
    """
    Plot histograms of weight distributions for each layer.

    Args:
        genome: Genome to plot.
        save_path: Path to save figure.
        figsize: Figure size.

    Returns:
        Path to saved figure.
    """
    weight_data = {
        f'layer_{i} {tuple(w.shape)}': w.numpy().flatten()
        for i, w in enumerate(genome.get_weights())
    }

    n_layers = len(weight_data)
    n_cols = min(3, n_layers)
    n_rows = (n_layers + n_cols - 1) // n_cols

    fig, axes = plt.subplots(n_rows, n_cols, figsize=figsize, squeeze=False)
    axes = axes.flatten()

    for i, (name, weights) in enumerate(weight_data.items()):
        ax = axes[i]
        ax.hist(weights, bins=30, color='steelblue', alpha=0.7, edgecolor='black')
        ax.set_title(name, fontsize=10)
        ax.set_xlabel('Weight Value')
        ax.set_ylabel('Count')

        mean = np.mean(weights)
        ax.axvline(mean, color='red', linestyle='--', label=f'mean={mean:.3f}')
        ax.legend(fontsize=8)

    for j in range(n_layers, len(axes)):
        axes[j].axis('off')

    plt.suptitle('Weight Distributions', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        plt.close(fig)
        return save_path

    plt.close(fig)
    return None


def plot_output_influence(
    genome: Genome,
    save_path: Optional[str] = None,
    figsize: Tuple[int, int] = (8, 5),
) -> Optional[str]:
    """
    Bar chart of each action's share of the output-layer weight mass.

    Args:
        genome: Genome to plot.
        save_path: Path to save figure.
        figsize: Figure size.

    Returns:
        Path to saved figure.
    """
    influence = output_influence(genome)

    fig, ax = plt.subplots(figsize=figsize)

    names = list(influence.keys())
    values = list(influence.values())
    bars = ax.bar(names, values, color='seagreen', edgecolor='black')

    for bar, value in zip(bars, values):
        ax.text(
            bar.get_x() + bar.get_width() / 2., bar.get_height(),
            f'{value:.1f}%',
            ha='center', va='bottom',
        )

    ax.set_ylabel('Share of |weights| (%)')
    ax.set_title('Output Influence')

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        plt.close(fig)
        return save_path

    plt.close(fig)
    return None


def format_network_summary(
    genome: Genome,
    lock_status: Optional[Sequence[bool]] = None,
) -> str:
    """
    Generate a text summary of a genome.

    Args:
        genome: Genome to describe.
        lock_status: Optional per-output lock flags to display.

    Returns:
        Formatted text summary.
    """
    stats = get_network_stats(genome)

    lines = [
        "=" * 50,
        "NETWORK SUMMARY",
        "=" * 50,
        "",
        f"Layers: {' -> '.join(str(s) for s in stats['layer_sizes'])}",
        f"Total parameters: {stats['total_parameters']:,}",
        f"Active weights: {stats['active_weights']} ({stats['complexity']:.1%})",
        "",
        "Layer weights:",
    ]

    for name, w_stats in stats['weight_stats'].items():
        lines.append(f"  {name}: {w_stats['shape']}")
        lines.append(f"    mean={w_stats['mean']:.4f}, std={w_stats['std']:.4f}")

    lines.extend(["", "Output influence:"])
    for i, (name, share) in enumerate(stats['output_influence'].items()):
        locked = lock_status is not None and i < len(lock_status) and lock_status[i]
        lines.append(f"  {name}: {share:.1f}%{' [locked]' if locked else ''}")

    lines.append("")
    lines.append("=" * 50)

    return "\n".join(lines)
