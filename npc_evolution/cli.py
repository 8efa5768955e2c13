"""
Command line tools for inspecting evolution runs.

Usage:
    npc-evolution summary <snapshot.json>
    npc-evolution inspect <snapshot.json> [--index 0] [--plot-dir DIR]
    npc-evolution plot <run.jsonl> --output fitness.png [--diversity diversity.png]
"""
import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .training.snapshots import SnapshotManager, TrainingLogger, TrainingSnapshot
from .visualization.evolution import (
    format_evolution_summary,
    plot_fitness_over_generations,
    plot_population_diversity,
)
from .visualization.network import (
    format_network_summary,
    plot_output_influence,
    plot_weight_distributions,
)

logger = logging.getLogger(__name__)


class CommandError(Exception):
    """Raised by a subcommand to exit with an error message."""


def _load_snapshot(path: str) -> TrainingSnapshot:
    snapshot_path = Path(path)
    if not snapshot_path.is_file():
        raise CommandError(f"Snapshot '{path}' does not exist")

    snapshot = SnapshotManager(snapshot_path.parent).load(snapshot_path)
    if snapshot is None:
        raise CommandError(f"Snapshot '{path}' could not be read")
    return snapshot


def cmd_summary(options: argparse.Namespace) -> None:
    snapshot = _load_snapshot(options.snapshot)

    print(f"Generation {snapshot.generation} ({snapshot.timestamp})")
    print(
        f"  Fitness: best={snapshot.best_fitness:.2f} "
        f"avg={snapshot.average_fitness:.2f} worst={snapshot.worst_fitness:.2f}"
    )
    print(f"  Population: {snapshot.population_size} ({snapshot.alive_count} alive)")
    print(f"  Mutation rate: {snapshot.mutation_rate}, elites: {snapshot.elite_count}")
    print(f"  Locks: {snapshot.global_lock_status}")
    print(
        f"  Diversity: {snapshot.population_diversity:.3f}, "
        f"convergence: {snapshot.convergence_rate:.3f}, "
        f"improvement: {snapshot.improvement_rate:+.2f}"
    )
    print(
        f"  Totals: distance={snapshot.total_distance:.1f}, "
        f"jumps={snapshot.total_successful_jumps}, "
        f"checkpoints={snapshot.total_checkpoints_reached}"
    )
    print(f"  Saved networks: {len(snapshot.networks)}")

    best = snapshot.networks[0].to_dict() if snapshot.networks else None
    stats = [{
        'generation': snapshot.generation,
        'best_fitness': snapshot.best_fitness,
        'avg_fitness': snapshot.average_fitness,
        'min_fitness': snapshot.worst_fitness,
        'fitness_std': snapshot.diversity_index,
    }]
    print(format_evolution_summary(stats, best))


def cmd_inspect(options: argparse.Namespace) -> None:
    snapshot = _load_snapshot(options.snapshot)

    if not 0 <= options.index < len(snapshot.networks):
        raise CommandError(
            f"Network index {options.index} out of range (snapshot has {len(snapshot.networks)})"
        )

    network = snapshot.networks[options.index]
    try:
        genome = network.to_genome()
    except ValueError as e:
        raise CommandError(f"Network {options.index} is invalid: {e}")

    print(f"Network {options.index}: fitness {network.fitness:.2f}")
    print(format_network_summary(genome, lock_status=network.lock_status))

    if options.plot_dir:
        plot_dir = Path(options.plot_dir)
        plot_dir.mkdir(parents=True, exist_ok=True)
        weights_path = plot_weight_distributions(genome, save_path=str(plot_dir / f'network_{options.index}_weights.png'))
        influence_path = plot_output_influence(genome, save_path=str(plot_dir / f'network_{options.index}_influence.png'))
        print(f"Plots saved: {weights_path}, {influence_path}")


def cmd_plot(options: argparse.Namespace) -> None:
    log_path = Path(options.log)
    if not log_path.is_file():
        raise CommandError(f"Log '{options.log}' does not exist")

    run_log = TrainingLogger(log_path.parent, experiment_name=log_path.stem)
    try:
        run_log.load()
    except ValueError as e:
        raise CommandError(f"Log '{options.log}' could not be read: {e}")

    history = run_log.history()
    if not history:
        raise CommandError(f"Log '{options.log}' has no entries")

    path = plot_fitness_over_generations(history, save_path=options.output)
    print(f"Fitness plot saved: {path}")

    if options.diversity:
        path = plot_population_diversity(history, save_path=options.diversity)
        print(f"Diversity plot saved: {path}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='npc-evolution',
        description='Inspect NPC evolution snapshots and run logs',
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable debug logging',
    )
    subparsers = parser.add_subparsers(dest='command', required=True)

    summary = subparsers.add_parser('summary', help='Summarize a training snapshot')
    summary.add_argument('snapshot', type=str, help='Path to a snapshot JSON file')
    summary.set_defaults(handler=cmd_summary)

    inspect = subparsers.add_parser('inspect', help='Describe one saved network')
    inspect.add_argument('snapshot', type=str, help='Path to a snapshot JSON file')
    inspect.add_argument(
        '--index',
        type=int,
        default=0,
        help='Network index, 0 = best (default: 0)',
    )
    inspect.add_argument(
        '--plot-dir',
        type=str,
        default=None,
        help='Directory to write weight and influence plots to',
    )
    inspect.set_defaults(handler=cmd_inspect)

    plot = subparsers.add_parser('plot', help='Plot fitness from a generation log')
    plot.add_argument('log', type=str, help='Path to a .jsonl generation log')
    plot.add_argument('--output', type=str, required=True, help='Output PNG for the fitness plot')
    plot.add_argument('--diversity', type=str, default=None, help='Optional output PNG for diversity')
    plot.set_defaults(handler=cmd_plot)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    options = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if options.verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s',
    )

    try:
        options.handler(options)
    except CommandError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
