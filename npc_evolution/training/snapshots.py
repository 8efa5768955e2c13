"""
Training snapshots and run logs.

A snapshot is a JSON file with the state of one generation:
- Population statistics and derived progress metrics
- The top-N genomes as flat weight lists, each with its behaviour telemetry

Snapshots let a run be resumed later (the saved genomes seed a new
population) and are the input of the inspection CLI. The run log is a
JSON-lines file with one entry per generation, used for plotting.
"""
import json
import logging
import os
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import numpy as np

from ..agents.agent import Agent
from ..evaluation.fitness import summarize_jumps
from ..evolution.mutations import GeneLocks
from ..evolution.population import GenerationStats, Population
from ..networks.genome import Genome

logger = logging.getLogger(__name__)

# Weights with a magnitude at or below this count as inactive.
ACTIVE_WEIGHT_THRESHOLD = 0.01

SNAPSHOT_PREFIX = 'training_gen'


@dataclass
class SerializedNetwork:
    """One saved genome plus the behaviour that earned its fitness."""
    layers: List[int]
    weights: List[float]
    fitness: float

    # Behaviour
    time_alive: float = 0.0
    total_distance: float = 0.0
    correct_jumps: int = 0
    incorrect_jumps: int = 0
    checkpoints_reached: int = 0
    unique_cells_visited: int = 0

    # Weight analysis
    active_weights: int = 0
    weight_complexity: float = 0.0
    lock_status: List[bool] = field(default_factory=list)
    exploration_efficiency: float = 0.0

    @property
    def successful_jumps(self) -> int:
        return self.correct_jumps

    @classmethod
    def from_agent(cls, agent: Agent, locks: Optional[GeneLocks] = None) -> 'SerializedNetwork':
        """Serialize an agent's genome and telemetry."""
        telemetry = agent.telemetry
        flat = agent.genome.flatten().numpy()
        active = int(np.count_nonzero(np.abs(flat) > ACTIVE_WEIGHT_THRESHOLD))

        return cls(
            layers=list(agent.genome.layer_sizes),
            weights=flat.tolist(),
            fitness=float(agent.fitness),
            time_alive=telemetry.time_alive,
            total_distance=telemetry.total_distance,
            correct_jumps=telemetry.correct_jumps,
            incorrect_jumps=telemetry.incorrect_jumps,
            checkpoints_reached=agent.checkpoints_reached,
            unique_cells_visited=telemetry.unique_cells_visited,
            active_weights=active,
            weight_complexity=active / flat.size if flat.size else 0.0,
            lock_status=list((locks or GeneLocks()).as_mask()),
            exploration_efficiency=(
                telemetry.unique_cells_visited / telemetry.total_distance
                if telemetry.total_distance > 0 else 0.0
            ),
        )

    def to_genome(self) -> Genome:
        """
        Rebuild the genome.

        Raises:
            ShapeMismatchError: If the weight count does not match layers.
        """
        return Genome.from_dict({'layers': self.layers, 'weights': self.weights})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SerializedNetwork':
        return cls(**data)


@dataclass
class TrainingSnapshot:
    """State of one generation, as written to disk."""
    generation: int
    best_fitness: float
    average_fitness: float
    worst_fitness: float
    timestamp: str
    networks: List[SerializedNetwork] = field(default_factory=list)

    # Population settings
    population_size: int = 0
    alive_count: int = 0
    mutation_rate: float = 0.0
    elite_count: int = 0
    global_lock_status: List[bool] = field(default_factory=list)

    # Progress metrics
    fitness_range: float = 0.0
    diversity_index: float = 0.0
    population_diversity: float = 0.0
    improvement_rate: float = 0.0
    learning_rate: float = 0.0
    convergence_rate: float = 0.0

    # Behaviour totals
    average_time_alive: float = 0.0
    total_distance: float = 0.0
    total_successful_jumps: int = 0
    total_checkpoints_reached: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TrainingSnapshot':
        data = dict(data)
        data['networks'] = [SerializedNetwork.from_dict(n) for n in data.get('networks', [])]
        return cls(**data)


def compute_progress_metrics(
    fitness: List[float],
    last_best_fitness: float = 0.0,
) -> Dict[str, float]:
    """
    Derived metrics describing how a generation compares to the last one.

    Args:
        fitness: Fitness of every agent.
        last_best_fitness: Best fitness at the previous save.

    Returns:
        Dictionary with fitness_range, diversity_index (fitness std),
        population_diversity (std normalized by mean), improvement_rate,
        learning_rate and convergence_rate.
    """
    values = np.asarray(fitness, dtype=float)
    if values.size == 0:
        return {
            'fitness_range': 0.0,
            'diversity_index': 0.0,
            'population_diversity': 0.0,
            'improvement_rate': 0.0,
            'learning_rate': 0.0,
            'convergence_rate': 0.0,
        }

    best = float(values.max())
    mean = float(values.mean())
    std = float(values.std())
    fitness_range = best - float(values.min())
    improvement = best - last_best_fitness

    return {
        'fitness_range': fitness_range,
        'diversity_index': std,
        'population_diversity': std / (mean + 0.1) if values.size > 1 else 0.0,
        'improvement_rate': improvement,
        'learning_rate': improvement / max(last_best_fitness, 1.0),
        'convergence_rate': 1.0 - fitness_range / (best + 0.1),
    }


class SnapshotManager:
    """
    Save and restore population snapshots.

    Attributes:
        directory: Directory holding snapshot files.
        top_n: Number of genomes stored per snapshot, or None to use
            the population config's snapshot_top_n.
        last_best_fitness: Best fitness at the previous save, used for
            the improvement metrics.

    Example:
        manager = SnapshotManager('./snapshots')
        population.add_generation_callback(manager.autosave_callback())

        # Resume later
        snapshot = manager.load(manager.list_snapshots()[-1])
        if snapshot:
            manager.restore(snapshot, population)
    """

    def __init__(
        self,
        directory: Union[str, Path],
        top_n: Optional[int] = None,
    ):
        """
        Initialize the snapshot manager.

        Args:
            directory: Directory to store snapshots (created if missing).
            top_n: Genomes to keep per snapshot. Defaults to
                   population.config.snapshot_top_n at save time.
        """
        self.directory = Path(directory)
        self.top_n = top_n
        self.last_best_fitness = 0.0
        self.last_save_path: Optional[Path] = None
        self.directory.mkdir(parents=True, exist_ok=True)

    def build_snapshot(self, population: Population) -> TrainingSnapshot:
        """Collect the population's current state into a snapshot."""
        agents = population.agents
        fitness = [agent.fitness for agent in agents]
        telemetry = [agent.telemetry for agent in agents]
        locks = population.gene_locks

        top_n = self.top_n if self.top_n is not None else population.config.snapshot_top_n
        ranked = population.get_top_n(top_n)
        metrics = compute_progress_metrics(fitness, self.last_best_fitness)
        jumps = summarize_jumps([agent.rewards for agent in agents])

        return TrainingSnapshot(
            generation=population.generation,
            best_fitness=max(fitness),
            average_fitness=float(np.mean(fitness)),
            worst_fitness=min(fitness),
            timestamp=datetime.now().strftime('%Y-%m-%d %H:%M:%S'),
            networks=[SerializedNetwork.from_agent(agent, locks) for agent in ranked],
            population_size=len(agents),
            alive_count=population.alive_count,
            mutation_rate=population.config.mutation_rate,
            elite_count=population.config.elite_count,
            global_lock_status=list(locks.as_mask()),
            average_time_alive=float(np.mean([t.time_alive for t in telemetry])),
            total_distance=float(sum(t.total_distance for t in telemetry)),
            total_successful_jumps=int(jumps['correct_jumps']),
            total_checkpoints_reached=sum(agent.checkpoints_reached for agent in agents),
            **metrics,
        )

    def save(
        self,
        population: Population,
        name: Optional[str] = None,
    ) -> Optional[Path]:
        """
        Save a snapshot of the population.

        Args:
            population: Population to save.
            name: File name without extension. Defaults to
                  training_gen{generation}_{timestamp}.

        Returns:
            Path to the saved file, or None if nothing was saved.
        """
        if not population.agents:
            logger.warning("No population to save")
            return None

        snapshot = self.build_snapshot(population)

        if name is None:
            stamp = datetime.now().strftime('%Y%m%d_%H%M%S')
            name = f'{SNAPSHOT_PREFIX}{snapshot.generation:05d}_{stamp}'
        filepath = self.directory / f'{name}.json'
        tmp_path = filepath.with_suffix('.json.tmp')

        try:
            with open(tmp_path, 'w') as f:
                json.dump(snapshot.to_dict(), f, indent=2)
            os.replace(tmp_path, filepath)
        except (OSError, TypeError, ValueError):
            logger.exception(f"Failed to save snapshot of generation {snapshot.generation} to {filepath}")
            tmp_path.unlink(missing_ok=True)
            return None

        self.last_best_fitness = snapshot.best_fitness
        self.last_save_path = filepath

        logger.info(
            f"Saved generation {snapshot.generation} "
            f"({len(snapshot.networks)} networks, best {snapshot.best_fitness:.2f}) to {filepath}"
        )
        return filepath

    def load(self, filepath: Union[str, Path]) -> Optional[TrainingSnapshot]:
        """
        Load a snapshot file.

        Returns:
            The snapshot, or None if the file is missing or malformed.
        """
        try:
            with open(filepath, 'r') as f:
                snapshot = TrainingSnapshot.from_dict(json.load(f))
        except (OSError, ValueError, KeyError, TypeError):
            logger.exception(f"Failed to load snapshot {filepath}")
            return None

        logger.info(
            f"Loaded generation {snapshot.generation} with {len(snapshot.networks)} networks from {filepath}"
        )
        return snapshot

    def restore(self, snapshot: TrainingSnapshot, population: Population) -> bool:
        """
        Seed a population with a snapshot's genomes.

        Every genome is rebuilt before the population is touched, so a
        malformed snapshot leaves the population as it was.

        Returns:
            True if the population was updated.
        """
        if not snapshot.networks:
            logger.warning(f"Snapshot of generation {snapshot.generation} has no networks")
            return False

        try:
            genomes = [network.to_genome() for network in snapshot.networks]
            population.load_genomes(genomes)
        except (ValueError, KeyError, TypeError):
            logger.exception(f"Snapshot of generation {snapshot.generation} has invalid networks")
            return False

        population.generation = snapshot.generation
        self.last_best_fitness = snapshot.best_fitness
        return True

    def list_snapshots(self) -> List[Path]:
        """Snapshot files in the directory, oldest first."""
        return sorted(self.directory.glob('*.json'), key=lambda p: p.stat().st_mtime)

    @staticmethod
    def should_autosave(generation: int, interval: int) -> bool:
        return interval > 0 and generation % interval == 0

    def autosave_callback(self, interval: Optional[int] = None):
        """
        Generation callback that saves every `interval` generations.

        With no interval, the population config's autosave_interval is
        read on each call.
        """
        def _autosave(population: Population, stats: GenerationStats) -> None:
            every = interval if interval is not None else population.config.autosave_interval
            if self.should_autosave(stats.generation, every):
                self.save(population)
        return _autosave


class TrainingLogger:
    """
    Log generation statistics for visualization and analysis.

    Appends one JSON line per generation to {log_dir}/{experiment_name}.jsonl.
    """

    def __init__(
        self,
        log_dir: Union[str, Path],
        experiment_name: str = 'evolution',
    ):
        """
        Initialize the training logger.

        Args:
            log_dir: Directory for log files.
            experiment_name: Name of the experiment.
        """
        self.log_dir = Path(log_dir)
        self.experiment_name = experiment_name
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.log_file = self.log_dir / f'{experiment_name}.jsonl'
        self.entries: List[Dict[str, Any]] = []

    def log(
        self,
        step: int,
        metrics: Dict[str, float],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Log metrics for one generation.

        Args:
            step: Generation number.
            metrics: Dictionary of metric names to values.
            metadata: Optional additional metadata.
        """
        entry = {
            'step': step,
            'timestamp': datetime.now().isoformat(),
            'metrics': metrics,
        }
        if metadata:
            entry['metadata'] = metadata

        self.entries.append(entry)

        with open(self.log_file, 'a') as f:
            f.write(json.dumps(entry) + '\n')

    def log_generation(self, population: Population, stats: GenerationStats) -> None:
        """Generation callback: log the stats of a finished generation."""
        metrics = stats.to_dict()
        step = metrics.pop('generation')
        self.log(step, metrics, metadata={'locked': population.gene_locks.locked_names()})

    def get_metric_history(self, metric: str) -> tuple[list[int], list[float]]:
        """
        Get the history of a specific metric.

        Returns:
            Tuple of (steps, values).
        """
        steps = []
        values = []

        for entry in self.entries:
            if metric in entry.get('metrics', {}):
                steps.append(entry['step'])
                values.append(entry['metrics'][metric])

        return steps, values

    def load(self) -> None:
        """Load entries from the log file."""
        if not self.log_file.exists():
            return

        self.entries = []
        with open(self.log_file, 'r') as f:
            for line in f:
                if line.strip():
                    self.entries.append(json.loads(line))

    def history(self) -> List[GenerationStats]:
        """Logged entries as GenerationStats, for the plotting helpers."""
        return [
            GenerationStats(generation=entry['step'], **{
                k: v for k, v in entry.get('metrics', {}).items()
                if k in GenerationStats.__dataclass_fields__
            })
            for entry in self.entries
        ]

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of the run."""
        if not self.entries:
            return {}

        first_entry = self.entries[0]
        last_entry = self.entries[-1]
        _, best = self.get_metric_history('best_fitness')

        return {
            'experiment_name': self.experiment_name,
            'total_generations': last_entry['step'],
            'num_log_entries': len(self.entries),
            'start_time': first_entry['timestamp'],
            'end_time': last_entry['timestamp'],
            'best_fitness': max(best) if best else None,
            'final_metrics': last_entry.get('metrics', {}),
        }
