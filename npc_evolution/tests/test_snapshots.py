"""
Tests for training snapshots and the generation log.
"""
import json

import pytest
import torch

from npc_evolution.evolution import GenerationStats
from npc_evolution.training import (
    SerializedNetwork,
    SnapshotManager,
    TrainingLogger,
    TrainingSnapshot,
    compute_progress_metrics,
)

from .factories import AgentFactory, PopulationFactory, set_fitness


@pytest.fixture
def manager(tmp_path) -> SnapshotManager:
    """Return a snapshot manager writing under tmp_path."""
    return SnapshotManager(tmp_path / 'snapshots', top_n=3)


class TestProgressMetrics:
    """Tests for compute_progress_metrics."""

    def test_metrics(self):
        """Test range, spread, improvement and convergence."""
        std = (200.0 / 3) ** 0.5

        metrics = compute_progress_metrics([10.0, 20.0, 30.0], last_best_fitness=20.0)

        assert metrics['fitness_range'] == pytest.approx(20.0)
        assert metrics['diversity_index'] == pytest.approx(std)
        assert metrics['population_diversity'] == pytest.approx(std / 20.1)
        assert metrics['improvement_rate'] == pytest.approx(10.0)
        assert metrics['learning_rate'] == pytest.approx(0.5)
        assert metrics['convergence_rate'] == pytest.approx(1.0 - 20.0 / 30.1)

    def test_learning_rate_floor(self):
        """Test the previous best is floored at 1 for the learning rate."""
        metrics = compute_progress_metrics([4.0, 2.0], last_best_fitness=0.0)

        assert metrics['learning_rate'] == pytest.approx(4.0)

    def test_single_agent_has_no_diversity(self):
        """Test diversity needs more than one agent."""
        assert compute_progress_metrics([5.0])['population_diversity'] == 0.0

    def test_empty(self):
        """Test an empty fitness list yields zeros."""
        assert all(v == 0.0 for v in compute_progress_metrics([]).values())


class TestSerializedNetwork:
    """Tests for per-genome records."""

    def test_from_agent(self):
        """Test telemetry and weight analysis are captured."""
        agent = AgentFactory()
        agent.update((3, 0, 4), 0.0, 1.0)

        network = SerializedNetwork.from_agent(agent)

        assert network.layers == [8, 8, 6, 4]
        assert len(network.weights) == 136
        assert network.fitness == pytest.approx(5.9)
        assert network.total_distance == pytest.approx(5.0)
        assert network.exploration_efficiency == pytest.approx(0.2)
        assert network.lock_status == [False] * 4
        assert 0 < network.active_weights <= 136
        assert network.weight_complexity == pytest.approx(network.active_weights / 136)

    def test_to_genome(self):
        """Test the genome is rebuilt exactly."""
        agent = AgentFactory()

        genome = SerializedNetwork.from_agent(agent).to_genome()

        assert torch.equal(genome.flatten(), agent.genome.flatten())

    def test_active_weight_threshold(self):
        """Test weights at or below 0.01 are inactive."""
        agent = AgentFactory()
        weights = [torch.zeros(shape) for shape in agent.genome.weight_shapes]
        weights[0][0, 0] = 0.01
        weights[0][0, 1] = 0.02
        agent.genome.set_weights(weights)

        network = SerializedNetwork.from_agent(agent)

        assert network.active_weights == 1


class TestSnapshotManager:
    """Tests for saving and restoring snapshots."""

    def test_save_writes_json(self, manager, population):
        """Test save writes a snapshot with the top networks."""
        set_fitness(population, [1, 8, 3, 5, 0, 0, 0, 0])

        path = manager.save(population, name='gen1')

        assert path == manager.directory / 'gen1.json'
        data = json.loads(path.read_text())
        assert data['generation'] == 1
        assert data['best_fitness'] == 8.0
        assert data['worst_fitness'] == 0.0
        assert data['population_size'] == 8
        assert [n['fitness'] for n in data['networks']] == [8.0, 5.0, 3.0]
        assert manager.last_best_fitness == 8.0

    def test_default_name(self, manager, population):
        """Test the default file name carries the generation."""
        path = manager.save(population)

        assert path.name.startswith('training_gen00001_')
        assert manager.list_snapshots() == [path]

    def test_roundtrip(self, manager, population):
        """Test a saved snapshot loads back with identical genomes."""
        set_fitness(population, [1, 8, 3, 5, 0, 0, 0, 0])
        best = population.agents[1].genome

        snapshot = manager.load(manager.save(population))

        assert isinstance(snapshot, TrainingSnapshot)
        assert snapshot.generation == 1
        assert torch.equal(snapshot.networks[0].to_genome().flatten(), best.flatten())

    def test_restore(self, manager, population):
        """Test restore seeds a population and sets its generation."""
        set_fitness(population, [1, 8, 3, 5, 0, 0, 0, 0])
        population.generation = 7
        snapshot = manager.load(manager.save(population))
        target = PopulationFactory()

        assert manager.restore(snapshot, target)

        assert target.generation == 7
        assert torch.equal(target.agents[0].genome.flatten(), population.agents[1].genome.flatten())
        assert torch.equal(target.agents[2].genome.flatten(), population.agents[2].genome.flatten())

    def test_load_corrupt_file(self, manager, tmp_path):
        """Test a malformed file is reported as None."""
        path = tmp_path / 'broken.json'
        path.write_text('{not json')

        assert manager.load(path) is None

    def test_load_missing_file(self, manager, tmp_path):
        """Test a missing file is reported as None."""
        assert manager.load(tmp_path / 'missing.json') is None

    def test_restore_invalid_network(self, manager, population):
        """Test a bad network leaves the population untouched."""
        snapshot = manager.build_snapshot(population)
        snapshot.networks[1].weights = snapshot.networks[1].weights[:-1]
        before = [a.genome for a in population.agents]

        assert not manager.restore(snapshot, population)
        assert [a.genome for a in population.agents] == before
        assert population.generation == 1

    def test_restore_empty_snapshot(self, manager, population):
        """Test a snapshot without networks is refused."""
        snapshot = TrainingSnapshot(
            generation=3, best_fitness=0.0, average_fitness=0.0,
            worst_fitness=0.0, timestamp='',
        )

        assert not manager.restore(snapshot, population)

    def test_save_empty_population(self, manager, population):
        """Test an empty population is not saved."""
        population.agents = []

        assert manager.save(population) is None

    @pytest.mark.parametrize('generation, interval, expected', [
        (5, 5, True),
        (10, 5, True),
        (4, 5, False),
        (5, 0, False),
    ])
    def test_should_autosave(self, generation, interval, expected):
        """Test the autosave interval."""
        assert SnapshotManager.should_autosave(generation, interval) is expected

    def test_autosave_callback(self, manager, population):
        """Test the callback saves on matching generations."""
        population.add_generation_callback(manager.autosave_callback(interval=2))

        population.force_next_generation()
        assert manager.list_snapshots() == []

        population.force_next_generation()
        assert len(manager.list_snapshots()) == 1

    def test_top_n_from_config(self, tmp_path):
        """Test a manager without top_n keeps the config's snapshot_top_n networks."""
        population = PopulationFactory(config__snapshot_top_n=2)
        set_fitness(population, [1, 8, 3, 5, 0, 0, 0, 0])

        path = SnapshotManager(tmp_path).save(population, name='gen1')

        data = json.loads(path.read_text())
        assert [n['fitness'] for n in data['networks']] == [8.0, 5.0]

    def test_explicit_top_n_wins(self, manager):
        """Test an explicit top_n overrides the config."""
        population = PopulationFactory(config__snapshot_top_n=2)

        assert len(manager.build_snapshot(population).networks) == 3

    def test_autosave_interval_from_config(self, tmp_path):
        """Test the callback falls back to the config's autosave_interval."""
        population = PopulationFactory(config__snapshot_top_n=2, config__autosave_interval=1)
        manager = SnapshotManager(tmp_path)
        population.add_generation_callback(manager.autosave_callback())

        population.force_next_generation()

        snapshots = manager.list_snapshots()
        assert len(snapshots) == 1
        assert len(json.loads(snapshots[0].read_text())['networks']) == 2


class TestTrainingLogger:
    """Tests for the JSON-lines generation log."""

    def test_log_generation(self, tmp_path, population):
        """Test each finished generation becomes one entry."""
        run_log = TrainingLogger(tmp_path, experiment_name='run')
        population.add_generation_callback(run_log.log_generation)

        population.force_next_generation()
        population.force_next_generation()

        lines = run_log.log_file.read_text().splitlines()
        assert len(lines) == 2
        assert json.loads(lines[1])['step'] == 2

    def test_load_and_history(self, tmp_path, population):
        """Test a reloaded log converts back to generation stats."""
        writer = TrainingLogger(tmp_path, experiment_name='run')
        writer.log_generation(population, GenerationStats(generation=1, best_fitness=4.0))
        writer.log_generation(population, GenerationStats(generation=2, best_fitness=6.0))

        reader = TrainingLogger(tmp_path, experiment_name='run')
        reader.load()
        history = reader.history()

        assert [s.generation for s in history] == [1, 2]
        assert [s.best_fitness for s in history] == [4.0, 6.0]

    def test_metric_history(self, tmp_path):
        """Test one metric is extracted across entries."""
        run_log = TrainingLogger(tmp_path)
        run_log.log(1, {'best_fitness': 1.0})
        run_log.log(2, {'avg_fitness': 0.5})
        run_log.log(3, {'best_fitness': 3.0})

        assert run_log.get_metric_history('best_fitness') == ([1, 3], [1.0, 3.0])

    def test_summary(self, tmp_path):
        """Test the run summary."""
        run_log = TrainingLogger(tmp_path, experiment_name='run')
        run_log.log(1, {'best_fitness': 2.0})
        run_log.log(2, {'best_fitness': 5.0})

        summary = run_log.get_summary()

        assert summary['experiment_name'] == 'run'
        assert summary['total_generations'] == 2
        assert summary['best_fitness'] == 5.0

    def test_empty_summary(self, tmp_path):
        """Test an empty log has an empty summary."""
        assert TrainingLogger(tmp_path).get_summary() == {}
