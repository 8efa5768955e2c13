"""
Tests for the inspection command line.
"""
import pytest

from npc_evolution.cli import build_parser, main
from npc_evolution.evolution import GenerationStats
from npc_evolution.training import SnapshotManager, TrainingLogger

from .factories import set_fitness


@pytest.fixture
def snapshot_path(tmp_path, population):
    """Save a snapshot of a small population and return its path."""
    set_fitness(population, [1, 8, 3, 5, 0, 0, 0, 0])
    return SnapshotManager(tmp_path, top_n=3).save(population, name='gen1')


@pytest.fixture
def log_path(tmp_path, population):
    """Write a three-generation run log and return its path."""
    run_log = TrainingLogger(tmp_path, experiment_name='run')
    for generation, best in enumerate([2.0, 5.0, 9.0], start=1):
        run_log.log_generation(
            population,
            GenerationStats(generation=generation, best_fitness=best, avg_fitness=best / 2),
        )
    return run_log.log_file


class TestParser:
    """Tests for argument parsing."""

    def test_command_required(self):
        """Test a subcommand must be given."""
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_inspect_defaults(self):
        """Test inspect defaults to the best network."""
        options = build_parser().parse_args(['inspect', 'snap.json'])

        assert options.index == 0
        assert options.plot_dir is None


class TestSummaryCommand:
    """Tests for `summary`."""

    def test_summary(self, snapshot_path, capsys):
        """Test the snapshot summary is printed."""
        assert main(['summary', str(snapshot_path)]) == 0

        out = capsys.readouterr().out
        assert 'Generation 1' in out
        assert 'best=8.00' in out
        assert 'Saved networks: 3' in out

    def test_missing_snapshot(self, tmp_path, capsys):
        """Test a missing file exits with an error."""
        assert main(['summary', str(tmp_path / 'missing.json')]) == 1
        assert 'does not exist' in capsys.readouterr().err

    def test_corrupt_snapshot(self, tmp_path, capsys):
        """Test a malformed file exits with an error."""
        path = tmp_path / 'broken.json'
        path.write_text('[]')

        assert main(['summary', str(path)]) == 1
        assert 'could not be read' in capsys.readouterr().err


class TestInspectCommand:
    """Tests for `inspect`."""

    def test_inspect(self, snapshot_path, capsys):
        """Test the best network is described."""
        assert main(['inspect', str(snapshot_path)]) == 0

        out = capsys.readouterr().out
        assert 'Network 0: fitness 8.00' in out
        assert 'NETWORK SUMMARY' in out

    def test_inspect_with_plots(self, snapshot_path, tmp_path):
        """Test plots are written to the plot directory."""
        plot_dir = tmp_path / 'plots'

        assert main(['inspect', str(snapshot_path), '--index', '1', '--plot-dir', str(plot_dir)]) == 0

        assert (plot_dir / 'network_1_weights.png').exists()
        assert (plot_dir / 'network_1_influence.png').exists()

    def test_index_out_of_range(self, snapshot_path, capsys):
        """Test an unknown network index exits with an error."""
        assert main(['inspect', str(snapshot_path), '--index', '5']) == 1
        assert 'out of range' in capsys.readouterr().err


class TestPlotCommand:
    """Tests for `plot`."""

    def test_plot(self, log_path, tmp_path):
        """Test fitness and diversity plots are written."""
        fitness = tmp_path / 'fitness.png'
        diversity = tmp_path / 'diversity.png'

        assert main(['plot', str(log_path), '--output', str(fitness), '--diversity', str(diversity)]) == 0

        assert fitness.exists()
        assert diversity.exists()

    def test_missing_log(self, tmp_path):
        """Test a missing log exits with an error."""
        assert main(['plot', str(tmp_path / 'none.jsonl'), '--output', str(tmp_path / 'x.png')]) == 1

    def test_empty_log(self, tmp_path):
        """Test a log without entries exits with an error."""
        path = tmp_path / 'empty.jsonl'
        path.write_text('')

        assert main(['plot', str(path), '--output', str(tmp_path / 'x.png')]) == 1
