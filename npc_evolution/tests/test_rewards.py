"""
Tests for reward shaping, exploration and loop detection.
"""
import pytest

from npc_evolution.evaluation import (
    ExplorationGrid,
    LoopDetector,
    RewardConfig,
    RewardTracker,
    summarize_jumps,
    wrap_angle,
)


def idle_ticks(tracker, count, dt=1.0, speed=1.0, checkpoint_reward=0.0):
    """Tick in place; the first tick may carry a checkpoint reward."""
    for i in range(count):
        tracker.tick(
            (0, 0, 0), 0.0, dt,
            speed=speed,
            checkpoint_reward=checkpoint_reward if i == 0 else 0.0,
        )


class TestWrapAngle:
    """Tests for wrap_angle."""

    @pytest.mark.parametrize('raw, wrapped', [
        (0.0, 0.0),
        (90.0, 90.0),
        (-340.0, 20.0),
        (340.0, -20.0),
        (180.0, 180.0),
        (-180.0, -180.0),
    ])
    def test_wrap(self, raw, wrapped):
        """Test differences wrap into [-180, 180]."""
        assert wrap_angle(raw) == pytest.approx(wrapped)


class TestExplorationGrid:
    """Tests for ExplorationGrid."""

    def test_cell_ignores_height(self):
        """Test cells come from x and z only."""
        grid = ExplorationGrid(grid_size=5.0)

        assert grid.cell((7.0, 100.0, -3.0)) == (1, -1)

    def test_visit_counts_unique_cells(self):
        """Test repeat visits do not add cells."""
        grid = ExplorationGrid(grid_size=5.0)

        assert grid.visit((1, 0, 1))
        assert not grid.visit((4, 0, 4))
        assert grid.visit((6, 0, 1))
        assert len(grid) == 2

    def test_invalid_size(self):
        """Test grid size must be positive."""
        with pytest.raises(ValueError):
            ExplorationGrid(grid_size=0)


class TestLoopDetector:
    """Tests for LoopDetector."""

    def test_no_check_before_interval(self):
        """Test the interval must be exceeded before a check runs."""
        detector = LoopDetector((0, 0, 0), interval=3.0)

        assert not detector.advance((0, 0, 0), 3.0)
        assert detector.consecutive_circles == 0

    def test_circle_counted_when_stationary(self):
        """Test staying near the anchor counts a circle."""
        detector = LoopDetector((0, 0, 0), interval=3.0, min_distance=5.0)

        assert detector.advance((1, 0, 1), 3.5)
        assert detector.consecutive_circles == 1

    def test_moving_resets_circles(self):
        """Test moving past min_distance resets the count."""
        detector = LoopDetector((0, 0, 0), interval=3.0, min_distance=5.0)
        detector.advance((0, 0, 0), 3.5)

        detector.advance((10, 0, 0), 3.5)

        assert detector.consecutive_circles == 0
        assert list(detector.anchor) == [10, 0, 0]

    def test_turn_accumulates_absolute_rotation(self):
        """Test rotation uses the shortest wrapped delta."""
        detector = LoopDetector((0, 0, 0), start_heading=170.0)

        delta = detector.turn(-170.0)

        assert delta == pytest.approx(20.0)
        assert detector.total_rotation == pytest.approx(20.0)

    def test_spin_ratio_without_distance(self):
        """Test the ratio is zero before any travel."""
        detector = LoopDetector((0, 0, 0))
        detector.turn(90.0)

        assert detector.spin_ratio(0.0) == 0.0
        assert detector.spin_ratio(9.0) == pytest.approx(10.0)


class TestRewardFormula:
    """Tests for the per-tick fitness formula."""

    def test_single_tick(self, tracker):
        """Test distance, exploration, displacement and time terms."""
        fitness = tracker.tick((3, 0, 4), 0.0, 1.0)

        # 0.5 * 5 + 2 * 1 cell + 0.3 * 5 - 0.1 * 1
        assert fitness == pytest.approx(5.9)
        assert tracker.total_distance == pytest.approx(5.0)
        assert tracker.distance_from_start == pytest.approx(5.0)
        assert tracker.unique_cells_visited == 1

    def test_time_penalty_capped(self, tracker):
        """Test the time penalty stops growing at max_time_penalty."""
        tracker.time_alive = 500.0
        tracker.accumulated_checkpoint_reward = 100.0

        assert tracker.formula_fitness() == pytest.approx(100.0 - 10.0)

    def test_checkpoint_reward_accumulates(self, tracker):
        """Test checkpoint rewards enter the base reward."""
        tracker.tick((0, 0, 0), 0.0, 0.5, speed=1.0, checkpoint_reward=32.0)

        # 32 + 2 * 1 cell - 0.05
        assert tracker.fitness == pytest.approx(33.95)
        assert tracker.accumulated_checkpoint_reward == 32.0

    def test_fitness_never_negative(self, tracker):
        """Test incorrect jumps cannot push fitness below zero."""
        tracker.register_jump(0.0, 0.0)
        tracker.tick((0, 0, 0), 0.0, 0.1, speed=1.0)

        assert tracker.fitness == 0.0

    def test_spin_penalty(self, tracker):
        """Test turning far more than moving costs a tenth of the loop penalty."""
        fitness = tracker.tick((1, 0, 0), 90.0, 0.1, speed=1.0)

        # formula 0.5 + 2 + 0.3 - 0.01, minus 10 * 0.1
        assert fitness == pytest.approx(1.79)
        assert tracker.total_rotation == pytest.approx(90.0)

    def test_telemetry_snapshot(self, tracker):
        """Test telemetry mirrors the counters."""
        tracker.tick((3, 0, 4), 0.0, 1.0)

        data = tracker.telemetry().to_dict()

        assert data['fitness'] == pytest.approx(5.9)
        assert data['unique_cells_visited'] == 1
        assert data['is_dead'] is False
        assert data['death_cause'] is None


class TestJumps:
    """Tests for jump scoring."""

    def test_correct_jump(self, tracker):
        """Test a low obstacle with a clear upper ray is rewarded."""
        tracker.tick((3, 0, 4), 0.0, 1.0)

        assert tracker.register_jump(0.5, 0.0)
        assert tracker.fitness == pytest.approx(15.9)
        assert tracker.correct_jumps == 1

    def test_correct_jump_enters_formula(self, tracker):
        """Test the next tick includes jump count and efficiency terms."""
        tracker.tick((3, 0, 4), 0.0, 1.0)
        tracker.register_jump(0.5, 0.0)

        tracker.tick((3, 0, 4), 0.0, 0.1)

        # 2.5 + 2 + 1.5 + 15 + 20 - 0.11
        assert tracker.fitness == pytest.approx(40.89)

    @pytest.mark.parametrize('lower, upper', [
        (0.0, 0.0),
        (0.5, 0.5),
        (0.3, 0.0),
        (0.0, 0.9),
    ])
    def test_incorrect_jump(self, tracker, lower, upper):
        """Test jumps without a low obstacle, or with a high one, are penalized."""
        tracker.accumulated_checkpoint_reward = 40.0
        tracker.tick((0, 0, 0), 0.0, 1.0, speed=1.0)
        before = tracker.fitness

        assert not tracker.register_jump(lower, upper)
        assert tracker.fitness == pytest.approx(before - 15.0)
        assert tracker.incorrect_jumps == 1

    def test_jump_efficiency(self, tracker):
        """Test efficiency is the correct fraction."""
        assert tracker.jump_efficiency == 0.0

        tracker.register_jump(0.5, 0.0)
        tracker.register_jump(0.0, 0.0)
        tracker.register_jump(0.5, 0.0)

        assert tracker.jump_efficiency == pytest.approx(2 / 3)

    def test_jump_cooldown(self, tracker):
        """Test a jump needs ground contact and the cooldown to pass."""
        assert tracker.can_jump()

        tracker.register_jump(0.5, 0.0)
        assert not tracker.can_jump()

        tracker.set_grounded(True)
        assert not tracker.can_jump()

        tracker.tick((0, 0, 0), 0.0, 1.5, speed=1.0)
        assert tracker.can_jump()

    def test_summarize_jumps(self):
        """Test jump counters aggregate over trackers."""
        a, b = RewardTracker(), RewardTracker()
        a.register_jump(0.5, 0.0)
        b.register_jump(0.0, 0.0)
        b.register_jump(0.5, 0.0)

        summary = summarize_jumps([a, b])

        assert summary['correct_jumps'] == 2
        assert summary['incorrect_jumps'] == 1
        assert summary['jump_efficiency'] == pytest.approx(2 / 3)


class TestCollisions:
    """Tests for collision handling."""

    def test_invincibility_window(self, tracker):
        """Test collisions right after spawn are ignored."""
        assert not tracker.register_collision()
        assert tracker.collisions == 0
        assert not tracker.is_dead

    def test_collision_after_invincibility_kills(self, tracker):
        """Test the default single collision is fatal once vulnerable."""
        tracker.tick((0, 0, 0), 0.0, 3.0, speed=1.0)

        assert tracker.register_collision()
        assert tracker.is_dead
        assert tracker.death_cause == 'collision'

    def test_collision_penalty_before_limit(self):
        """Test non-fatal collisions subtract the penalty."""
        tracker = RewardTracker(RewardConfig(invincibility_time=0.0, max_collisions=3))
        tracker.tick((10, 0, 0), 0.0, 1.0)
        assert tracker.fitness == pytest.approx(9.9)

        tracker.register_collision()
        assert tracker.fitness == pytest.approx(4.9)

        tracker.register_collision()
        assert tracker.fitness == 0.0
        assert not tracker.is_dead

        tracker.register_collision()
        assert tracker.is_dead

    def test_max_collisions_override(self):
        """Test the per-call limit takes precedence over the config."""
        tracker = RewardTracker(RewardConfig(invincibility_time=0.0, max_collisions=1))

        tracker.register_collision(max_collisions=2)

        assert not tracker.is_dead
        assert tracker.collisions == 1

    def test_sustained_wall_contact(self):
        """Test staying against a wall counts as repeated collisions."""
        tracker = RewardTracker(RewardConfig(invincibility_time=0.0, max_collisions=5))
        tracker.register_collision()

        tracker.tick((0, 0, 0), 0.0, 1.0, speed=1.0)
        assert tracker.collisions == 1

        tracker.tick((0, 0, 0), 0.0, 1.0, speed=1.0)
        assert tracker.collisions == 2

    def test_collision_exit_stops_wall_contact(self):
        """Test leaving the wall stops contact penalties."""
        tracker = RewardTracker(RewardConfig(invincibility_time=0.0, max_collisions=5))
        tracker.register_collision()
        tracker.collision_exit()

        idle_ticks(tracker, 3)

        assert tracker.collisions == 1


class TestDeath:
    """Tests for loop, idle and external death."""

    def test_loop_penalty_escalates(self):
        """Test each consecutive circle costs loop_penalty times the count."""
        tracker = RewardTracker(RewardConfig())

        idle_ticks(tracker, 4, checkpoint_reward=100.0)
        # 100 + 2 - 0.4, then one circle
        assert tracker.consecutive_circles == 1
        assert tracker.fitness == pytest.approx(91.6)

        tracker.tick((0, 0, 0), 0.0, 1.0, speed=1.0)
        tracker.tick((0, 0, 0), 0.0, 1.0, speed=1.0)
        tracker.tick((0, 0, 0), 0.0, 1.0, speed=1.0)
        tracker.tick((0, 0, 0), 0.0, 1.0, speed=1.0)
        # 100 + 2 - 0.8 - 10, then two circles
        assert tracker.consecutive_circles == 2
        assert tracker.fitness == pytest.approx(71.2)

    def test_loop_death(self):
        """Test the third consecutive circle kills with the flat penalty."""
        tracker = RewardTracker(RewardConfig(loop_penalty=0.0))

        idle_ticks(tracker, 11, checkpoint_reward=100.0)
        assert not tracker.is_dead

        tracker.tick((0, 0, 0), 0.0, 1.0, speed=1.0)

        assert tracker.is_dead
        assert tracker.death_cause == 'loop'
        assert tracker.fitness == pytest.approx(max(0.0, tracker.formula_fitness() - 50.0))
        assert tracker.fitness == pytest.approx(50.8)

    @pytest.mark.parametrize('checkpoint_reward, pre_flat, expected', [
        # 100 + 2 - 1.2 - 20, then -30 for the third circle
        (100.0, 50.8, 0.8),
        (60.0, 10.8, 0.0),
    ])
    def test_loop_death_with_default_penalty(self, checkpoint_reward, pre_flat, expected):
        """Test the escalating and flat loop penalties land on the same tick."""
        tracker = RewardTracker(RewardConfig())

        idle_ticks(tracker, 11, checkpoint_reward=checkpoint_reward)
        assert not tracker.is_dead
        assert tracker.consecutive_circles == 2

        tracker.tick((0, 0, 0), 0.0, 1.0, speed=1.0)

        assert tracker.is_dead
        assert tracker.death_cause == 'loop'
        assert tracker.consecutive_circles == 3
        assert tracker.fitness == pytest.approx(max(0.0, pre_flat - 50.0))
        assert tracker.fitness == pytest.approx(expected)

    def test_moving_away_clears_circles(self):
        """Test moving far between checks resets the circle count."""
        tracker = RewardTracker(RewardConfig())
        idle_ticks(tracker, 4)
        assert tracker.consecutive_circles == 1

        tracker.tick((20, 0, 0), 0.0, 4.0)

        assert tracker.consecutive_circles == 0

    def test_idle_death(self, tracker):
        """Test standing still past max_idle_time kills."""
        idle_ticks(tracker, 5, speed=None)
        assert not tracker.is_dead

        tracker.tick((0, 0, 0), 0.0, 1.0)

        assert tracker.is_dead
        assert tracker.death_cause == 'idle'

    def test_movement_resets_idle(self, tracker):
        """Test any tick above min_speed clears the idle timer."""
        idle_ticks(tracker, 3, speed=0.0)
        assert tracker.idle_time == pytest.approx(3.0)

        tracker.tick((0, 0, 0), 0.0, 1.0, speed=2.0)

        assert tracker.idle_time == 0.0

    def test_dead_tracker_is_frozen(self, tracker):
        """Test ticks and events after death change nothing."""
        tracker.tick((3, 0, 4), 0.0, 1.0)
        tracker.kill('fell')
        fitness = tracker.fitness

        assert tracker.tick((30, 0, 40), 0.0, 1.0) == fitness
        assert not tracker.register_jump(0.5, 0.0)
        assert not tracker.register_collision()
        assert tracker.correct_jumps == 0
        assert tracker.total_distance == pytest.approx(5.0)
        assert tracker.death_cause == 'fell'

    def test_kill_keeps_first_cause(self, tracker):
        """Test a second kill does not overwrite the cause."""
        tracker.kill('fell')
        tracker.kill('external')

        assert tracker.death_cause == 'fell'

    def test_reset_restores_everything(self, tracker):
        """Test reset clears counters, grid and death state."""
        tracker.tick((30, 0, 40), 45.0, 1.0)
        tracker.register_jump(0.5, 0.0)
        tracker.kill()

        tracker.reset(start_position=(5, 0, 5))

        assert tracker.fitness == 0.0
        assert not tracker.is_dead
        assert tracker.death_cause is None
        assert tracker.unique_cells_visited == 0
        assert tracker.correct_jumps == 0
        assert tracker.total_rotation == 0.0
        assert tracker.can_jump()
        assert list(tracker.start_position) == [5, 0, 5]


class TestRewardConfig:
    """Tests for RewardConfig validation."""

    def test_defaults(self):
        """Test the documented defaults."""
        config = RewardConfig()

        assert config.loop_penalty == 10.0
        assert config.max_loop == 3
        assert config.exploration_bonus == 2.0
        assert config.max_collisions == 1
        assert config.invincibility_time == 3.0

    def test_invalid_max_loop(self):
        """Test max_loop must be at least 1."""
        with pytest.raises(ValueError):
            RewardConfig(max_loop=0)

    def test_dict_roundtrip(self):
        """Test to_dict/from_dict preserve values."""
        config = RewardConfig(loop_penalty=4.0, grid_size=2.5)

        assert RewardConfig.from_dict(config.to_dict()) == config
