"""
Reward shaping for NPC agents.

The RewardTracker turns per-tick telemetry (position, heading, speed)
and discrete events (jumps, collisions) into a single fitness scalar.

Fitness is recomputed from running counters on every tick:

    fitness = max(0, base_reward - time_penalty - repetitive_penalty)

    base_reward = 0.5 * total_distance
                + exploration_bonus * unique_cells_visited
                + 0.3 * distance_from_start
                + 15 * correct_jumps - 8 * incorrect_jumps
                + 20 * jump_efficiency
                + accumulated_checkpoint_reward
    time_penalty = min(0.1 * time_alive, 10)
    repetitive_penalty = consecutive_circles * loop_penalty

On top of that, a few behaviours adjust fitness directly: jump
rewards and collision penalties (until the next recompute), the spin
penalty, the escalating loop penalty and the flat penalty for the
third consecutive circle. Fitness never goes below zero.

Death conditions: too many collisions, circling max_loop times in a
row, standing still longer than max_idle_time. A dead tracker is
frozen.
"""
import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Sequence

import numpy as np

from .exploration import ExplorationGrid, LoopDetector

logger = logging.getLogger(__name__)


@dataclass
class RewardConfig:
    """Reward shaping constants for one agent."""

    # Anti-loop
    loop_penalty: float = 10.0
    checkpoint_interval: float = 3.0
    min_checkpoint_distance: float = 5.0
    max_loop: int = 3
    loop_death_penalty: float = 50.0
    max_rotation_ratio: float = 10.0

    # Exploration
    exploration_bonus: float = 2.0
    grid_size: float = 5.0

    # Formula weights
    distance_weight: float = 0.5
    distance_from_start_weight: float = 0.3
    correct_jump_weight: float = 15.0
    incorrect_jump_weight: float = 8.0
    jump_efficiency_weight: float = 20.0
    time_penalty_rate: float = 0.1
    max_time_penalty: float = 10.0

    # Jumps
    correct_jump_reward: float = 10.0
    incorrect_jump_penalty: float = 15.0
    jump_sensor_threshold: float = 0.3
    jump_cooldown: float = 1.0

    # Collisions
    collision_penalty: float = 5.0
    max_collisions: int = 1
    invincibility_time: float = 3.0
    max_wall_contact_time: float = 2.0

    # Idle
    min_speed: float = 0.5
    max_idle_time: float = 5.0

    def __post_init__(self):
        if self.max_loop < 1:
            raise ValueError(f"max_loop must be >= 1, got {self.max_loop}")
        if self.max_collisions < 1:
            raise ValueError(f"max_collisions must be >= 1, got {self.max_collisions}")
        if self.checkpoint_interval <= 0:
            raise ValueError(f"checkpoint_interval must be positive, got {self.checkpoint_interval}")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RewardConfig':
        return cls(**data)


@dataclass(frozen=True)
class Telemetry:
    """Read-only snapshot of a tracker's behaviour counters."""
    fitness: float
    time_alive: float
    total_distance: float
    distance_from_start: float
    unique_cells_visited: int
    correct_jumps: int
    incorrect_jumps: int
    jump_efficiency: float
    collisions: int
    consecutive_circles: int
    total_rotation: float
    checkpoint_reward: float
    is_dead: bool
    death_cause: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class RewardTracker:
    """
    Accumulate reward terms for one agent over one generation.

    Attributes:
        config: Reward constants.
        fitness: Current fitness (never negative).
        is_dead: True once any death condition fired.

    Example:
        tracker = RewardTracker(RewardConfig(), start_position=(0, 0, 0))
        tracker.tick(position, heading, dt=0.02, checkpoint_reward=earned)
        if tracker.is_dead:
            ...
    """

    def __init__(
        self,
        config: Optional[RewardConfig] = None,
        start_position: Sequence[float] = (0.0, 0.0, 0.0),
        start_heading: float = 0.0,
    ):
        """
        Initialize the tracker.

        Args:
            config: Reward constants. Defaults to RewardConfig().
            start_position: Spawn position (x, y, z).
            start_heading: Spawn heading in degrees.
        """
        self.config = config or RewardConfig()
        self.grid = ExplorationGrid(self.config.grid_size)
        self.loops = LoopDetector(
            start_position,
            start_heading,
            interval=self.config.checkpoint_interval,
            min_distance=self.config.min_checkpoint_distance,
        )
        self.reset(start_position, start_heading)

    def reset(
        self,
        start_position: Optional[Sequence[float]] = None,
        start_heading: Optional[float] = None,
    ) -> None:
        """
        Restore every counter for a new generation.

        Args:
            start_position: New spawn position (keeps the previous one if None).
            start_heading: New spawn heading (keeps the previous one if None).
        """
        if start_position is not None:
            self.start_position = np.asarray(start_position, dtype=float)
        if start_heading is not None:
            self.start_heading = float(start_heading)

        self.last_position = self.start_position.copy()

        self.fitness = 0.0
        self.is_dead = False
        self.death_cause: Optional[str] = None

        self.time_alive = 0.0
        self.total_distance = 0.0
        self.distance_from_start = 0.0
        self.accumulated_checkpoint_reward = 0.0

        self.correct_jumps = 0
        self.incorrect_jumps = 0
        self.last_jump_time: Optional[float] = None
        self.is_grounded = True

        self.collisions = 0
        self.in_wall_contact = False
        self.wall_contact_time = 0.0
        self.last_collision_penalty_time = 0.0

        self.idle_time = 0.0

        self.grid.clear()
        self.loops.reset(self.start_position, self.start_heading)

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def unique_cells_visited(self) -> int:
        return len(self.grid)

    @property
    def consecutive_circles(self) -> int:
        return self.loops.consecutive_circles

    @property
    def total_rotation(self) -> float:
        return self.loops.total_rotation

    @property
    def jump_efficiency(self) -> float:
        """Fraction of jumps that were correct, 0 when there were none."""
        total = self.correct_jumps + self.incorrect_jumps
        if total == 0:
            return 0.0
        return self.correct_jumps / total

    def formula_fitness(self) -> float:
        """Fitness from the running counters alone, floored at zero."""
        c = self.config

        base_reward = (
            c.distance_weight * self.total_distance
            + c.exploration_bonus * self.unique_cells_visited
            + c.distance_from_start_weight * self.distance_from_start
            + c.correct_jump_weight * self.correct_jumps
            - c.incorrect_jump_weight * self.incorrect_jumps
            + c.jump_efficiency_weight * self.jump_efficiency
            + self.accumulated_checkpoint_reward
        )
        time_penalty = min(c.time_penalty_rate * self.time_alive, c.max_time_penalty)
        repetitive_penalty = self.consecutive_circles * c.loop_penalty

        return max(0.0, base_reward - time_penalty - repetitive_penalty)

    def telemetry(self) -> Telemetry:
        return Telemetry(
            fitness=self.fitness,
            time_alive=self.time_alive,
            total_distance=self.total_distance,
            distance_from_start=self.distance_from_start,
            unique_cells_visited=self.unique_cells_visited,
            correct_jumps=self.correct_jumps,
            incorrect_jumps=self.incorrect_jumps,
            jump_efficiency=self.jump_efficiency,
            collisions=self.collisions,
            consecutive_circles=self.consecutive_circles,
            total_rotation=self.total_rotation,
            checkpoint_reward=self.accumulated_checkpoint_reward,
            is_dead=self.is_dead,
            death_cause=self.death_cause,
        )

    # ------------------------------------------------------------------
    # Per-tick update
    # ------------------------------------------------------------------

    def tick(
        self,
        position: Sequence[float],
        heading: float,
        dt: float,
        speed: Optional[float] = None,
        checkpoint_reward: float = 0.0,
    ) -> float:
        """
        Advance the tracker by one simulation step.

        Args:
            position: Current position (x, y, z).
            heading: Current heading in degrees.
            dt: Seconds since the previous tick.
            speed: Current speed. Derived from displacement / dt if None.
            checkpoint_reward: Checkpoint reward newly earned this tick.

        Returns:
            Fitness after the update.
        """
        if self.is_dead:
            return self.fitness

        position = np.asarray(position, dtype=float)
        moved = float(np.linalg.norm(position - self.last_position))

        self.time_alive += dt
        self.total_distance += moved
        self.last_position = position

        self.grid.visit(position)
        self.distance_from_start = float(np.linalg.norm(position - self.start_position))

        if checkpoint_reward > 0:
            self.accumulated_checkpoint_reward += checkpoint_reward

        self.fitness = self.formula_fitness()

        self._check_spinning(heading)
        self._check_looping(position, dt)
        if self.is_dead:
            return self.fitness

        if speed is None:
            speed = moved / dt if dt > 0 else 0.0
        self._check_idle(speed, dt)
        if self.is_dead:
            return self.fitness

        self._check_wall_contact(dt)
        return self.fitness

    def _adjust(self, amount: float) -> None:
        self.fitness = max(0.0, self.fitness + amount)

    def _die(self, cause: str) -> None:
        self.is_dead = True
        self.death_cause = cause
        logger.debug(f"Agent died ({cause}) with fitness {self.fitness:.2f}")

    def _check_spinning(self, heading: float) -> None:
        self.loops.turn(heading)
        if self.loops.spin_ratio(self.total_distance) > self.config.max_rotation_ratio:
            self._adjust(-self.config.loop_penalty * 0.1)

    def _check_looping(self, position: np.ndarray, dt: float) -> None:
        if not self.loops.advance(position, dt):
            return

        circles = self.loops.consecutive_circles
        if circles == 0:
            return

        self._adjust(-self.config.loop_penalty * circles)

        if circles >= self.config.max_loop:
            self._adjust(-self.config.loop_death_penalty)
            self._die('loop')

    def _check_idle(self, speed: float, dt: float) -> None:
        if speed < self.config.min_speed:
            self.idle_time += dt
            if self.idle_time > self.config.max_idle_time:
                self._die('idle')
        else:
            self.idle_time = 0.0

    def _check_wall_contact(self, dt: float) -> None:
        if not self.in_wall_contact:
            return

        self.wall_contact_time += dt
        if self.wall_contact_time < self.config.max_wall_contact_time:
            return

        since_penalty = self.time_alive - self.last_collision_penalty_time
        if since_penalty >= self.config.max_wall_contact_time:
            self._process_collision(self.config.max_collisions)
            self.wall_contact_time = 0.0

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def can_jump(self) -> bool:
        """Grounded and outside the jump cooldown."""
        if self.is_dead or not self.is_grounded:
            return False
        if self.last_jump_time is None:
            return True
        return self.time_alive - self.last_jump_time > self.config.jump_cooldown

    def register_jump(self, lower_sensor: float, upper_sensor: float) -> bool:
        """
        Score a jump against the forward obstacle sensors.

        A jump is correct when there is a low obstacle ahead and no high
        one. Correct jumps earn an immediate reward, any other jump is
        penalized.

        Args:
            lower_sensor: Lower forward ray reading.
            upper_sensor: Upper forward ray reading.

        Returns:
            True if the jump was correct. False for an incorrect jump or
            when the agent is dead.
        """
        if self.is_dead:
            return False

        threshold = self.config.jump_sensor_threshold
        correct = lower_sensor > threshold and not upper_sensor > threshold

        if correct:
            self.correct_jumps += 1
            self._adjust(self.config.correct_jump_reward)
        else:
            self.incorrect_jumps += 1
            self._adjust(-self.config.incorrect_jump_penalty)

        self.last_jump_time = self.time_alive
        self.is_grounded = False
        return correct

    def register_collision(self, max_collisions: Optional[int] = None) -> bool:
        """
        Handle the start of contact with an obstacle.

        Ignored during the spawn invincibility window.

        Args:
            max_collisions: Collision count that kills the agent.
                            Defaults to config.max_collisions.

        Returns:
            True if the collision was counted.
        """
        if self.is_dead:
            return False
        if self.time_alive < self.config.invincibility_time:
            return False

        self.in_wall_contact = True
        self.wall_contact_time = 0.0
        self._process_collision(max_collisions or self.config.max_collisions)
        return True

    def _process_collision(self, max_collisions: int) -> None:
        self.collisions += 1

        if self.collisions >= max_collisions:
            self._die('collision')
        else:
            self._adjust(-self.config.collision_penalty)
            self.last_collision_penalty_time = self.time_alive

    def collision_exit(self) -> None:
        self.in_wall_contact = False
        self.wall_contact_time = 0.0

    def set_grounded(self, grounded: bool) -> None:
        if not self.is_dead:
            self.is_grounded = bool(grounded)

    def kill(self, cause: str = 'external') -> None:
        if not self.is_dead:
            self._die(cause)

    def __repr__(self) -> str:
        state = 'dead' if self.is_dead else 'alive'
        return f"RewardTracker(fitness={self.fitness:.2f}, {state})"


def summarize_jumps(trackers: Sequence[RewardTracker]) -> Dict[str, float]:
    """Aggregate jump counters over several trackers."""
    correct = sum(t.correct_jumps for t in trackers)
    incorrect = sum(t.incorrect_jumps for t in trackers)
    total = correct + incorrect
    return {
        'correct_jumps': correct,
        'incorrect_jumps': incorrect,
        'jump_efficiency': correct / total if total else 0.0,
    }
