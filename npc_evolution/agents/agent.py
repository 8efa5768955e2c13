"""
NPC agent: a genome plus the reward state it earns in one generation.

The agent does not simulate anything itself. The host engine reads its
sensors, calls think() for the action vector, moves the body, then
reports the new pose with update() and forwards physics events
(jumps, collisions, ground contact) to the on_* methods.

Agents are created once per population and reused across generations:
reset() swaps the genome in and clears the per-generation state.
"""
import logging
from typing import Any, Hashable, List, Optional, Sequence

import torch

from ..evaluation.checkpoints import CheckpointTracker
from ..evaluation.fitness import RewardConfig, RewardTracker, Telemetry
from ..networks.architectures import (
    ACTION_NAMES,
    JUMP_TRIGGER_THRESHOLD,
    LOWER_FORWARD_SENSOR,
    UPPER_FORWARD_SENSOR,
)
from ..networks.genome import Genome

logger = logging.getLogger(__name__)


class Agent:
    """
    One member of an evolving population.

    Attributes:
        agent_id: Identifier used by the checkpoint tracker.
        genome: Current policy network.
        rewards: Reward tracker for the current generation.
        checkpoint_tracker: Shared level checkpoints, or None.
        last_sensors: Sensor vector passed to the latest think().
        last_actions: Action vector returned by the latest think().

    Example:
        agent = Agent('npc_0', Genome((8, 8, 6, 4)), RewardConfig(), tracker)
        actions = agent.think(sensors)
        agent.update(position, heading, dt)
        if agent.is_dead:
            ...
    """

    def __init__(
        self,
        agent_id: Hashable,
        genome: Genome,
        reward_config: Optional[RewardConfig] = None,
        checkpoint_tracker: Optional[CheckpointTracker] = None,
        start_position: Sequence[float] = (0.0, 0.0, 0.0),
        start_heading: float = 0.0,
    ):
        """
        Create an agent.

        Args:
            agent_id: Unique identifier within the population.
            genome: Policy network.
            reward_config: Reward shaping constants.
            checkpoint_tracker: Level checkpoints (optional).
            start_position: Spawn position (x, y, z).
            start_heading: Spawn heading in degrees.
        """
        self.agent_id = agent_id
        self.genome = genome
        self.rewards = RewardTracker(reward_config, start_position, start_heading)
        self.checkpoint_tracker = checkpoint_tracker

        self.last_sensors: Optional[torch.Tensor] = None
        self.last_actions: List[float] = [0.0] * genome.output_size

        if checkpoint_tracker is not None:
            checkpoint_tracker.register(agent_id)

    @property
    def fitness(self) -> float:
        return self.rewards.fitness

    @property
    def is_dead(self) -> bool:
        return self.rewards.is_dead

    @property
    def telemetry(self) -> Telemetry:
        return self.rewards.telemetry()

    @property
    def checkpoints_reached(self) -> int:
        if self.checkpoint_tracker is None:
            return 0
        return self.checkpoint_tracker.checkpoints_reached(self.agent_id)

    def think(self, sensors: Any) -> List[float]:
        """
        Run the policy on a sensor vector.

        Args:
            sensors: Sensor readings (see networks.architectures).

        Returns:
            Action values in [-1, 1], one per output. All zeros while dead.
        """
        if self.is_dead:
            return [0.0] * self.genome.output_size

        self.last_sensors = self.genome.prepare_input(sensors)
        self.last_actions = self.genome.forward(self.last_sensors).tolist()
        return list(self.last_actions)

    def wants_to_jump(self) -> bool:
        """Jump output above threshold and the body is able to jump."""
        jump = ACTION_NAMES.index('jump')
        if len(self.last_actions) <= jump:
            return False
        return self.last_actions[jump] > JUMP_TRIGGER_THRESHOLD and self.rewards.can_jump()

    def update(
        self,
        position: Sequence[float],
        heading: float,
        dt: float,
        speed: Optional[float] = None,
    ) -> float:
        """
        Report the agent's new pose after a simulation step.

        Queries the checkpoint tracker for newly reached checkpoints and
        feeds everything to the reward tracker.

        Returns:
            Updated fitness.
        """
        if self.is_dead:
            return self.fitness

        earned = 0.0
        if self.checkpoint_tracker is not None:
            earned = self.checkpoint_tracker.check(self.agent_id, position)

        return self.rewards.tick(position, heading, dt, speed=speed, checkpoint_reward=earned)

    # ------------------------------------------------------------------
    # Engine events
    # ------------------------------------------------------------------

    def on_jump(self, sensors: Optional[Sequence[float]] = None) -> bool:
        """
        Score a jump that the body just performed.

        Args:
            sensors: Sensor vector at jump time. Defaults to the vector
                     from the latest think().

        Returns:
            True if the jump was correct.
        """
        if sensors is None:
            sensors = self.last_sensors
        if sensors is None:
            lower = upper = 0.0
        else:
            values = torch.as_tensor(sensors, dtype=torch.float32).flatten()
            lower = float(values[LOWER_FORWARD_SENSOR]) if values.numel() > LOWER_FORWARD_SENSOR else 0.0
            upper = float(values[UPPER_FORWARD_SENSOR]) if values.numel() > UPPER_FORWARD_SENSOR else 0.0

        correct = self.rewards.register_jump(lower, upper)
        logger.debug(
            f"Agent {self.agent_id} jump {'correct' if correct else 'incorrect'}, "
            f"efficiency {self.rewards.jump_efficiency:.0%}"
        )
        return correct

    def on_collision_enter(self, max_collisions: Optional[int] = None) -> bool:
        return self.rewards.register_collision(max_collisions)

    def on_collision_exit(self) -> None:
        self.rewards.collision_exit()

    def on_ground_changed(self, grounded: bool) -> None:
        self.rewards.set_grounded(grounded)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def kill(self, cause: str = 'external') -> None:
        self.rewards.kill(cause)

    def attach_checkpoints(self, tracker: Optional[CheckpointTracker]) -> None:
        """Point the agent at a different level's checkpoint tracker."""
        self.checkpoint_tracker = tracker
        if tracker is not None:
            tracker.register(self.agent_id)

    def reset(
        self,
        genome: Optional[Genome] = None,
        start_position: Optional[Sequence[float]] = None,
        start_heading: Optional[float] = None,
    ) -> None:
        """
        Prepare the agent for a new generation.

        Args:
            genome: New genome (keeps the current one if None).
            start_position: New spawn position.
            start_heading: New spawn heading.
        """
        if genome is not None:
            self.genome = genome

        self.rewards.reset(start_position, start_heading)
        self.last_sensors = None
        self.last_actions = [0.0] * self.genome.output_size

        if self.checkpoint_tracker is not None:
            self.checkpoint_tracker.reset_agent(self.agent_id)

    def __repr__(self) -> str:
        return f"Agent(id={self.agent_id!r}, fitness={self.fitness:.2f}, dead={self.is_dead})"
