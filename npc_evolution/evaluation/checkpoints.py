"""
Ordered checkpoint tracking.

A level supplies an ordered list of checkpoint positions. Each agent
earns a one-time reward the first time it enters a checkpoint's radius:
more if the checkpoint is the next one in sequence, the flat base reward
otherwise.

One tracker is active per level. It is handed to the population as an
explicit dependency and swapped (and cleared) on level change.
"""
import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Hashable, List, Sequence, Set

import numpy as np

logger = logging.getLogger(__name__)


@dataclass
class CheckpointConfig:
    """Reward settings for a checkpoint course."""
    radius: float = 3.0
    base_reward: float = 20.0
    order_bonus_multiplier: float = 1.5
    progress_bonus: float = 2.0

    def __post_init__(self):
        if self.radius <= 0:
            raise ValueError(f"Checkpoint radius must be positive, got {self.radius}")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CheckpointConfig':
        return cls(**data)


class CheckpointTracker:
    """
    Track which checkpoints each agent has reached, and in what order.

    Per agent it keeps the set of visited checkpoint indices and the
    highest index reached in strict sequence (-1 before the first).

    Example:
        tracker = CheckpointTracker([(0, 0, 0), (10, 0, 0), (20, 0, 0)])
        reward = tracker.check('npc_0', position)
    """

    def __init__(
        self,
        positions: Sequence[Sequence[float]],
        config: CheckpointConfig = None,
    ):
        """
        Initialize the tracker.

        Args:
            positions: Ordered checkpoint positions.
            config: Reward settings. Defaults to CheckpointConfig().
        """
        self.positions: List[np.ndarray] = [
            np.asarray(p, dtype=float) for p in positions
        ]
        self.config = config or CheckpointConfig()

        self._visited: Dict[Hashable, Set[int]] = {}
        self._last_orderly: Dict[Hashable, int] = {}

    def __len__(self) -> int:
        return len(self.positions)

    def register(self, agent_id: Hashable) -> None:
        if agent_id not in self._visited:
            self._visited[agent_id] = set()
            self._last_orderly[agent_id] = -1

    def unregister(self, agent_id: Hashable) -> None:
        self._visited.pop(agent_id, None)
        self._last_orderly.pop(agent_id, None)

    def is_registered(self, agent_id: Hashable) -> bool:
        return agent_id in self._visited

    def check(self, agent_id: Hashable, position: Sequence[float]) -> float:
        """
        Award rewards for checkpoints newly entered at this position.

        Checkpoints already in the agent's visited set never pay again.

        Args:
            agent_id: Agent identifier (registered on first use).
            position: Current agent position.

        Returns:
            Sum of rewards for checkpoints crossed during this call.
        """
        self.register(agent_id)

        position = np.asarray(position, dtype=float)
        visited = self._visited[agent_id]
        earned = 0.0

        for index, checkpoint in enumerate(self.positions):
            if index in visited:
                continue
            if np.linalg.norm(position - checkpoint) >= self.config.radius:
                continue

            visited.add(index)

            in_order = index == self._last_orderly[agent_id] + 1
            reward = self.checkpoint_reward(index, in_order)
            earned += reward

            if in_order:
                self._last_orderly[agent_id] = index

            logger.debug(
                f"Agent {agent_id} reached checkpoint {index} "
                f"({'in order' if in_order else 'out of order'}), reward {reward:.1f}"
            )

        return earned

    def checkpoint_reward(self, index: int, in_order: bool) -> float:
        """Reward for reaching checkpoint `index`."""
        if in_order:
            return (
                self.config.base_reward * self.config.order_bonus_multiplier
                + (index + 1) * self.config.progress_bonus
            )
        return self.config.base_reward

    def reset_agent(self, agent_id: Hashable) -> None:
        """Forget an agent's progress for a new generation."""
        if agent_id in self._visited:
            self._visited[agent_id].clear()
            self._last_orderly[agent_id] = -1

    def clear_all(self) -> None:
        """Drop every agent (level change)."""
        self._visited.clear()
        self._last_orderly.clear()

    def checkpoints_reached(self, agent_id: Hashable) -> int:
        return len(self._visited.get(agent_id, ()))

    def orderly_progress(self, agent_id: Hashable) -> int:
        """Number of checkpoints reached in strict sequence."""
        return self._last_orderly.get(agent_id, -1) + 1

    def visited(self, agent_id: Hashable) -> Set[int]:
        return set(self._visited.get(agent_id, ()))
