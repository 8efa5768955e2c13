"""
Movement-pattern detectors used by the reward tracker.

- ExplorationGrid: counts distinct grid cells visited on the x/z plane
- LoopDetector: flags agents that stay near the same spot over
  successive intervals, and agents that spin in place
"""
from typing import Sequence, Set, Tuple

import numpy as np


def wrap_angle(degrees: float) -> float:
    """Wrap an angle difference into [-180, 180]."""
    wrapped = (degrees + 180.0) % 360.0 - 180.0
    if wrapped == -180.0 and degrees > 0:
        return 180.0
    return wrapped


class ExplorationGrid:
    """
    Quantize positions onto a square grid over the ground plane.

    A position (x, y, z) maps to cell (floor(x / size), floor(z / size));
    height is ignored.
    """

    def __init__(self, grid_size: float = 5.0):
        if grid_size <= 0:
            raise ValueError(f"grid_size must be positive, got {grid_size}")
        self.grid_size = grid_size
        self.visited: Set[Tuple[int, int]] = set()

    def cell(self, position: Sequence[float]) -> Tuple[int, int]:
        x, z = position[0], position[2]
        return (
            int(np.floor(x / self.grid_size)),
            int(np.floor(z / self.grid_size)),
        )

    def visit(self, position: Sequence[float]) -> bool:
        """Mark the position's cell visited. Returns True on first visit."""
        cell = self.cell(position)
        if cell in self.visited:
            return False
        self.visited.add(cell)
        return True

    def __len__(self) -> int:
        return len(self.visited)

    def clear(self) -> None:
        self.visited.clear()


class LoopDetector:
    """
    Detect circling and spinning.

    Circling: every `interval` seconds the current position is compared
    with the one recorded at the previous check. Moving less than
    `min_distance` counts as one more consecutive circle; moving far
    enough resets the count.

    Spinning: total absolute heading change divided by total distance
    travelled. A high ratio means turning without getting anywhere.
    """

    def __init__(
        self,
        start_position: Sequence[float],
        start_heading: float = 0.0,
        interval: float = 3.0,
        min_distance: float = 5.0,
    ):
        self.interval = interval
        self.min_distance = min_distance
        self.reset(start_position, start_heading)

    def reset(self, start_position: Sequence[float], start_heading: float = 0.0) -> None:
        self.anchor = np.asarray(start_position, dtype=float)
        self.last_heading = float(start_heading)
        self.total_rotation = 0.0
        self.consecutive_circles = 0
        self._timer = 0.0

    def advance(self, position: Sequence[float], dt: float) -> bool:
        """
        Advance the interval timer.

        Returns:
            True if an interval check ran on this call. When it did and
            the agent barely moved, consecutive_circles was incremented;
            otherwise it was reset to 0.
        """
        self._timer += dt
        if self._timer <= self.interval:
            return False

        position = np.asarray(position, dtype=float)
        if np.linalg.norm(position - self.anchor) < self.min_distance:
            self.consecutive_circles += 1
        else:
            self.consecutive_circles = 0

        self.anchor = position
        self._timer = 0.0
        return True

    def turn(self, heading: float) -> float:
        """Accumulate heading change (degrees) and return the wrapped delta."""
        delta = wrap_angle(float(heading) - self.last_heading)
        self.total_rotation += abs(delta)
        self.last_heading = float(heading)
        return delta

    def spin_ratio(self, total_distance: float) -> float:
        if total_distance <= 0:
            return 0.0
        return self.total_rotation / total_distance
