"""
Fitness evaluation for NPC agents.

This module provides:
- RewardTracker: per-agent reward shaping and death conditions
- CheckpointTracker: ordered checkpoint rewards shared by a level
- Exploration and loop detectors used by the reward tracker
"""
from .fitness import (
    RewardConfig,
    RewardTracker,
    Telemetry,
    summarize_jumps,
)
from .checkpoints import (
    CheckpointConfig,
    CheckpointTracker,
)
from .exploration import (
    ExplorationGrid,
    LoopDetector,
    wrap_angle,
)

__all__ = [
    # Rewards
    'RewardConfig',
    'RewardTracker',
    'Telemetry',
    'summarize_jumps',

    # Checkpoints
    'CheckpointConfig',
    'CheckpointTracker',

    # Movement patterns
    'ExplorationGrid',
    'LoopDetector',
    'wrap_angle',
]
