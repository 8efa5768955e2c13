"""
Pytest fixtures for the evolution engine tests.

Provides fixtures for:
- Genomes and sensor vectors
- Checkpoint courses
- Agents and populations
"""
import pytest
import torch
from typing import List

from npc_evolution.evaluation import CheckpointTracker, RewardConfig, RewardTracker

from .factories import (
    AgentFactory,
    CheckpointTrackerFactory,
    GenomeFactory,
    PopulationFactory,
)


@pytest.fixture
def genome():
    """Return a default (8, 8, 6, 4) genome."""
    return GenomeFactory()


@pytest.fixture
def generator() -> torch.Generator:
    """Return a seeded torch generator."""
    return torch.Generator().manual_seed(0)


@pytest.fixture
def sensors() -> List[float]:
    """Return a plausible sensor vector: 5 rays, lower/upper forward rays, bias."""
    return [0.1, 0.0, 0.4, 0.0, 0.2, 0.6, 0.0, 1.0]


@pytest.fixture
def course() -> CheckpointTracker:
    """Return a straight three-checkpoint course along x."""
    return CheckpointTrackerFactory()


@pytest.fixture
def tracker() -> RewardTracker:
    """Return a reward tracker with default settings at the origin."""
    return RewardTracker(RewardConfig(), start_position=(0, 0, 0))


@pytest.fixture
def agent():
    """Return an agent without checkpoints."""
    return AgentFactory()


@pytest.fixture
def population():
    """Return a small seeded population."""
    return PopulationFactory()
