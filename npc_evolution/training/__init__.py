"""
Persistence for evolution runs.

This module provides:
- SnapshotManager: save / load / restore the top genomes of a generation
- TrainingSnapshot, SerializedNetwork: the snapshot file format
- TrainingLogger: JSON-lines generation log
"""
from .snapshots import (
    ACTIVE_WEIGHT_THRESHOLD,
    SerializedNetwork,
    SnapshotManager,
    TrainingLogger,
    TrainingSnapshot,
    compute_progress_metrics,
)

__all__ = [
    'ACTIVE_WEIGHT_THRESHOLD',
    'SerializedNetwork',
    'SnapshotManager',
    'TrainingLogger',
    'TrainingSnapshot',
    'compute_progress_metrics',
]
