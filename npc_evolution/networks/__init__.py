"""
Neural network genomes for NPC policies.

This module provides:
- Genome: fixed-topology tanh network with genetic operators
- Preset topologies and the sensor/action layout they assume
- Flat weight serialization (to_dict / from_dict)
"""
from .genome import Genome, ShapeMismatchError
from .architectures import (
    ACTION_NAMES,
    SENSOR_COUNT,
    LOWER_FORWARD_SENSOR,
    UPPER_FORWARD_SENSOR,
    BIAS_SENSOR,
    JUMP_TRIGGER_THRESHOLD,
    npc_architecture,
    create_mlp_architecture,
    minimal_architecture,
)

__all__ = [
    # Genome
    'Genome',
    'ShapeMismatchError',

    # Layout
    'ACTION_NAMES',
    'SENSOR_COUNT',
    'LOWER_FORWARD_SENSOR',
    'UPPER_FORWARD_SENSOR',
    'BIAS_SENSOR',
    'JUMP_TRIGGER_THRESHOLD',

    # Architectures
    'npc_architecture',
    'create_mlp_architecture',
    'minimal_architecture',
]
