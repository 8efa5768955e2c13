"""
Preset genome topologies and the sensor/action layout they assume.

The default NPC reads 8 sensors and drives 4 actions:

Sensors:
    0-4  Obstacle rays fanned from -90 to +90 degrees (1 - hit / range)
    5    Lower forward ray (jumpable obstacles)
    6    Upper forward ray (obstacles too high to jump)
    7    Constant 1.0 bias input

Actions:
    0 movement    forward thrust
    1 turn_left
    2 turn_right
    3 jump        triggers above 0.5
"""
from typing import Optional, Sequence, Tuple

ACTION_NAMES: Tuple[str, ...] = ('movement', 'turn_left', 'turn_right', 'jump')

SENSOR_COUNT = 8
LOWER_FORWARD_SENSOR = 5
UPPER_FORWARD_SENSOR = 6
BIAS_SENSOR = 7

JUMP_TRIGGER_THRESHOLD = 0.5


def npc_architecture(
    input_size: int = SENSOR_COUNT,
    hidden_sizes: Optional[Sequence[int]] = None,
    output_size: int = len(ACTION_NAMES),
) -> Tuple[int, ...]:
    """
    Default NPC topology.

    Architecture:
        Input (8) -> Hidden (8, tanh) -> Hidden (6, tanh) -> Output (4, tanh)

    Args:
        input_size: Sensor count.
        hidden_sizes: Hidden layer sizes. Default [8, 6].
        output_size: Action count.

    Returns:
        Layer sizes tuple.
    """
    if hidden_sizes is None:
        hidden_sizes = [8, 6]

    return create_mlp_architecture(input_size, output_size, hidden_sizes)


def create_mlp_architecture(
    input_size: int,
    output_size: int,
    hidden_sizes: Sequence[int],
) -> Tuple[int, ...]:
    """
    Generic feedforward topology.

    Example:
        sizes = create_mlp_architecture(12, 4, [16, 8])  # (12, 16, 8, 4)
    """
    return (input_size, *hidden_sizes, output_size)


def minimal_architecture(input_size: int = SENSOR_COUNT) -> Tuple[int, ...]:
    """
    Minimal topology for testing: inputs wired straight to the actions.
    """
    return (input_size, len(ACTION_NAMES))
