"""
Neuroevolution engine for autonomous NPC agents.

Subpackages:
- networks: fixed-topology tanh genomes and their genetic operators
- evaluation: reward shaping and ordered checkpoint tracking
- agents: genome + reward state driven by a host simulation
- evolution: selection, crossover, mutation and the generation cycle
- training: snapshots and generation logs
- visualization: plots and text reports
"""
__version__ = '0.1.0'
