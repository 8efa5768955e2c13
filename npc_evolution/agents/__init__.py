"""
NPC agents driven by evolved genomes.
"""
from .agent import Agent

__all__ = ['Agent']
