"""Simulated physical page allocators: first fit, best fit, buddy system and SLUB, with a memory-layout manager."""

__version__ = "0.1.0"