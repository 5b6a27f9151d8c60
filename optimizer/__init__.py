"""Optimization engines used by the scheduling modules."""

from .genetic import GAConfig, GAResult, evolve

__all__ = ["GAConfig", "GAResult", "evolve"]
