"""Projector module for the three-ring visualization model."""

from .visualization import project

__all__ = [
    "project",
]
