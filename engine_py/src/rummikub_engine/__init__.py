"""Rummikub game engine: rules, turn state machine and room service."""

__version__ = "1.0.0"
