"""Core module for the eventreg application."""

from .types import Participant

__all__ = ["Participant"]
