"""Offline-first sync engine for a collectible catalog."""

__version__ = "0.1.0"
