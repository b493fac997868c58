"""Raffle state machine, randomness oracle mock and upkeep keeper."""

__version__ = "1.0.0"
