"""Miktos AI: one completion contract over multiple LLM providers."""

__version__ = "0.1.0"
