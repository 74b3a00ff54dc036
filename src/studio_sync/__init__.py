"""Versioned state synchronization engine for a local writing studio."""

__version__ = "0.1.0"
