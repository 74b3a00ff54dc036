"""Core helpers shared across the engine."""
