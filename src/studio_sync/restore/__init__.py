"""Restore pipeline, restore guard and the store-replaced signal."""

from .guard import RestoreGuard
from .signals import ReloadSignal, StoreReplaced

__all__ = [
    "ReloadSignal",
    "RestoreGuard",
    "StoreReplaced",
]
