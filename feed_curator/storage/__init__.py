"""Persistence for checkpoints, user state and tracked sources."""

from feed_curator.storage.base import CheckpointStore, SourceRegistry, UserStateStore
from feed_curator.storage.memory import InMemoryStore

__all__ = ["CheckpointStore", "InMemoryStore", "SourceRegistry", "UserStateStore"]
