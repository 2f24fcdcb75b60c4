"""Storage backends for suspended workflow runs."""

from agentflow.storage.persistence import FilePersistence, InMemoryPersistence, Persistence

__all__ = ["Persistence", "InMemoryPersistence", "FilePersistence"]
