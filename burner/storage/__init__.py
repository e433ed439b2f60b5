"""
Storage Module.

Repository port with compare-and-swap updates, and an in-memory implementation.
"""

from burner.storage.base import Repository
from burner.storage.memory import InMemoryRepository

__all__ = [
    "InMemoryRepository",
    "Repository",
]
