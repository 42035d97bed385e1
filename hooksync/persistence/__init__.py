"""
Persistence — Project/repository registry stores.
"""

from .base import Registry
from .memory import InMemoryRegistry
from .registry_file import JsonFileRegistry

__all__ = ["Registry", "InMemoryRegistry", "JsonFileRegistry"]
