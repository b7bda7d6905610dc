"""
Agent long-term memory: unique keyed facts with embedding search.
"""

from .config import MemoryConfig
from .models import Memory, MemorySource, ScoredMemory
from .service import MemoryService
from .store import MemoryStore

__all__ = [
    "MemoryConfig",
    "Memory",
    "MemorySource",
    "ScoredMemory",
    "MemoryService",
    "MemoryStore",
]
