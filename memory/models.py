from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class MemorySource(str, Enum):
    USER = "user"
    AGENT = "agent"


class Memory(BaseModel):
    key: str = Field(..., min_length=1, description="Unique key of the memory")
    value: str = Field(..., description="Content of the memory")
    source: MemorySource = Field(MemorySource.AGENT, description="Who produced the memory")
    tags: list[str] = Field(default_factory=list)
    embedding: Optional[list[float]] = Field(None, exclude=True)


class ScoredMemory(BaseModel):
    memory: Memory
    score: float = Field(..., ge=0.0, le=1.0, description="Similarity to the query")
