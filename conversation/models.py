from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class TurnAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    result: Any = None


class ConversationTurn(BaseModel):
    """One exchange in the history. Immutable once recorded."""

    model_config = ConfigDict(frozen=True)

    speaker: str
    text: str = ""
    actions: tuple[TurnAction, ...] = ()


class RequestContext(BaseModel):
    """Everything besides the history that goes into the next model request."""

    instructions: str = ""
    message: str = ""
    tools: list[dict[str, Any]] = Field(default_factory=list)
    extra_tokens: int = Field(0, ge=0, description="Tokens the caller adds outside this context")


class CompactionStrategy(str, Enum):
    PASS_THROUGH = "pass_through"
    TRUNCATE_ONLY = "truncate_only"
    SUMMARIZED = "summarized"


class CompactedHistory(BaseModel):
    summary: Optional[str] = None
    turns: list[ConversationTurn] = Field(default_factory=list)
    strategy: CompactionStrategy
    degraded_reason: Optional[str] = None

    @property
    def degraded(self) -> bool:
        return self.degraded_reason is not None
