"""Result values that carry an optional degradation reason.

Best-effort stages (query rewriting, reranking, history compaction) return
an ``Outcome`` instead of raising: the value is always usable, and
``reason`` says why it is weaker than requested.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    value: T
    reason: Optional[str] = None

    @property
    def degraded(self) -> bool:
        return self.reason is not None

    @classmethod
    def ok(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def degrade(cls, value: T, reason: str) -> "Outcome[T]":
        return cls(value=value, reason=reason)
