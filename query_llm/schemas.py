from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


Role = Literal["system", "user", "assistant"]


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Role
    content: str

    def to_json(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


class Stage(BaseModel):
    """One timed instrumentation record (an Enter or Leave mark, or a collapsed pair)."""

    model_config = ConfigDict(frozen=True)

    name: str
    timestamp: int
    duration: int = 0
    fields: Dict[str, Any] = Field(default_factory=dict)


class HistoryEntry(BaseModel):
    """A completed turn. Entries are never edited once appended."""

    model_config = ConfigDict(frozen=True)

    inquiry: str = ""
    thought: str = ""
    keyphrases: str = ""
    topic: str = ""
    observation: str = ""
    answer: str = ""
    duration: int = 0
    stages: Tuple[Stage, ...] = ()


@dataclass(frozen=True)
class Span:
    index: int
    length: int


@dataclass(frozen=True)
class Context:
    """
    Working state of one conversational turn.

    Stages never mutate a context; they return an updated copy via
    :meth:`evolve`, so a context can be handed from stage to stage safely.
    """
    inquiry: str
    history: Tuple[HistoryEntry, ...] = field(default_factory=tuple)
    thought: str = ""
    keyphrases: str = ""
    topic: str = ""
    observation: str = ""
    answer: str = ""
    draft: Optional[HistoryEntry] = None

    def evolve(self, **changes: Any) -> "Context":
        return replace(self, **changes)

    def remember(self, entry: HistoryEntry) -> "Context":
        return replace(self, history=self.history + (entry,))

    def settled(self) -> Tuple[HistoryEntry, ...]:
        """History without the entry of the turn still in progress."""
        if self.draft is not None and self.history and self.history[-1] is self.draft:
            return self.history[:-1]
        return self.history


__all__ = ["Role", "Message", "Stage", "HistoryEntry", "Span", "Context"]
