from __future__ import annotations

import time
from typing import Any, Callable, List, Mapping, Optional, Sequence

from ..llm_interaction.adapter import StreamSink
from ..schemas import Context, Stage


def now_ms() -> int:
    return time.time_ns() // 1_000_000


# =========================
# Delegates
# =========================

class Delegates:
    """
    Observer hooks fired by the pipeline stages.

    Every hook is a no-op here; subclasses override only what they need.
    ``sink`` returns None when nobody wants streamed output.
    """

    def enter(self, name: str) -> None:
        pass

    def leave(self, name: str, fields: Mapping[str, Any]) -> None:
        pass

    @property
    def sink(self) -> Optional[StreamSink]:
        return None


class StageRecorder(Delegates):
    """Keeps a raw Enter/Leave log with millisecond timestamps."""

    def __init__(self, clock: Callable[[], int] = now_ms) -> None:
        self.stages: List[Stage] = []
        self._clock = clock

    def enter(self, name: str) -> None:
        self.stages.append(Stage(name=name, timestamp=self._clock()))

    def leave(self, name: str, fields: Mapping[str, Any]) -> None:
        self.stages.append(Stage(name=name, timestamp=self._clock(), fields=dict(fields)))


# =========================
# Sequencing
# =========================

StageHandler = Callable[[Context, Delegates], Context]


class Pipeline:
    """Runs stage handlers left to right; an exception from any stage stops the rest."""

    def __init__(self, stages: Sequence[StageHandler]) -> None:
        self.stages = tuple(stages)

    def __call__(self, context: Context, delegates: Optional[Delegates] = None) -> Context:
        hooks = delegates or Delegates()
        result = context
        for stage in self.stages:
            result = stage(result, hooks)
        return result


def pipe(*stages: StageHandler) -> Pipeline:
    return Pipeline(stages)


__all__ = ["Delegates", "StageRecorder", "Pipeline", "StageHandler", "now_ms", "pipe"]
