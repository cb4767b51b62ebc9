from __future__ import annotations

import argparse
import logging
import sys
import time
from typing import Any, List, Mapping, Optional, Sequence

from .config import LLMSettings
from .console import CYAN, GRAY, NORMAL, emit, review
from .errors import LLMError, ScenarioError
from .evaluation.evaluator import ScenarioEvaluator, simplify
from .history import History
from .llm_interaction.adapter import ChatTransport, StreamSink
from .llm_interaction.codec import un_json
from .runtime_flow.pipeline import ReasoningPipeline
from .runtime_flow.step import StageRecorder
from .schemas import Context, HistoryEntry

logger = logging.getLogger(__name__)

REVIEW_COMMANDS = {"!review", "/review"}


class ConsoleDelegates(StageRecorder):
    """
    Prints the answer while it streams in.

    In schema mode the model streams a JSON object; the partial text is
    repaired on every chunk and only the new tail of ``answer`` is printed.
    """

    def __init__(self, *, json_schema: bool = False) -> None:
        super().__init__()
        self.json_schema = json_schema
        self._buffer = ""
        self._printed = 0

    def leave(self, name: str, fields: Mapping[str, Any]) -> None:
        super().leave(name, fields)
        if name == "Reason" and fields.get("keyphrases"):
            emit(f"{GRAY}Searching for {fields['keyphrases']}...{NORMAL}")

    @property
    def sink(self) -> Optional[StreamSink]:
        return self._write

    def _write(self, chunk: str) -> None:
        if not self.json_schema:
            emit(chunk, end="")
            return
        self._buffer += chunk
        parsed = un_json(self._buffer)
        answer = parsed.get("answer") if parsed else None
        if not isinstance(answer, str) or len(answer) <= self._printed:
            return
        emit(answer[self._printed:], end="")
        self._printed = len(answer)


def interact(settings: LLMSettings, pipeline: ReasoningPipeline, stdin=None, history: Optional[History] = None) -> History:
    history = history if history is not None else History()
    source = stdin or sys.stdin
    while True:
        emit(f"{CYAN}>> {NORMAL}", end="")
        line = source.readline()
        if not line:
            emit()
            return history
        inquiry = line.strip()
        if not inquiry:
            continue

        if inquiry in REVIEW_COMMANDS:
            last = history.last()
            if last is None:
                emit("Nothing to review yet.")
            else:
                review(simplify(last.stages))
            continue

        delegates = ConsoleDelegates(json_schema=settings.json_schema)
        start = time.monotonic()
        try:
            result = pipeline.run(Context(inquiry=inquiry, history=history.snapshot()), delegates)
        except LLMError as exc:
            logger.warning("Turn failed: %s", exc)
            emit(f"ERROR: {exc}", out=sys.stderr)
            continue
        duration = int((time.monotonic() - start) * 1000)
        emit()

        history.append(
            HistoryEntry(
                inquiry=inquiry,
                thought=result.thought,
                keyphrases=result.keyphrases,
                topic=result.topic,
                observation=result.observation,
                answer=result.answer,
                duration=duration,
                stages=tuple(delegates.stages),
            )
        )


def evaluate_all(settings: LLMSettings, pipeline: ReasoningPipeline, files: Sequence[str]) -> int:
    failures = 0
    for filename in files:
        evaluator = ScenarioEvaluator(settings, pipeline)
        result = evaluator.evaluate(filename)
        failures += result.failures
    return 1 if failures > 0 else 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Ask an LLM questions, or replay scripted transcripts against it.")
    parser.add_argument("files", nargs="*", help="Transcript files to evaluate (interactive session when omitted)")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    settings = LLMSettings.from_env()
    emit(f"Using LLM at {settings.base_url} (model: {settings.model}).")

    pipeline = ReasoningPipeline(settings, ChatTransport(settings))

    if not args.files:
        interact(settings, pipeline)
        return 0

    try:
        return evaluate_all(settings, pipeline, args.files)
    except ScenarioError as exc:
        emit(f"ERROR: {exc}", out=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
