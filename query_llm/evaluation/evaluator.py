from __future__ import annotations

import logging
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, TextIO, Tuple

from ..config import LLMSettings
from ..console import (
    ARROW,
    CHECK,
    CROSS,
    CYAN,
    GRAY,
    GREEN,
    MAGENTA,
    NORMAL,
    RED,
    YELLOW,
    emit,
    review,
    story_header,
    summary_line,
)
from ..errors import LLMError, ScenarioError
from ..history import History
from ..runtime_flow.pipeline import ReasoningPipeline
from ..runtime_flow.step import StageRecorder
from ..schemas import Context, HistoryEntry, Stage
from .matching import describe, highlight, match, regexify


logger = logging.getLogger(__name__)

HIDDEN_FIELDS = {
    "Pipeline.Reason.Keyphrases": "keyphrases",
    "Pipeline.Reason.Topic": "topic",
}


@dataclass
class EvaluationResult:
    total: int = 0
    failures: int = 0

    @property
    def ok(self) -> bool:
        return self.failures <= 0


def simplify(stages: Sequence[Stage]) -> List[Stage]:
    """
    Collapse every Enter/Leave pair into a single stage.

    The collapsed stage keeps the Leave record's name, timestamp and
    fields, and its duration is the time between the two marks.
    """
    simplified: List[Stage] = []
    for index in range(1, len(stages), 2):
        before, after = stages[index - 1], stages[index]
        simplified.append(
            Stage(
                name=after.name,
                timestamp=after.timestamp,
                duration=after.timestamp - before.timestamp,
                fields=dict(after.fields),
            )
        )
    return simplified


def strip_comment(line: str) -> str:
    text = line.strip()
    marker = text.find("#")
    if marker >= 0:
        return text[:marker].strip()
    return text


def split_directive(line: str) -> Optional[Tuple[str, str]]:
    """Split ``Role: content``; lines without a colon are not directives."""
    role, sep, content = line.partition(":")
    if not sep:
        return None
    return role, content.strip()


class ScenarioEvaluator:
    """
    Replays a scripted conversation against the pipeline.

    ``Story`` starts a fresh conversation, ``User`` runs one turn, and
    ``Assistant`` / ``Pipeline.Reason.*`` check the last turn against an
    expected pattern. Mismatches are counted; conditions that make the
    rest of the transcript meaningless raise :class:`ScenarioError`.
    """

    def __init__(
        self,
        settings: LLMSettings,
        pipeline: Optional[ReasoningPipeline] = None,
        *,
        out: Optional[TextIO] = None,
        err: Optional[TextIO] = None,
    ) -> None:
        self.settings = settings
        self.pipeline = pipeline or ReasoningPipeline(settings)
        self.out = out
        self.err = err
        self.history = History()
        self.result = EvaluationResult()

    # -----------------------

    def evaluate(self, filename: str | Path) -> EvaluationResult:
        path = Path(filename)
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ScenarioError(f"cannot read transcript {path}: {exc}") from exc
        return self.evaluate_lines(text.splitlines())

    def evaluate_lines(self, lines: Iterable[str]) -> EvaluationResult:
        self.history.reset()
        self.result = EvaluationResult()
        for line in lines:
            self.handle(strip_comment(line))
        emit(summary_line(self.result.total, self.result.failures), out=self.out)
        return self.result

    def handle(self, line: str) -> None:
        directive = split_directive(line) if line else None
        if directive is None:
            return
        role, content = directive

        if role == "Story":
            story_header(content, out=self.out)
            self.history.reset()
        elif role == "User":
            self._run_turn(content)
        elif role == "Assistant":
            self._check_answer(role, content)
        elif self.settings.zero_shot:
            return
        elif role in HIDDEN_FIELDS:
            self._check_hidden_field(role, content)
        else:
            self._fail_hard(f"Unknown role: {role}!")

    # -----------------------

    def _run_turn(self, inquiry: str) -> None:
        recorder = StageRecorder()
        context = Context(inquiry=inquiry, history=self.history.snapshot())
        emit(f"  {inquiry}", out=self.out, end="\r")

        start = time.monotonic()
        try:
            result = self.pipeline.run(context, recorder)
        except LLMError as exc:
            logger.warning("Turn aborted for %r: %s", inquiry, exc)
            return
        duration = int((time.monotonic() - start) * 1000)

        self.history.append(
            HistoryEntry(
                inquiry=inquiry,
                thought=result.thought,
                keyphrases=result.keyphrases,
                topic=result.topic,
                observation=result.observation,
                answer=result.answer,
                duration=duration,
                stages=tuple(recorder.stages),
            )
        )
        self.result.total += 1

    def _last_turn(self) -> HistoryEntry:
        last = self.history.last()
        if last is None:
            self._fail_hard("There is no answer yet!")
        return last

    def _check_answer(self, role: str, expected: str) -> None:
        last = self._last_turn()
        target = last.answer
        regexes = regexify(expected)
        spans = match(target, regexes)

        if len(spans) == len(regexes):
            emit(f"{GREEN}{CHECK} {CYAN}{last.inquiry} {GRAY}[{last.duration} ms]{NORMAL}", out=self.out)
            emit(f"  {highlight(target, spans)}", out=self.out)
            if self.settings.debug_pipeline:
                review(simplify(last.stages), out=self.out)
            return

        self.result.failures += 1
        emit(f"{RED}{CROSS} {YELLOW}{last.inquiry} {GRAY}[{last.duration} ms]{NORMAL}", out=self._err())
        emit(f"Expected {role} to contain: {CYAN}{describe(regexes)}{NORMAL}", out=self._err())
        emit(f"Actual {role}: {MAGENTA}{target}{NORMAL}", out=self._err())
        self._after_failure(last)

    def _check_hidden_field(self, role: str, expected: str) -> None:
        last = self._last_turn()
        target = getattr(last, HIDDEN_FIELDS[role])
        regexes = regexify(expected)
        spans = match(target, regexes)

        if len(spans) == len(regexes):
            emit(f"{GRAY}    {ARROW} {role}: {highlight(target, spans, GREEN)}", out=self.out)
            return

        self.result.failures += 1
        emit(f"{RED}Expected {role} to contain: {CYAN}{describe(regexes)}{NORMAL}", out=self._err())
        emit(f"{RED}Actual {role}: {MAGENTA}{target}{NORMAL}", out=self._err())
        self._after_failure(last)

    def _after_failure(self, last: HistoryEntry) -> None:
        review(simplify(last.stages), out=self._err())
        if self.settings.debug_fail_exit:
            raise ScenarioError("stopping at the first failure")

    def _fail_hard(self, message: str) -> None:
        emit(message, out=self._err())
        raise ScenarioError(message)

    def _err(self) -> TextIO:
        return self.err or sys.stderr


__all__ = [
    "EvaluationResult",
    "ScenarioEvaluator",
    "simplify",
    "split_directive",
    "strip_comment",
]
