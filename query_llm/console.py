"""Terminal colours and the small printing helpers shared by the CLI and evaluator."""

from __future__ import annotations

import sys
from typing import Any, Iterable, Optional, TextIO

from .schemas import Stage

NORMAL = "\x1b[0m"
BOLD = "\x1b[1m"
YELLOW = "\x1b[93m"
MAGENTA = "\x1b[35m"
RED = "\x1b[91m"
GREEN = "\x1b[92m"
CYAN = "\x1b[36m"
GRAY = "\x1b[90m"
ARROW = "⇢"
CHECK = "✓"
CROSS = "✘"


def emit(text: str = "", *, out: Optional[TextIO] = None, end: str = "\n") -> None:
    stream = out or sys.stdout
    stream.write(text + end)
    stream.flush()


def review(stages: Iterable[Stage], *, out: Optional[TextIO] = None) -> None:
    """Print the pipeline stages, mostly for troubleshooting."""
    emit(out=out)
    emit(f"{MAGENTA}Pipeline review {NORMAL}", out=out)
    emit("---------------", out=out)
    for index, stage in enumerate(stages, start=1):
        emit(f"{GREEN}{ARROW} Stage #{index} {YELLOW}{stage.name} {GRAY}[{stage.duration} ms]{NORMAL}", out=out)
        for key, value in stage.fields.items():
            emit(f"{GRAY}{key}: {NORMAL}{_display(value)}", out=out)
    emit(out=out)


def story_header(title: str, *, out: Optional[TextIO] = None) -> None:
    emit(out=out)
    emit("-----------------------------------", out=out)
    emit(f"Story: {MAGENTA}{BOLD}{title}{NORMAL}", out=out)
    emit("-----------------------------------", out=out)


def summary_line(total: int, failures: int) -> str:
    if failures <= 0:
        return f"{GREEN}{CHECK}{NORMAL} SUCCESS: {GREEN}{total} test(s){NORMAL}."
    return f"{RED}{CROSS}{NORMAL} FAIL: {GRAY}{total} test(s), {RED}{failures} failure(s){NORMAL}."


def _display(value: Any) -> str:
    return "" if value is None else str(value)


__all__ = [
    "NORMAL",
    "BOLD",
    "YELLOW",
    "MAGENTA",
    "RED",
    "GREEN",
    "CYAN",
    "GRAY",
    "ARROW",
    "CHECK",
    "CROSS",
    "emit",
    "review",
    "story_header",
    "summary_line",
]
