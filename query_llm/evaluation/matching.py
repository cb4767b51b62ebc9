"""
Expected-value patterns for scenario transcripts.

An expected value such as ``The /pitch lake/ in /trinidad/`` holds one
case-insensitive regular expression per slash-delimited segment; the text
between segments is filler. A value without any complete segment is used
as a single expression as written. A segment that is not a valid
expression raises :class:`ScenarioError`.
"""

from __future__ import annotations

import logging
import re
from typing import List, Pattern, Sequence

from ..console import BOLD, GREEN, NORMAL
from ..errors import ScenarioError
from ..schemas import Span

logger = logging.getLogger(__name__)


def _skip_filler(text: str, index: int) -> int:
    while index < len(text) and text[index] != "/":
        index += 1
    return index


def _segment_end(text: str, index: int) -> int:
    """Index of the slash closing the segment opened at ``index``."""
    if index >= len(text) or text[index] != "/":
        return index
    i = index + 1
    while i < len(text):
        if text[i] == "/" and text[i - 1] != "\\":
            break
        i += 1
    return i


def _compile(source: str) -> Pattern[str] | None:
    try:
        return re.compile(source, re.IGNORECASE)
    except re.error as exc:
        logger.debug("Invalid pattern %r: %s", source, exc)
        return None


def regexify(expected: str) -> List[Pattern[str]]:
    regexes: List[Pattern[str]] = []
    pos = 0
    while pos < len(expected):
        pos = _skip_filler(expected, pos)
        end = _segment_end(expected, pos)
        if not (pos < end < len(expected)):
            break
        source = expected[pos + 1:end]
        regex = _compile(source)
        if regex is None:
            raise ScenarioError(f"Invalid pattern /{source}/ in: {expected}")
        regexes.append(regex)
        pos = end + 1

    if not regexes:
        regex = _compile(expected)
        if regex is None:
            logger.warning("Matching %r literally", expected)
            regex = re.compile(re.escape(expected), re.IGNORECASE)
        regexes.append(regex)
    return regexes


def match(text: str, regexes: Sequence[Pattern[str]]) -> List[Span]:
    """First match of every pattern; patterns that miss contribute nothing."""
    spans: List[Span] = []
    for regex in regexes:
        found = regex.search(text)
        if found is not None:
            spans.append(Span(index=found.start(), length=found.end() - found.start()))
    return spans


def highlight(text: str, spans: Sequence[Span], color: str = BOLD + GREEN) -> str:
    result = text
    for span in sorted(spans, key=lambda s: s.index, reverse=True):
        start, stop = span.index, span.index + span.length
        result = f"{result[:start]}{color}{result[start:stop]}{NORMAL}{result[stop:]}"
    return result


def describe(regexes: Sequence[Pattern[str]]) -> str:
    return ",".join(f"/{regex.pattern}/i" for regex in regexes)


__all__ = ["regexify", "match", "highlight", "describe"]
