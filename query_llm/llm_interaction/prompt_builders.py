from __future__ import annotations

from typing import List, Sequence

from ..history import recent
from ..schemas import HistoryEntry, Message
from .codec import StructuredCodec
from .prompt_texts import (
    REASON_EXAMPLE_INQUIRY,
    REASON_EXAMPLE_OUTPUT,
    REASON_GUIDELINE,
    REASON_PROMPT,
    REPLY_PROMPT,
    RESPOND_GUIDELINE,
    RESPOND_PROMPT,
    RESPOND_REFERENCE_HEADER,
    SEARCH_TOOL,
)

# How many prior turns each stage gets to see.
REASON_WINDOW = 3
RESPOND_WINDOW = 2
REPLY_WINDOW = 5

REASON_HINT = f"tool: {SEARCH_TOOL}\nthought: "
RESPOND_HINT = "Answer: "


# -------------------------
# Hints
# -------------------------

def reason_hint(thought: str | None = None) -> str:
    """
    Partial assistant message that steers the model into the line format.

    With ``thought`` given, the hint already carries the recovered thought
    and stops right before the keyphrases.
    """
    if thought is None:
        return REASON_HINT
    return "\n".join([f"tool: {SEARCH_TOOL}", f"thought: {thought}", "keyphrases: "])


# -------------------------
# Message builders
# -------------------------

def build_reason_messages(
    codec: StructuredCodec,
    history: Sequence[HistoryEntry],
    inquiry: str,
) -> List[Message]:
    prompt = codec.structure(REASON_PROMPT, REASON_GUIDELINE)
    relevant = recent(history, REASON_WINDOW)
    if not relevant:
        prompt += codec.structure(REASON_EXAMPLE_INQUIRY, REASON_EXAMPLE_OUTPUT)

    messages = [Message(role="system", content=prompt)]
    for entry in relevant:
        messages.append(Message(role="user", content=entry.inquiry))
        assistant = codec.construct(
            {
                "tool": SEARCH_TOOL,
                "thought": entry.thought,
                "keyphrases": entry.keyphrases,
                "observation": entry.answer,
                "topic": entry.topic,
            }
        )
        messages.append(Message(role="assistant", content=assistant))

    messages.append(Message(role="user", content=inquiry))
    if not codec.json_schema:
        messages.append(Message(role="assistant", content=REASON_HINT))
    return messages


def build_respond_messages(
    codec: StructuredCodec,
    history: Sequence[HistoryEntry],
    inquiry: str,
    observation: str,
) -> List[Message]:
    prompt = RESPOND_PROMPT + RESPOND_GUIDELINE if codec.json_schema else RESPOND_PROMPT

    relevant = recent(history, RESPOND_WINDOW)
    if relevant:
        prompt += "\n\n" + RESPOND_REFERENCE_HEADER + "\n"
        for entry in relevant:
            prompt += f"* {entry.inquiry} {entry.answer}\n"

    messages = [
        Message(role="system", content=prompt),
        Message(role="user", content=codec.construct({"inquiry": inquiry, "observation": observation})),
    ]
    if not codec.json_schema:
        messages.append(Message(role="assistant", content=RESPOND_HINT))
    return messages


def build_reply_messages(history: Sequence[HistoryEntry], inquiry: str) -> List[Message]:
    messages = [Message(role="system", content=REPLY_PROMPT)]
    for entry in recent(history, REPLY_WINDOW):
        messages.append(Message(role="user", content=entry.inquiry))
        messages.append(Message(role="assistant", content=entry.answer))
    messages.append(Message(role="user", content=inquiry))
    return messages


__all__ = [
    "REASON_HINT",
    "RESPOND_HINT",
    "REASON_WINDOW",
    "RESPOND_WINDOW",
    "REPLY_WINDOW",
    "reason_hint",
    "build_reason_messages",
    "build_respond_messages",
    "build_reply_messages",
]
