from __future__ import annotations

import logging
from typing import Optional

from ..config import LLMSettings
from ..console import NORMAL, RED, emit
from ..llm_interaction.adapter import ChatTransport
from ..llm_interaction.codec import StructuredCodec
from ..llm_interaction.prompt_builders import (
    REASON_HINT,
    build_reason_messages,
    build_reply_messages,
    build_respond_messages,
    reason_hint,
)
from ..llm_interaction.prompt_texts import REASON_SCHEMA, RESPOND_SCHEMA
from ..schemas import Context, HistoryEntry, Message
from .step import Delegates, Pipeline, pipe


logger = logging.getLogger(__name__)


class ReasoningPipeline:
    """
    Two-stage question answering: ``reason`` works out keyphrases and an
    observation, ``respond`` turns the observation into the final answer.
    In zero-shot mode ``reply`` answers directly instead.

    Every stage takes a :class:`Context` and returns an updated copy.
    Failures from the transport propagate unchanged.
    """

    def __init__(self, settings: LLMSettings, transport: Optional[ChatTransport] = None) -> None:
        self.settings = settings
        self.transport = transport or ChatTransport(settings)
        self.codec = StructuredCodec(json_schema=settings.json_schema)

    # -----------------------

    def build(self) -> Pipeline:
        if self.settings.zero_shot:
            return pipe(self.reply)
        return pipe(self.reason, self.respond)

    def run(self, context: Context, delegates: Optional[Delegates] = None) -> Context:
        return self.build()(context, delegates)

    # -----------------------
    # REASON
    # -----------------------

    def reason(self, context: Context, delegates: Delegates) -> Context:
        delegates.enter("Reason")
        logger.debug("[REASON] %s", context.inquiry)

        schema = REASON_SCHEMA if self.settings.json_schema else None
        messages = build_reason_messages(self.codec, context.history, context.inquiry)
        hint = "" if schema else REASON_HINT
        completion = self._chat(messages, schema)
        result = self.codec.breakdown(hint, completion)

        if schema is None and not result.get("keyphrases"):
            logger.info("[REASON] empty keyphrases, retrying once")
            if self.settings.debug_chat:
                emit(f"-->{RED}Invalid keyphrases. Trying again...{NORMAL}")
            hint = reason_hint(result.get("thought", ""))
            messages = messages[:-1] + [Message(role="assistant", content=hint)]
            completion = self._chat(messages, schema)
            result = self.codec.breakdown(hint, completion)

        fields = {
            "topic": result.get("topic", ""),
            "thought": result.get("thought", ""),
            "keyphrases": result.get("keyphrases", ""),
            "observation": result.get("observation", ""),
        }
        delegates.leave("Reason", fields)

        entry = HistoryEntry(inquiry=context.inquiry, **fields)
        return context.evolve(draft=entry, **fields).remember(entry)

    # -----------------------
    # RESPOND
    # -----------------------

    def respond(self, context: Context, delegates: Delegates) -> Context:
        delegates.enter("Respond")
        logger.debug("[RESPOND] %s", context.inquiry)

        schema = RESPOND_SCHEMA if self.settings.json_schema else None
        messages = build_respond_messages(self.codec, context.settled(), context.inquiry, context.observation)
        completion = self._chat(messages, schema, delegates)
        if schema is None:
            answer = completion
        else:
            answer = self.codec.breakdown("", completion).get("answer", "")

        delegates.leave(
            "Respond",
            {"inquiry": context.inquiry, "observation": context.observation, "answer": answer},
        )

        updated = context.evolve(answer=answer, draft=None)
        return updated.remember(
            HistoryEntry(
                inquiry=context.inquiry,
                thought=context.thought,
                keyphrases=context.keyphrases,
                topic=context.topic,
                observation=context.observation,
                answer=answer,
            )
        )

    # -----------------------
    # REPLY (zero-shot)
    # -----------------------

    def reply(self, context: Context, delegates: Delegates) -> Context:
        delegates.enter("Reply")
        logger.debug("[REPLY] %s", context.inquiry)

        messages = build_reply_messages(context.history, context.inquiry)
        answer = self._chat(messages, None, delegates)

        delegates.leave("Reply", {"inquiry": context.inquiry, "answer": answer})
        return context.evolve(answer=answer)

    # -----------------------

    def _chat(self, messages, schema, delegates: Optional[Delegates] = None) -> str:
        sink = delegates.sink if delegates is not None else None
        return self.transport.chat(
            messages,
            schema,
            sink,
            retry_budget=self.settings.max_retry_attempt,
        )


__all__ = ["ReasoningPipeline"]
