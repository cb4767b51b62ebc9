# tests/test_pipeline.py
from __future__ import annotations

from typing import Any, List, Mapping

import pytest

from query_llm.errors import LLMError, TransportError
from query_llm.llm_interaction.prompt_texts import REASON_SCHEMA, RESPOND_SCHEMA
from query_llm.runtime_flow.pipeline import ReasoningPipeline
from query_llm.runtime_flow.step import Delegates, StageRecorder, pipe
from query_llm.schemas import Context, HistoryEntry

REASON_REPLY = "Lakes are geography\nkeyphrases: Pitch Lake\nobservation: largest asphalt deposit\ntopic: geography"
ANSWER = "It is famous for asphalt."


def _history(count: int) -> tuple:
    return tuple(
        HistoryEntry(
            inquiry=f"q{i}",
            thought=f"t{i}",
            keyphrases=f"k{i}",
            topic=f"topic{i}",
            observation=f"o{i}",
            answer=f"a{i}",
        )
        for i in range(count)
    )


def _user_turns(messages) -> List[str]:
    return [m.content for m in messages if m.role == "user"]


# ---------- reason ----------
def test_reason_without_history_includes_example(settings, scripted):
    transport = scripted(REASON_REPLY, ANSWER)
    result = ReasoningPipeline(settings, transport).run(Context(inquiry="What is Pitch Lake?"))

    messages = transport.calls[0]["messages"]
    assert [m.role for m in messages] == ["system", "user", "assistant"]
    assert "Example:" in messages[0].content
    assert messages[-1].content == "tool: Google\nthought: "
    assert transport.calls[0]["sink"] is None

    assert result.keyphrases == "Pitch Lake"
    assert result.topic == "geography"
    assert result.observation == "largest asphalt deposit"
    assert result.answer == ANSWER


@pytest.mark.parametrize("count, shown", [(1, 1), (2, 2), (3, 3), (5, 3)])
def test_reason_history_window(settings, scripted, count, shown):
    transport = scripted(REASON_REPLY, ANSWER)
    ReasoningPipeline(settings, transport).run(Context(inquiry="now", history=_history(count)))

    messages = transport.calls[0]["messages"]
    assert "Example:" not in messages[0].content
    assert len(messages) == 1 + 2 * shown + 2
    users = _user_turns(messages)
    assert users == [f"q{i}" for i in range(count - shown, count)] + ["now"]

    # assistant turns are rebuilt from stored fields, with the answer as observation
    first_assistant = messages[2].content
    first = count - shown
    assert first_assistant.splitlines() == [
        "tool: Google",
        f"thought: t{first}",
        f"keyphrases: k{first}",
        f"observation: a{first}",
        f"topic: topic{first}",
    ]


def test_reason_retries_once_on_empty_keyphrases(settings, scripted):
    transport = scripted("not sure\ntopic: misc", "pitch lake\nobservation: asphalt\ntopic: geography", ANSWER)
    result = ReasoningPipeline(settings, transport).run(Context(inquiry="q"))

    assert len(transport.calls) == 3
    retry = transport.calls[1]["messages"]
    assert len(retry) == len(transport.calls[0]["messages"])
    assert retry[-1].role == "assistant"
    assert retry[-1].content == "tool: Google\nthought: not sure\nkeyphrases: "
    assert result.keyphrases == "pitch lake"
    assert result.thought == "not sure"


def test_reason_gives_up_after_one_retry(settings, scripted):
    transport = scripted("hmm\ntopic: misc", "\ntopic: misc", ANSWER)
    result = ReasoningPipeline(settings, transport).run(Context(inquiry="q"))

    assert len(transport.calls) == 3
    assert result.keyphrases == ""
    assert result.answer == ANSWER


def test_reason_schema_mode_never_retries(make_settings, scripted):
    settings = make_settings(json_schema=True)
    transport = scripted(
        '{"tool": "Google", "thought": "t", "keyphrases": "", "observation": "o", "topic": "x"}',
        '{"answer": "Asphalt."}',
    )
    result = ReasoningPipeline(settings, transport).run(Context(inquiry="q"))

    assert len(transport.calls) == 2
    assert transport.calls[0]["schema"] == REASON_SCHEMA
    assert transport.calls[1]["schema"] == RESPOND_SCHEMA
    assert transport.calls[0]["messages"][-1].role == "user"
    assert "(JSON with this schema)" in transport.calls[0]["messages"][0].content
    assert result.observation == "o"
    assert result.answer == "Asphalt."


# ---------- respond ----------
def test_respond_messages_and_references(settings, scripted):
    transport = scripted(REASON_REPLY, ANSWER)
    ReasoningPipeline(settings, transport).run(Context(inquiry="now", history=_history(3)))

    messages = transport.calls[1]["messages"]
    assert [m.role for m in messages] == ["system", "user", "assistant"]
    assert "* q1 a1" in messages[0].content
    assert "* q2 a2" in messages[0].content
    assert "* q0 a0" not in messages[0].content
    assert messages[1].content == "inquiry: now\nobservation: largest asphalt deposit"
    assert messages[2].content == "Answer: "


def test_respond_references_keep_unanswered_turns(settings, scripted):
    history = (HistoryEntry(inquiry="q0", answer="a0"), HistoryEntry(inquiry="q1"))
    transport = scripted(REASON_REPLY, ANSWER)
    ReasoningPipeline(settings, transport).run(Context(inquiry="now", history=history))

    prompt = transport.calls[1]["messages"][0].content
    assert prompt.endswith("* q0 a0\n* q1 \n")
    assert "* now" not in prompt


def test_respond_without_answered_history_has_no_references(settings, scripted):
    transport = scripted(REASON_REPLY, ANSWER)
    ReasoningPipeline(settings, transport).run(Context(inquiry="now"))
    assert "For your reference" not in transport.calls[1]["messages"][0].content


def test_respond_streams_to_delegate_sink(settings, scripted):
    class Collect(Delegates):
        def __init__(self) -> None:
            self.chunks: List[str] = []

        @property
        def sink(self):
            return self.chunks.append

    transport = scripted(REASON_REPLY, ANSWER)
    delegates = Collect()
    ReasoningPipeline(settings, transport).run(Context(inquiry="q"), delegates)

    assert transport.calls[0]["sink"] is None
    assert delegates.chunks == [ANSWER]


def test_history_records_reason_then_merged_entry(settings, scripted):
    transport = scripted(REASON_REPLY, ANSWER)
    result = ReasoningPipeline(settings, transport).run(Context(inquiry="q", history=_history(1)))

    assert len(result.history) == 3
    reasoned, merged = result.history[1], result.history[2]
    assert reasoned.answer == ""
    assert reasoned.keyphrases == "Pitch Lake"
    assert merged.answer == ANSWER
    assert merged.keyphrases == "Pitch Lake"
    assert merged.observation == "largest asphalt deposit"


# ---------- reply (zero-shot) ----------
def test_reply_window_of_five(make_settings, scripted):
    settings = make_settings(zero_shot=True)
    transport = scripted("Hi there.")
    result = ReasoningPipeline(settings, transport).run(Context(inquiry="hello", history=_history(7)))

    messages = transport.calls[0]["messages"]
    assert len(transport.calls) == 1
    assert len(messages) == 1 + 2 * 5 + 1
    assert _user_turns(messages) == ["q2", "q3", "q4", "q5", "q6", "hello"]
    assert messages[2].content == "a2"
    assert result.answer == "Hi there."
    assert len(result.history) == 7


# ---------- composition and delegates ----------
def test_delegates_see_enter_and_leave_in_order(settings, scripted):
    ticks = iter(range(0, 100, 10))
    recorder = StageRecorder(clock=lambda: next(ticks))
    ReasoningPipeline(settings, scripted(REASON_REPLY, ANSWER)).run(Context(inquiry="q"), recorder)

    assert [s.name for s in recorder.stages] == ["Reason", "Reason", "Respond", "Respond"]
    assert [s.timestamp for s in recorder.stages] == [0, 10, 20, 30]
    assert recorder.stages[0].fields == {}
    assert recorder.stages[1].fields["keyphrases"] == "Pitch Lake"
    assert recorder.stages[3].fields["answer"] == ANSWER


def test_pipe_stops_at_first_error():
    seen: List[str] = []

    def first(context: Context, delegates: Delegates) -> Context:
        seen.append("first")
        raise TransportError("down", status_code=500)

    def second(context: Context, delegates: Delegates) -> Context:
        seen.append("second")
        return context

    with pytest.raises(LLMError):
        pipe(first, second)(Context(inquiry="q"))
    assert seen == ["first"]


def test_pipe_threads_context_left_to_right():
    def add(suffix: str):
        def stage(context: Context, delegates: Delegates) -> Context:
            return context.evolve(answer=context.answer + suffix)

        return stage

    result = pipe(add("a"), add("b"), add("c"))(Context(inquiry="q"))
    assert result.answer == "abc"


def test_transport_error_propagates_from_pipeline(settings, scripted):
    transport = scripted(REASON_REPLY, TransportError("boom", status_code=502))
    with pytest.raises(TransportError):
        ReasoningPipeline(settings, transport).run(Context(inquiry="q"))
