# query_llm/llm_interaction/__init__.py

"""
1) Adapter ---------- How to talk to the model
2) Codec ------------ How fields become text and text becomes fields
3) Prompt Texts ----- What instructions to give
4) Prompt Builders -- How to assemble the message list for each stage


adapter.py
"How we talk to LLMs"
It is the transport layer. One chat() call, two wire dialects:
an OpenAI-compatible /chat/completions endpoint, or a Gemini
generateContent endpoint, chosen from the configured base URL.
Answers are either read whole, or streamed as server-sent events
and handed chunk by chunk to a sink.


codec.py
"Fields in, fields out"
construct() renders named fields as "key: value" lines (or JSON).
breakdown() recovers them from a completion, repairing truncated JSON
and scanning line output from right to left so that values containing
other field names do not confuse the parse.


prompt_texts.py
"What instructions we give to LLMs"
System prompts, the reasoning guideline and worked example, and the
JSON schemas used when structured output is enabled.


prompt_builders.py
"How we assemble context for LLMs"
Builds the message list for reason / respond / reply, including the
trailing window of previous turns and the partial assistant hint.
"""

from .adapter import ChatTransport, StreamSink
from .codec import StructuredCodec, breakdown, deconstruct, un_json

__all__ = [
    "ChatTransport",
    "StreamSink",
    "StructuredCodec",
    "breakdown",
    "deconstruct",
    "un_json",
]
