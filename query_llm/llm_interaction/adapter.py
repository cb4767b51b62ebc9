from __future__ import annotations

import contextlib
import copy
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Iterator, Mapping, Optional, Sequence

import httpx

from ..config import Dialect, LLMSettings
from ..console import MAGENTA, NORMAL, YELLOW, emit
from ..errors import ResponseShapeError, StreamParseError, TransportError
from ..schemas import Message
from .codec import un_json

logger = logging.getLogger(__name__)

StreamSink = Callable[[str], None]

STOP_TOKENS = ("<|im_end|>", "<|end|>", "<|eot_id|>")
SSE_DATA_PREFIX = "data: "
SSE_DONE = "data: [DONE]"


@dataclass(frozen=True)
class ChatRequest:
    """A fully composed HTTP request for one chat completion."""
    url: str
    body: Dict[str, Any]
    headers: Dict[str, str] = field(default_factory=dict)
    params: Dict[str, str] = field(default_factory=dict)


# -------------------------------------------------
# Request builders, one per dialect
# -------------------------------------------------

def build_openai_request(
    settings: LLMSettings,
    messages: Sequence[Message],
    schema: Optional[Mapping[str, Any]],
    stream: bool,
) -> ChatRequest:
    body: Dict[str, Any] = {"messages": [message.to_json() for message in messages]}
    if schema is not None:
        body["response_format"] = {
            "type": "json_schema",
            "json_schema": {"schema": dict(schema), "name": "response", "strict": True},
        }
    body.update(
        {
            "model": settings.model,
            "stop": list(STOP_TOKENS),
            "max_tokens": settings.max_tokens,
            "temperature": settings.temperature,
            "stream": stream,
        }
    )

    headers = {"Content-Type": "application/json"}
    if settings.api_key:
        headers["Authorization"] = f"Bearer {settings.api_key}"

    return ChatRequest(url=f"{settings.base_url}/chat/completions", body=body, headers=headers)


def build_gemini_request(
    settings: LLMSettings,
    messages: Sequence[Message],
    schema: Optional[Mapping[str, Any]],
    stream: bool,
) -> ChatRequest:
    system_instruction: Optional[Dict[str, Any]] = None
    contents = []
    for message in messages:
        bundle = {"role": message.role, "parts": [{"text": message.content}]}
        if message.role == "system":
            if system_instruction is None:
                system_instruction = bundle
        elif message.role == "user":
            contents.append(bundle)
        # assistant turns have no place in this payload and are dropped

    generation_config: Dict[str, Any] = {
        "temperature": settings.temperature,
        "responseMimeType": "application/json" if schema is not None else "text/plain",
        "maxOutputTokens": settings.max_tokens,
    }
    if schema is not None:
        response_schema = copy.deepcopy(dict(schema))
        response_schema.pop("additionalProperties", None)
        generation_config["responseSchema"] = response_schema

    body: Dict[str, Any] = {}
    if system_instruction is not None:
        body["systemInstruction"] = system_instruction
    body["contents"] = contents
    body["generationConfig"] = generation_config

    if stream:
        method = "streamGenerateContent"
        params = {"alt": "sse", "key": settings.api_key or ""}
    else:
        method = "generateContent"
        params = {"key": settings.api_key or ""}

    return ChatRequest(
        url=f"{settings.base_url}/models/{settings.model}:{method}",
        body=body,
        headers={"Content-Type": "application/json"},
        params=params,
    )


REQUEST_BUILDERS: Dict[Dialect, Callable[..., ChatRequest]] = {
    Dialect.OPENAI: build_openai_request,
    Dialect.GEMINI: build_gemini_request,
}


# -------------------------------------------------
# Response decoding
# -------------------------------------------------

def extract_content(data: Mapping[str, Any]) -> str:
    """Return the text of the first choice (OpenAI) or candidate (Gemini)."""
    choices = data.get("choices")
    candidates = data.get("candidates")
    if isinstance(choices, list) and choices:
        first = choices[0]
    elif isinstance(candidates, list) and candidates:
        first = candidates[0]
    else:
        return ""
    if not isinstance(first, dict):
        return ""

    message = first.get("message")
    if isinstance(message, dict):
        content = message.get("content")
        return content if isinstance(content, str) else ""

    content = first.get("content")
    if isinstance(content, dict):
        parts = content.get("parts") or []
        return "".join(str(part.get("text", "")) for part in parts if isinstance(part, dict))
    return content if isinstance(content, str) else ""


def extract_delta(data: Mapping[str, Any]) -> str:
    """Return the incremental text carried by one streamed event."""
    choices = data.get("choices")
    if isinstance(choices, list):
        if not choices or not isinstance(choices[0], dict):
            return ""
        delta = choices[0].get("delta") or {}
        content = delta.get("content") if isinstance(delta, dict) else None
        return content if isinstance(content, str) else ""
    if "candidates" in data:
        return extract_content(data)
    return ""


def iter_sse_payloads(lines: Iterable[str]) -> Iterator[str]:
    """Yield the payload of every ``data:`` line until the stream says it is done."""
    for raw in lines:
        line = raw.rstrip("\r\n")
        if not line or line.startswith(":"):
            continue
        if line == SSE_DONE:
            return
        if line.startswith(SSE_DATA_PREFIX):
            yield line[len(SSE_DATA_PREFIX):]


# -------------------------------------------------
# Transport
# -------------------------------------------------

class ChatTransport:
    """
    Sends chat completions to an OpenAI-compatible or Gemini endpoint.

    The dialect is picked from the configured base URL on every call.
    When a sink is given and streaming is enabled the answer is read as
    server-sent events and every increment is handed to the sink;
    otherwise the whole answer is read at once and the sink, if any,
    receives it in a single call.
    """

    def __init__(self, settings: LLMSettings, *, http_client: Optional[httpx.Client] = None) -> None:
        self.settings = settings
        self.http_client = http_client

    def chat(
        self,
        messages: Sequence[Message],
        schema: Optional[Mapping[str, Any]] = None,
        sink: Optional[StreamSink] = None,
        retry_budget: Optional[int] = None,
    ) -> str:
        """
        Return the completion for ``messages``.

        ``retry_budget`` is accepted for interface stability but this
        layer makes exactly one request; retrying on unusable output is
        the pipeline's job.

        Raises:
            TransportError: non-2xx status or a connection/timeout failure.
            StreamParseError: a streamed event carried malformed JSON.
            ResponseShapeError: a buffered body had no choice to read.
        """
        dialect = self.settings.dialect
        stream = self.settings.streaming and sink is not None
        request = REQUEST_BUILDERS[dialect](self.settings, messages, schema, stream)

        logger.debug("chat request started (dialect=%s, url=%s, stream=%s)", dialect.value, request.url, stream)
        if self.settings.debug_chat:
            for message in messages:
                emit(f"{MAGENTA}{message.role}:{NORMAL} {message.content}")

        try:
            with self._session() as client:
                with client.stream(
                    "POST",
                    request.url,
                    params=request.params or None,
                    headers=request.headers,
                    json=request.body,
                ) as response:
                    if not response.is_success:
                        logger.warning("chat request failed: HTTP %s %s", response.status_code, response.reason_phrase)
                        raise TransportError(
                            f"HTTP error with the status: {response.status_code} {response.reason_phrase}",
                            status_code=response.status_code,
                            reason=response.reason_phrase,
                        )
                    if stream:
                        return self._read_stream(response, sink)
                    return self._read_buffered(response, sink, schema is not None)
        except httpx.HTTPError as exc:
            logger.warning("chat request failed: %s", exc)
            raise TransportError(f"chat request failed: {exc}") from exc

    # -------------------------------------------------

    def _session(self):
        if self.http_client is not None:
            return contextlib.nullcontext(self.http_client)
        return httpx.Client(timeout=self.settings.timeout_seconds)

    def _read_buffered(self, response: httpx.Response, sink: Optional[StreamSink], structured: bool) -> str:
        response.read()
        try:
            data = response.json()
        except ValueError as exc:
            raise ResponseShapeError("chat completion returned invalid JSON") from exc
        if not isinstance(data, dict) or not (data.get("choices") or data.get("candidates")):
            raise ResponseShapeError("chat completion response has no choices")

        answer = extract_content(data).strip()
        if self.settings.debug_chat:
            emit(f"{YELLOW}{self._pretty(answer, structured)}{NORMAL}")
        if sink is not None:
            sink(answer)
        return answer

    def _read_stream(self, response: httpx.Response, sink: StreamSink) -> str:
        pieces = []
        for payload in iter_sse_payloads(response.iter_lines()):
            try:
                data = json.loads(payload)
            except json.JSONDecodeError as exc:
                raise StreamParseError(f"malformed event in completion stream: {exc}", payload=payload) from exc
            if not isinstance(data, dict):
                raise StreamParseError("completion stream event is not a JSON object", payload=payload)
            partial = extract_delta(data)
            if not partial:
                continue
            pieces.append(partial)
            sink(partial)
        return "".join(pieces)

    @staticmethod
    def _pretty(answer: str, structured: bool) -> str:
        if not structured:
            return answer
        parsed = un_json(answer)
        return json.dumps(parsed, indent=2) if parsed else answer


__all__ = [
    "ChatRequest",
    "ChatTransport",
    "REQUEST_BUILDERS",
    "STOP_TOKENS",
    "StreamSink",
    "build_gemini_request",
    "build_openai_request",
    "extract_content",
    "extract_delta",
    "iter_sse_payloads",
]
