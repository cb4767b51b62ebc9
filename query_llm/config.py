"""
Settings for one run of the tool.

The CLI builds an :class:`LLMSettings` once from the environment and hands
it to the transport, the pipeline and the evaluator. Nothing else in the
package reads environment variables.
"""

from __future__ import annotations

import os
from enum import Enum
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field


DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o-mini"
GEMINI_HOST_MARKER = "generativelanguage.google"


class Dialect(str, Enum):
    """Wire format spoken by the configured chat-completion endpoint."""

    OPENAI = "openai"
    GEMINI = "gemini"


class LLMSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    base_url: str = DEFAULT_BASE_URL
    api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    streaming: bool = True
    json_schema: bool = False
    zero_shot: bool = False

    debug_chat: bool = False
    debug_pipeline: bool = False
    debug_fail_exit: bool = False

    max_tokens: int = Field(default=200, gt=0)
    temperature: float = 0.0
    timeout_seconds: float = Field(default=17.0, gt=0)
    max_retry_attempt: int = Field(default=3, ge=1)

    @property
    def dialect(self) -> Dialect:
        if GEMINI_HOST_MARKER in self.base_url:
            return Dialect.GEMINI
        return Dialect.OPENAI

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "LLMSettings":
        env = os.environ if environ is None else environ

        def flag(name: str) -> bool:
            return bool(env.get(name))

        return cls(
            base_url=(env.get("LLM_API_BASE_URL") or DEFAULT_BASE_URL).rstrip("/"),
            api_key=env.get("LLM_API_KEY") or env.get("OPENAI_API_KEY") or None,
            model=env.get("LLM_CHAT_MODEL") or DEFAULT_MODEL,
            streaming=env.get("LLM_STREAMING") != "no",
            json_schema=flag("LLM_JSON_SCHEMA"),
            zero_shot=flag("LLM_ZERO_SHOT"),
            debug_chat=flag("LLM_DEBUG_CHAT"),
            debug_pipeline=flag("LLM_DEBUG_PIPELINE"),
            debug_fail_exit=flag("LLM_DEBUG_FAIL_EXIT"),
        )


__all__ = ["Dialect", "LLMSettings", "DEFAULT_BASE_URL", "DEFAULT_MODEL"]
