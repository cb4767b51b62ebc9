"""Question answering over chat-completion APIs, with scripted regression transcripts."""

from .config import Dialect, LLMSettings
from .errors import LLMError, ScenarioError
from .schemas import Context, HistoryEntry, Message

__version__ = "0.1.0"

__all__ = [
    "Context",
    "Dialect",
    "HistoryEntry",
    "LLMError",
    "LLMSettings",
    "Message",
    "ScenarioError",
    "__version__",
]
