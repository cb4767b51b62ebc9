"""
Prompt templates and output schemas used by the pipeline stages.
"""

from typing import Any, Dict

# Order matters: the last key is the anchor used when parsing completions.
PREDEFINED_KEYS = ("inquiry", "tool", "thought", "keyphrases", "observation", "answer", "topic")

SEARCH_TOOL = "Google"

REASON_PROMPT = """Use Google to search for the answer. Think step by step.
Always output your thought in following format"""

REASON_GUIDELINE: Dict[str, str] = {
    "tool": "the search engine to use (must be Google)",
    "thought": "describe your thoughts about the inquiry",
    "keyphrases": "the important key phrases to search for",
    "observation": "the concise result of the search tool",
    "topic": "the specific topic covering the inquiry",
}

REASON_EXAMPLE_INQUIRY = """
Example:

Given an inquiry "What is Pitch Lake in Trinidad famous for?", you will output:"""

REASON_EXAMPLE_OUTPUT: Dict[str, str] = {
    "tool": "Google",
    "thought": "This is about geography, I will use Google search",
    "keyphrases": "Pitch Lake in Trinidad fame",
    "observation": "Pitch Lake in Trinidad is the largest natural deposit of asphalt",
    "topic": "geography",
}

REASON_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "tool": {"type": "string"},
        "thought": {"type": "string"},
        "keyphrases": {"type": "string"},
        "observation": {"type": "string"},
        "topic": {"type": "string"},
    },
    "required": ["tool", "thought", "keyphrases", "observation", "topic"],
}

RESPOND_PROMPT = """You are an assistant for question-answering tasks.
You are digesting the most recent user's inquiry, thought, and observation.
Your task is to use the observation to answer the inquiry politely and concisely.
You may need to refer to the user's conversation history to understand some context.
There is no need to mention "based on the observation" or "based on the previous conversation" in your answer.
Your answer is in simple English, and at max 3 sentences.
Do not make any apology or other commentary.
Do not use other sources of information, including your memory.
Do not make up new names or come up with new facts."""

RESPOND_GUIDELINE = """
Always answer in JSON with the following format:

{
    "answer": // accurate and polite answer
}"""

RESPOND_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "answer": {"type": "string"},
    },
    "required": ["answer"],
}

RESPOND_REFERENCE_HEADER = "For your reference, you and the user have the following Q&A discussion:"

REPLY_PROMPT = """You are a helpful answering assistant.
Your task is to reply and respond to the user politely and concisely.
Answer in plain text and not in Markdown format."""
