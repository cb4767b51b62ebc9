"""Scripted-transcript evaluation: expected-value patterns and the scenario runner."""

from .evaluator import EvaluationResult, ScenarioEvaluator, simplify
from .matching import describe, highlight, match, regexify

__all__ = [
    "EvaluationResult",
    "ScenarioEvaluator",
    "describe",
    "highlight",
    "match",
    "regexify",
    "simplify",
]
