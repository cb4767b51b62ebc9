"""Stage sequencing and the reason / respond / reply pipeline."""

from .pipeline import ReasoningPipeline
from .step import Delegates, Pipeline, StageRecorder, pipe

__all__ = ["Delegates", "Pipeline", "ReasoningPipeline", "StageRecorder", "pipe"]
