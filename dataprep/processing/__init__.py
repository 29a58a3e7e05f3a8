"""
Run execution: the transform pipeline and the background orchestrator.
"""

from .cancellation import CancellationToken, RunCancelled
from .orchestrator import ProcessingOrchestrator, run_to_completion
from .pipeline import OutputPreview, PipelineResult, TransformPipeline, preview_output

__all__ = [
    "CancellationToken",
    "RunCancelled",
    "ProcessingOrchestrator",
    "run_to_completion",
    "OutputPreview",
    "PipelineResult",
    "TransformPipeline",
    "preview_output",
]
