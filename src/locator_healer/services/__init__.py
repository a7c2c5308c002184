"""
Services module for locator resolution and healing.
"""

from .resolution_orchestrator import ResolutionEvidence, ResolutionOrchestrator
from .healing_loop import LocatorHealingLoop
from .failure_pipeline import FailurePipeline, PipelineReport

__all__ = [
    "ResolutionEvidence",
    "ResolutionOrchestrator",
    "LocatorHealingLoop",
    "FailurePipeline",
    "PipelineReport",
]
