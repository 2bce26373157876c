"""
Service layer for image-ecolo
"""

from .pipeline_service import PipelineOrchestrator, PipelineResult, PipelineRun, SourceImage

__all__ = [
    "PipelineOrchestrator",
    "PipelineResult",
    "PipelineRun",
    "SourceImage",
]
