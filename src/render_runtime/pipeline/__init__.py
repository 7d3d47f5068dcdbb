"""
Job pipeline for the render runtime.

This module provides:
- Renderer / Uploader: Boundary protocols for the external engines
- PipelineRunner: Per-job background state machine
"""

from .types import Renderer, Uploader
from .runner import CANCELLED_MESSAGE, PipelineRunner

__all__ = [
    "Renderer",
    "Uploader",
    "PipelineRunner",
    "CANCELLED_MESSAGE",
]
