"""
Boundary protocols for the pipeline.

The render engine and the object store are external collaborators; the runner
only depends on these two call shapes.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Renderer(Protocol):
    """Produces a local media artifact from a job's input props."""

    async def render(self, input_props: dict[str, Any], *, job_id: str, concurrency: int) -> Path:
        ...


@runtime_checkable
class Uploader(Protocol):
    """Publishes a local artifact and returns its public URL."""

    async def upload(self, path: Path, *, resource_kind: str, public_id: str) -> str:
        ...


__all__ = [
    "Renderer",
    "Uploader",
]
