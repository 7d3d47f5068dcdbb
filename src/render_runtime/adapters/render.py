"""
Command-line renderer adapter.

Runs an external render command (Remotion's CLI by default) as a subprocess.
The input props are handed over as a JSON file; the artifact is written to
``<work_dir>/video-<job_id>.mp4``.
"""

from __future__ import annotations

import asyncio
import json
import shlex
import tempfile
from pathlib import Path
from typing import Any

from ..config import RenderConfig
from ..errors import ErrorContext, RenderError
from ..logging import get_logger, truncate_for_log

logger = get_logger("render_runtime.adapters.render")

STDERR_TAIL_CHARS = 2000


class CommandRenderer:
    """
    Renderer backed by a command template.

    Placeholders: ``{entry}``, ``{composition}``, ``{output}``, ``{props}``,
    ``{concurrency}``, ``{job_id}``.
    """

    def __init__(self, config: RenderConfig | None = None, work_dir: Path | None = None):
        self._config = config or RenderConfig()
        self._work_dir = Path(work_dir) if work_dir else None

    def output_path(self, job_id: str) -> Path:
        base = self._work_dir or Path(tempfile.gettempdir())
        return base / f"video-{job_id}.mp4"

    def build_command(self, *, job_id: str, output: Path, props_file: Path, concurrency: int) -> list[str]:
        values = {
            "entry": self._config.entry,
            "composition": self._config.composition,
            "output": str(output),
            "props": str(props_file),
            "concurrency": str(concurrency),
            "job_id": job_id,
        }
        return [part.format(**values) for part in shlex.split(self._config.command)]

    async def render(self, input_props: dict[str, Any], *, job_id: str, concurrency: int) -> Path:
        output = self.output_path(job_id)
        output.parent.mkdir(parents=True, exist_ok=True)
        props_file = output.with_name(f"props-{job_id}.json")
        props_file.write_text(json.dumps(input_props), encoding="utf-8")

        command = self.build_command(
            job_id=job_id, output=output, props_file=props_file, concurrency=concurrency
        )
        context = ErrorContext(job_id=job_id, stage="rendering")
        logger.debug("Starting render command", job_id=job_id, command=truncate_for_log(" ".join(command)))

        try:
            try:
                proc = await asyncio.create_subprocess_exec(
                    *command,
                    cwd=str(self._config.cwd) if self._config.cwd else None,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except OSError as e:
                raise RenderError(f"Could not start render command: {e}", context=context, cause=e) from e

            try:
                _, stderr = await proc.communicate()
            except asyncio.CancelledError:
                proc.kill()
                await proc.wait()
                raise
        finally:
            props_file.unlink(missing_ok=True)

        if proc.returncode != 0:
            output.unlink(missing_ok=True)
            tail = stderr.decode("utf-8", errors="ignore")[-STDERR_TAIL_CHARS:].strip()
            message = f"Render command failed (code {proc.returncode})"
            if tail:
                message = f"{message}: {tail}"
            raise RenderError(message, context=context)
        if not output.exists():
            raise RenderError(f"Render command produced no output at {output}", context=context)
        return output


__all__ = [
    "CommandRenderer",
]
