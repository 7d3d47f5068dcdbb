"""
Render Runtime - Bounded job store with an asynchronous render pipeline.

This package provides:
- Job lifecycle management (queued, rendering, uploading, done, error)
- A bounded, TTL-expiring job store (in-memory or Redis)
- A background pipeline runner driving render and upload per job
- A reaper enforcing age and count bounds
- A producer-facing service for submit/poll

Example:
    ```python
    from render_runtime import RenderRuntime, Settings

    async with await RenderRuntime.create(Settings.from_env()) as runtime:
        result = await runtime.service.submit({"title": "Quiz #1"})

        # Poll for completion
        job = await runtime.service.status(result.id)
        print(job.status, job.video_url)
    ```
"""

from .config import (
    Settings,
    StoreConfig,
    ReaperConfig,
    PipelineConfig,
    RenderConfig,
    UploadConfig,
    LoggingConfig,
    load_env,
)
from .errors import (
    ErrorCode,
    RenderRuntimeError,
    StoreError,
    StoreUnavailableError,
    InvalidPayloadError,
    PipelineError,
    RenderError,
    UploadError,
    PipelineTimeoutError,
    ConfigError,
)
from .jobs import (
    JobStatus,
    JobRecord,
    JobPatch,
    JobStats,
    JobStore,
    InMemoryJobStore,
    generate_job_id,
)
from .storage import RedisJobStore
from .pipeline import Renderer, Uploader, PipelineRunner
from .reaper import Reaper
from .service import JobService, SubmitResult
from .runtime import RenderRuntime

__version__ = "0.1.0"

__all__ = [
    # Config
    "Settings",
    "StoreConfig",
    "ReaperConfig",
    "PipelineConfig",
    "RenderConfig",
    "UploadConfig",
    "LoggingConfig",
    "load_env",
    # Errors
    "ErrorCode",
    "RenderRuntimeError",
    "StoreError",
    "StoreUnavailableError",
    "InvalidPayloadError",
    "PipelineError",
    "RenderError",
    "UploadError",
    "PipelineTimeoutError",
    "ConfigError",
    # Jobs
    "JobStatus",
    "JobRecord",
    "JobPatch",
    "JobStats",
    "JobStore",
    "InMemoryJobStore",
    "RedisJobStore",
    "generate_job_id",
    # Pipeline
    "Renderer",
    "Uploader",
    "PipelineRunner",
    "Reaper",
    # Service
    "JobService",
    "SubmitResult",
    "RenderRuntime",
]
