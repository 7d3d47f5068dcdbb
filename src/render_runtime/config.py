"""
Configuration for render-runtime.

Typed dataclass sections with validation in ``__post_init__``, aggregated by
:class:`Settings`, which can be loaded from environment variables, a TOML
file, or constructed programmatically.
"""

from __future__ import annotations

import dataclasses
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

import jsonschema
from dotenv import find_dotenv, load_dotenv

from .errors import ConfigError

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
LogFormat = Literal["text", "json"]


@dataclass
class StoreConfig:
    """Configuration for the job store."""

    redis_url: str = "redis://localhost:6379/0"

    # Key layout
    key_prefix: str = "job:"
    ids_key: str = "job_ids"
    queue_key: str = "job_queue"

    # Bounds
    max_jobs: int = 50
    max_age_hours: float = 24

    # Connection pool; callers wait up to pool_timeout_seconds for a free connection
    max_connections: int = 50
    pool_timeout_seconds: float = 20.0
    connect_timeout_seconds: float = 10.0
    update_retries: int = 5

    # Index entries checked for a missing record per eviction pass
    orphan_scan_batch: int = 500

    def __post_init__(self):
        if self.max_jobs < 1:
            raise ValueError("max_jobs must be at least 1")
        if self.max_age_hours <= 0:
            raise ValueError("max_age_hours must be positive")
        if self.max_connections < 1:
            raise ValueError("max_connections must be at least 1")
        if self.pool_timeout_seconds <= 0:
            raise ValueError("pool_timeout_seconds must be positive")
        if self.connect_timeout_seconds <= 0:
            raise ValueError("connect_timeout_seconds must be positive")
        if self.update_retries < 1:
            raise ValueError("update_retries must be at least 1")
        if self.orphan_scan_batch < 1:
            raise ValueError("orphan_scan_batch must be at least 1")

    @property
    def ttl_seconds(self) -> int:
        return int(self.max_age_hours * 3600)


@dataclass
class ReaperConfig:
    """Configuration for periodic eviction."""

    enabled: bool = True
    cleanup_interval_minutes: float = 60
    # An immediate sweep is requested once the live count exceeds max_jobs * ratio.
    soft_limit_ratio: float = 1.5

    def __post_init__(self):
        if self.cleanup_interval_minutes <= 0:
            raise ValueError("cleanup_interval_minutes must be positive")
        if self.soft_limit_ratio < 1:
            raise ValueError("soft_limit_ratio cannot be below 1")

    @property
    def interval_seconds(self) -> float:
        return self.cleanup_interval_minutes * 60


@dataclass
class PipelineConfig:
    """Configuration for the pipeline runner."""

    render_concurrency: int = 4
    render_timeout_seconds: float | None = None
    upload_timeout_seconds: float | None = None
    max_concurrent_jobs: int | None = None

    resource_kind: str = "video"
    public_id_prefix: str = "job-"
    work_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()))

    def __post_init__(self):
        if self.render_concurrency < 1:
            raise ValueError("render_concurrency must be at least 1")
        for name in ("render_timeout_seconds", "upload_timeout_seconds"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ValueError(f"{name} must be positive")
        if self.max_concurrent_jobs is not None and self.max_concurrent_jobs < 1:
            raise ValueError("max_concurrent_jobs must be at least 1")
        if isinstance(self.work_dir, str):
            self.work_dir = Path(self.work_dir)


@dataclass
class RenderConfig:
    """Configuration for the command-line renderer adapter."""

    command: str = (
        "npx remotion render {entry} {composition} {output}"
        " --props={props} --concurrency={concurrency} --codec=h264"
    )
    entry: str = "src/index.ts"
    composition: str = "MainVideo"
    cwd: Path | None = None

    def __post_init__(self):
        if "{output}" not in self.command:
            raise ValueError("render command must contain an {output} placeholder")
        if isinstance(self.cwd, str):
            self.cwd = Path(self.cwd)


@dataclass
class UploadConfig:
    """Configuration for the S3 uploader adapter."""

    bucket: str = "renders"
    endpoint_url: str | None = None
    public_endpoint: str | None = None
    region: str = "us-east-1"
    access_key: str | None = None
    secret_key: str | None = None
    key_prefix: str = "videos/"


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: LogLevel = "INFO"
    format: LogFormat = "text"

    def __post_init__(self):
        valid_levels = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
        if self.level not in valid_levels:
            raise ValueError(f"Invalid log level: {self.level}. Must be one of {valid_levels}")
        valid_formats = ("text", "json")
        if self.format not in valid_formats:
            raise ValueError(f"Invalid log format: {self.format}. Must be one of {valid_formats}")


_SECTION_SCHEMA = {"type": "object"}

CONFIG_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "store": {
            "type": "object",
            "properties": {
                "redis_url": {"type": "string"},
                "max_jobs": {"type": "integer", "minimum": 1},
                "max_age_hours": {"type": "number", "exclusiveMinimum": 0},
                "max_connections": {"type": "integer", "minimum": 1},
            },
        },
        "reaper": _SECTION_SCHEMA,
        "pipeline": _SECTION_SCHEMA,
        "render": _SECTION_SCHEMA,
        "upload": _SECTION_SCHEMA,
        "logging": {
            "type": "object",
            "properties": {
                "level": {"enum": ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]},
                "format": {"enum": ["text", "json"]},
            },
        },
    },
    "additionalProperties": False,
}


def _optional_float(value: str) -> float | None:
    value = value.strip().lower()
    if value in ("", "none", "0"):
        return None
    return float(value)


@dataclass
class Settings:
    """
    Master configuration for the render runtime.

    Example:
        RENDER_MAX_JOBS=50
        RENDER_MAX_AGE_HOURS=24
        RENDER_CLEANUP_INTERVAL_MINUTES=60
        REDIS_URL=redis://localhost:6379/0
    """

    store: StoreConfig = field(default_factory=StoreConfig)
    reaper: ReaperConfig = field(default_factory=ReaperConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    render: RenderConfig = field(default_factory=RenderConfig)
    upload: UploadConfig = field(default_factory=UploadConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls, prefix: str = "RENDER_") -> Settings:
        """
        Load settings from environment variables.

        ``REDIS_URL`` is honoured without prefix as well, matching the usual
        hosting conventions.
        """
        settings = cls()

        # Store settings
        if url := os.getenv(f"{prefix}REDIS_URL") or os.getenv("REDIS_URL"):
            settings.store.redis_url = url
        if key_prefix := os.getenv(f"{prefix}KEY_PREFIX"):
            settings.store.key_prefix = key_prefix
        if max_jobs := os.getenv(f"{prefix}MAX_JOBS"):
            settings.store.max_jobs = int(max_jobs)
        if max_age := os.getenv(f"{prefix}MAX_AGE_HOURS"):
            settings.store.max_age_hours = float(max_age)
        if max_connections := os.getenv(f"{prefix}MAX_CONNECTIONS"):
            settings.store.max_connections = int(max_connections)

        # Reaper settings
        if interval := os.getenv(f"{prefix}CLEANUP_INTERVAL_MINUTES"):
            settings.reaper.cleanup_interval_minutes = float(interval)
        if reaper_enabled := os.getenv(f"{prefix}REAPER_ENABLED"):
            settings.reaper.enabled = reaper_enabled.lower() in {"1", "true", "yes", "on"}

        # Pipeline settings
        if concurrency := os.getenv(f"{prefix}RENDER_CONCURRENCY"):
            settings.pipeline.render_concurrency = int(concurrency)
        if render_timeout := os.getenv(f"{prefix}RENDER_TIMEOUT"):
            settings.pipeline.render_timeout_seconds = _optional_float(render_timeout)
        if upload_timeout := os.getenv(f"{prefix}UPLOAD_TIMEOUT"):
            settings.pipeline.upload_timeout_seconds = _optional_float(upload_timeout)
        if max_concurrent := os.getenv(f"{prefix}MAX_CONCURRENT_JOBS"):
            settings.pipeline.max_concurrent_jobs = int(max_concurrent) or None
        if work_dir := os.getenv(f"{prefix}WORK_DIR"):
            settings.pipeline.work_dir = Path(work_dir)

        # Render adapter settings
        if command := os.getenv(f"{prefix}COMMAND"):
            settings.render.command = command
        if entry := os.getenv(f"{prefix}ENTRY"):
            settings.render.entry = entry
        if composition := os.getenv(f"{prefix}COMPOSITION"):
            settings.render.composition = composition

        # Upload adapter settings
        if bucket := os.getenv("S3_BUCKET"):
            settings.upload.bucket = bucket
        if endpoint := os.getenv("S3_ENDPOINT_URL"):
            settings.upload.endpoint_url = endpoint
        if public_endpoint := os.getenv("S3_PUBLIC_ENDPOINT"):
            settings.upload.public_endpoint = public_endpoint
        if region := os.getenv("S3_REGION"):
            settings.upload.region = region
        settings.upload.access_key = os.getenv("S3_ACCESS_KEY", settings.upload.access_key)
        settings.upload.secret_key = os.getenv("S3_SECRET_KEY", settings.upload.secret_key)

        # Logging settings
        if level := os.getenv(f"{prefix}LOG_LEVEL"):
            settings.logging.level = level.upper()  # type: ignore
        if log_format := os.getenv(f"{prefix}LOG_FORMAT"):
            settings.logging.format = log_format.lower()  # type: ignore

        settings.validate()
        return settings

    @classmethod
    def from_file(cls, path: str | Path) -> Settings:
        """Load settings from a TOML file."""
        import tomllib

        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")
        if path.suffix.lower() != ".toml":
            raise ValueError(f"Unsupported config file format: {path.suffix}")

        with open(path, "rb") as f:
            data = tomllib.load(f)
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Settings:
        """Create Settings from a nested dictionary, validated against CONFIG_SCHEMA."""
        try:
            jsonschema.validate(instance=data, schema=CONFIG_SCHEMA)
        except jsonschema.ValidationError as e:
            raise ConfigError(f"Configuration validation failed: {e.message}", cause=e) from e

        sections = {
            "store": StoreConfig,
            "reaper": ReaperConfig,
            "pipeline": PipelineConfig,
            "render": RenderConfig,
            "upload": UploadConfig,
            "logging": LoggingConfig,
        }
        kwargs: dict[str, Any] = {}
        for name, section_cls in sections.items():
            if name not in data:
                continue
            known = {f.name for f in dataclasses.fields(section_cls)}
            kwargs[name] = section_cls(**{k: v for k, v in data[name].items() if k in known})
        return cls(**kwargs)

    def validate(self) -> None:
        """Re-run section validation after in-place mutation.

        Raises:
            ConfigError: If any section holds an invalid value
        """
        for section in (self.store, self.reaper, self.pipeline, self.render, self.logging):
            try:
                section.__post_init__()
            except ValueError as e:
                raise ConfigError(f"Invalid {type(section).__name__}: {e}", cause=e) from e

    def to_dict(self) -> dict[str, Any]:
        """Convert settings to dictionary."""

        def factory(items):
            return {k: str(v) if isinstance(v, Path) else v for k, v in items}

        return dataclasses.asdict(self, dict_factory=factory)


def load_env(path: str | None = None, *, override: bool = False) -> bool:
    """
    Load environment variables from a .env file.

    Args:
        path: Optional path to a .env file. If not provided, uses find_dotenv().
        override: Whether to override existing environment variables.

    Returns:
        True if a .env file was found and loaded, False otherwise.
    """
    env_path = path or find_dotenv(usecwd=True)
    if not env_path:
        return False
    return load_dotenv(env_path, override=override)


__all__ = [
    "LogLevel",
    "LogFormat",
    "StoreConfig",
    "ReaperConfig",
    "PipelineConfig",
    "RenderConfig",
    "UploadConfig",
    "LoggingConfig",
    "CONFIG_SCHEMA",
    "Settings",
    "load_env",
]
