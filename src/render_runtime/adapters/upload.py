"""
S3-compatible uploader adapter (AWS S3, MinIO, R2).

boto3 is synchronous, so every call is pushed to the shared thread pool with
:func:`render_runtime.concurrency.run_sync`.
"""

from __future__ import annotations

import mimetypes
from pathlib import Path
from typing import Any

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..concurrency import run_sync
from ..config import UploadConfig
from ..errors import ErrorContext, UploadError
from ..logging import get_logger

logger = get_logger("render_runtime.adapters.upload")


def create_s3_client(config: UploadConfig) -> Any:
    """SDK client for server-side uploads."""
    session = boto3.session.Session(
        aws_access_key_id=config.access_key,
        aws_secret_access_key=config.secret_key,
        region_name=config.region,
    )
    return session.client(
        "s3",
        endpoint_url=config.endpoint_url,
        config=BotoConfig(
            s3={"addressing_style": "path"},
            signature_version="s3v4",
        ),
    )


class S3Uploader:
    """
    Uploader publishing artifacts to a bucket.

    The object key is ``<key_prefix><public_id><suffix>``; the returned URL is
    built against ``public_endpoint`` (falling back to ``endpoint_url``, then
    the regional AWS host).
    """

    def __init__(self, config: UploadConfig | None = None, client: Any = None):
        self._config = config or UploadConfig()
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = create_s3_client(self._config)
        return self._client

    def object_key(self, path: Path, public_id: str) -> str:
        return f"{self._config.key_prefix}{public_id}{path.suffix}"

    def object_url(self, key: str) -> str:
        base = self._config.public_endpoint or self._config.endpoint_url
        if base:
            return f"{base.rstrip('/')}/{self._config.bucket}/{key}"
        return f"https://{self._config.bucket}.s3.{self._config.region}.amazonaws.com/{key}"

    def _upload_file(self, path: Path, key: str, content_type: str | None) -> None:
        extra = {"ContentType": content_type} if content_type else None
        self.client.upload_file(str(path), self._config.bucket, key, ExtraArgs=extra)

    async def upload(self, path: Path, *, resource_kind: str, public_id: str) -> str:
        key = self.object_key(path, public_id)
        content_type, _ = mimetypes.guess_type(path.name)
        if content_type is None and resource_kind == "video":
            content_type = "video/mp4"

        try:
            await run_sync(self._upload_file, path, key, content_type)
        except (BotoCoreError, ClientError, OSError) as e:
            raise UploadError(
                f"Upload to s3://{self._config.bucket}/{key} failed: {e}",
                context=ErrorContext(stage="uploading", extra={"key": key}),
                cause=e,
            ) from e

        url = self.object_url(key)
        logger.debug("Uploaded artifact", key=key, url=url)
        return url


__all__ = [
    "create_s3_client",
    "S3Uploader",
]
