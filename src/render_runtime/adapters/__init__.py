"""
Boundary adapters for the external render engine and object storage.
"""

from .render import CommandRenderer
from .upload import S3Uploader, create_s3_client

__all__ = [
    "CommandRenderer",
    "S3Uploader",
    "create_s3_client",
]
