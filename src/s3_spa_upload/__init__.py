# src/s3_spa_upload/__init__.py
"""
s3-spa-upload: Upload a single-page-application build to an S3 bucket.

This package uploads every file of a directory tree with bounded concurrency,
sets content-type and cache-control headers per file, and can delete objects
that are no longer part of the build.

The primary entry point for programmatic use is the `S3SpaUploadPipeline`
class, or the `s3_spa_upload` coroutine for a one-call upload.
"""

from typing import List

from s3_spa_upload.cache_control import (
    DEFAULT_CACHE_CONTROL_MAPPING,
    get_cache_control,
)
from s3_spa_upload.config import Config, S3Config, SyncOptions
from s3_spa_upload.pipeline import S3SpaUploadPipeline, SyncSummary, s3_spa_upload

__all__: List[str] = [
    "DEFAULT_CACHE_CONTROL_MAPPING",
    "Config",
    "S3Config",
    "S3SpaUploadPipeline",
    "SyncOptions",
    "SyncSummary",
    "get_cache_control",
    "s3_spa_upload",
]
