# src/s3_spa_upload/config.py
"""
Configuration for the s3-spa-upload pipeline.

This module centralizes all configuration, loading optional values from
environment variables and providing typed dataclasses for use throughout
the application.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

from s3_spa_upload.cache_control import (
    DEFAULT_CACHE_CONTROL_MAPPING,
    CacheControlMapping,
    as_cache_control_mapping,
)
from s3_spa_upload.exceptions import ConfigError

DEFAULT_CONCURRENCY: int = 100


def _get_env_var(name: str, default: Optional[str] = None) -> Optional[str]:
    """
    Retrieves an optional environment variable.

    Args:
        name (str): The name of the environment variable.
        default (str, optional): The default value if the variable is not set.

    Returns:
        Optional[str]: The value of the environment variable, or the default
            when it is unset or empty.
    """
    value: Optional[str] = os.environ.get(name)
    return value or default


def normalize_prefix(prefix: Optional[str]) -> str:
    """
    Normalizes a key prefix: empty stays empty, otherwise exactly one
    trailing "/" is kept.

    Args:
        prefix (str, optional): The raw prefix.

    Returns:
        str: The normalized prefix.
    """
    if not prefix:
        return ""
    stripped: str = prefix.rstrip("/")
    if not stripped:
        return ""
    return f"{stripped}/"


def load_cache_control_mapping(path: Union[str, Path]) -> CacheControlMapping:
    """
    Reads a JSON object mapping glob patterns to Cache-Control headers.

    Key order in the document is preserved, as it decides which rule wins.

    Args:
        path: Location of the JSON document.

    Returns:
        CacheControlMapping: The ordered rules.

    Raises:
        ConfigError: If the file cannot be read or is not an object of strings.
    """
    try:
        document: Any = json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(
            f"Cannot read cache-control mapping '{path}': {e.strerror or e}"
        ) from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in cache-control mapping '{path}': {e}") from e

    if not isinstance(document, dict):
        raise ConfigError(
            f"Cache-control mapping '{path}' must be a JSON object of "
            "glob pattern to header value."
        )
    for pattern, value in document.items():
        if not isinstance(value, str):
            raise ConfigError(
                f"Cache-control mapping '{path}': value for '{pattern}' "
                "must be a string."
            )
    return as_cache_control_mapping(document)


@dataclass(frozen=True)
class S3Config:
    """
    Represents the configuration for the target S3 bucket.

    Attributes:
        bucket (str): The bucket name.
        region (str, optional): The AWS region; resolved by botocore if unset.
        profile (str, optional): The AWS profile to load credentials from.
        endpoint_url (str, optional): A custom S3-compatible endpoint URL.
        access_key_id (str, optional): An explicit access key ID.
        secret_access_key (str, optional): An explicit secret access key.
        session_token (str, optional): An explicit session token.
    """

    bucket: str
    region: Optional[str] = None
    profile: Optional[str] = None
    endpoint_url: Optional[str] = field(
        default_factory=lambda: _get_env_var("S3_SPA_UPLOAD_ENDPOINT_URL")
    )
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    session_token: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.bucket:
            raise ConfigError("A bucket name must be provided.")
        if bool(self.access_key_id) != bool(self.secret_access_key):
            raise ConfigError(
                "Both an access key ID and a secret access key must be provided."
            )

    def as_boto_dict(self, region: Optional[str] = None) -> Dict[str, str]:
        """
        Returns the configuration as a dictionary suitable for aiobotocore clients.

        Args:
            region (str, optional): Overrides the configured region, used when
                the bucket redirects to another regional endpoint.

        Returns:
            Dict[str, str]: A dictionary of client parameters.
        """
        params: Dict[str, Optional[str]] = {
            "region_name": region or self.region,
            "endpoint_url": self.endpoint_url,
            "aws_access_key_id": self.access_key_id,
            "aws_secret_access_key": self.secret_access_key,
            "aws_session_token": self.session_token,
        }
        return {k: v for k, v in params.items() if v}


@dataclass(frozen=True)
class SyncOptions:
    """
    Defines how a directory is synchronized to the bucket.

    Attributes:
        delete (bool): Delete objects under the prefix that were not part of
            this upload.
        cache_control_mapping (CacheControlMapping): Ordered glob pattern to
            Cache-Control rules; the default table when None.
        prefix (str): Key prefix prepended to every uploaded object.
        concurrency (int): Max number of S3 operations in flight at once.
    """

    delete: bool = False
    cache_control_mapping: Optional[CacheControlMapping] = None
    prefix: str = ""
    concurrency: Optional[int] = DEFAULT_CONCURRENCY

    def __post_init__(self) -> None:
        # Frozen dataclass, so normalized values are set through object.
        object.__setattr__(self, "prefix", normalize_prefix(self.prefix))
        if self.cache_control_mapping is None:
            object.__setattr__(
                self, "cache_control_mapping", DEFAULT_CACHE_CONTROL_MAPPING
            )
        else:
            object.__setattr__(
                self,
                "cache_control_mapping",
                as_cache_control_mapping(self.cache_control_mapping),
            )
        if self.concurrency is None:
            object.__setattr__(self, "concurrency", DEFAULT_CONCURRENCY)
        if not isinstance(self.concurrency, int) or self.concurrency < 1:
            raise ConfigError(
                f"Concurrency must be a positive integer, got {self.concurrency!r}."
            )


@dataclass(frozen=True)
class Config:
    """
    Top-level configuration container for the entire application.

    Attributes:
        s3 (S3Config): Configuration for the target bucket.
        options (SyncOptions): Sync behaviour settings.
    """

    s3: S3Config
    options: SyncOptions = field(default_factory=SyncOptions)
