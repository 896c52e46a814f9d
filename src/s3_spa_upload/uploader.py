# src/s3_spa_upload/uploader.py
"""
Uploads single files to the bucket.

Each file is read fully into memory and written with one `put_object` call,
carrying the Content-Type and Cache-Control headers resolved for its name.
A permanent redirect to another regional endpoint is followed once.
"""

import asyncio
import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional, Pattern

from botocore.exceptions import BotoCoreError, ClientError

from s3_spa_upload.cache_control import (
    CacheControlMapping,
    get_cache_control,
    get_content_type,
)
from s3_spa_upload.client import S3ClientHolder
from s3_spa_upload.exceptions import FilesystemError, UploadError

if TYPE_CHECKING:
    from types_aiobotocore_s3.client import S3Client

logger: logging.Logger = logging.getLogger(__name__)

LEGACY_REGION: str = "us-east-1"

_REGIONAL_ENDPOINT: Pattern[str] = re.compile(
    r"\.s3[-.](?:dualstack\.)?(?P<region>[a-z0-9-]+)\.amazonaws\.com\.?$"
)


def get_redirect_region(error: ClientError) -> Optional[str]:
    """
    Extracts the target region from a permanent redirect error.

    The region is taken from the endpoint host named in the response, e.g.
    `bucket.s3-eu-west-1.amazonaws.com` or `bucket.s3.eu-west-1.amazonaws.com`.
    Hosts without a region (`bucket.s3.amazonaws.com`) are the legacy
    us-east-1 endpoint.

    Args:
        error (ClientError): The error raised by the S3 client.

    Returns:
        Optional[str]: The region to retry in, or None if the error is not a
            permanent redirect naming an endpoint.
    """
    details: Dict[str, Any] = error.response.get("Error", {})
    if details.get("Code") != "PermanentRedirect":
        return None
    endpoint: Optional[str] = details.get("Endpoint")
    if not endpoint:
        return None
    match: Optional[re.Match[str]] = _REGIONAL_ENDPOINT.search(endpoint.lower())
    if match is None or match.group("region") == "external-1":
        return LEGACY_REGION
    return match.group("region")


class Uploader:
    """Uploads files from a local root directory under a key prefix."""

    def __init__(
        self,
        clients: S3ClientHolder,
        bucket: str,
        root: Path,
        prefix: str,
        cache_control_mapping: CacheControlMapping,
    ) -> None:
        """
        Initialize the uploader.

        Args:
            clients (S3ClientHolder): Holder of the current S3 client.
            bucket (str): The target bucket.
            root (Path): The absolute directory keys are relative to.
            prefix (str): The normalized key prefix ("" or ending with "/").
            cache_control_mapping (CacheControlMapping): Cache-Control rules.
        """
        self._clients: S3ClientHolder = clients
        self._bucket: str = bucket
        self._root: Path = root
        self._prefix: str = prefix
        self._cache_control_mapping: CacheControlMapping = cache_control_mapping

    def relative_key(self, path: Path) -> str:
        """Returns the root-relative POSIX path of a file."""
        return path.relative_to(self._root).as_posix().lstrip("/")

    def build_key(self, path: Path) -> str:
        """Returns the object key for a file: prefix plus root-relative path."""
        return f"{self._prefix}{self.relative_key(path)}"

    async def upload(self, path: Path) -> str:
        """
        Uploads one file, following a region redirect once.

        Args:
            path (Path): Absolute path of a file below the root.

        Returns:
            str: The object key that was written.

        Raises:
            FilesystemError: If the file cannot be read.
            UploadError: If the put fails, or its redirected retry fails.
        """
        relative_key: str = self.relative_key(path)
        key: str = f"{self._prefix}{relative_key}"

        loop: asyncio.AbstractEventLoop = asyncio.get_running_loop()
        try:
            body: bytes = await loop.run_in_executor(None, path.read_bytes)
        except OSError as e:
            raise FilesystemError(f"Cannot read file '{path}': {e.strerror or e}") from e

        params: Dict[str, Any] = {"Bucket": self._bucket, "Key": key, "Body": body}
        cache_control: Optional[str] = get_cache_control(
            relative_key, self._cache_control_mapping
        )
        if cache_control:
            params["CacheControl"] = cache_control
        content_type: Optional[str] = get_content_type(path)
        if content_type:
            params["ContentType"] = content_type

        try:
            await self._clients.client.put_object(**params)
        except ClientError as e:
            region: Optional[str] = get_redirect_region(e)
            if region is None:
                raise UploadError(
                    f"Failed to upload '{path}' to 's3://{self._bucket}/{key}': {e}"
                ) from e
            logger.debug(f"Upload of '{key}' redirected to region '{region}'.")
            await self._put_redirected(region, params, path)
        except BotoCoreError as e:
            raise UploadError(
                f"Failed to upload '{path}' to 's3://{self._bucket}/{key}': {e}"
            ) from e

        logger.info(
            f"Uploaded s3://{self._bucket}/{key} | cache-control={cache_control} "
            f"| content-type={content_type}"
        )
        return key

    async def _put_redirected(
        self, region: str, params: Dict[str, Any], path: Path
    ) -> None:
        client: "S3Client" = await self._clients.redirect(region)
        try:
            await client.put_object(**params)
        except (ClientError, BotoCoreError) as e:
            raise UploadError(
                f"Failed to upload '{path}' to 's3://{self._bucket}/{params['Key']}' "
                f"after redirect to region '{region}': {e}"
            ) from e
