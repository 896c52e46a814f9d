# src/s3_spa_upload/reconciler.py
"""
Removes objects from the bucket that were not part of the current upload.

The listing is consumed page by page. Deletions for a page are drained
before the next page is requested, which bounds both the number of pending
deletions and memory use on very large buckets.
"""

import logging
from typing import TYPE_CHECKING, AbstractSet, Any, AsyncIterator, Dict, List

from botocore.exceptions import BotoCoreError, ClientError

from s3_spa_upload.client import S3ClientHolder
from s3_spa_upload.exceptions import DeleteError
from s3_spa_upload.work_queue import BoundedWorkQueue

if TYPE_CHECKING:
    from types_aiobotocore_s3.paginator import ListObjectsV2Paginator

logger: logging.Logger = logging.getLogger(__name__)


def select_stale_keys(
    page: Dict[str, Any], keep_keys: AbstractSet[str], prefix: str
) -> List[str]:
    """
    Picks the keys of a listing page that should be deleted.

    Args:
        page (Dict[str, Any]): One `list_objects_v2` response page.
        keep_keys (AbstractSet[str]): Keys written by the current upload.
        prefix (str): The key prefix deletions are limited to.

    Returns:
        List[str]: Keys under `prefix` that are not in `keep_keys`.
    """
    return [
        obj["Key"]
        for obj in page.get("Contents", [])
        if obj.get("Key")
        and obj["Key"].startswith(prefix)
        and obj["Key"] not in keep_keys
    ]


async def remove_stale_objects(
    clients: S3ClientHolder,
    bucket: str,
    keep_keys: AbstractSet[str],
    prefix: str,
    concurrency: int,
) -> int:
    """
    Deletes every object under `prefix` whose key is not in `keep_keys`.

    All deletions of a page are allowed to finish even if some fail; the
    first failure is then raised and no further pages are listed.

    Args:
        clients (S3ClientHolder): Holder of the current S3 client.
        bucket (str): The bucket to clean up.
        keep_keys (AbstractSet[str]): Keys that must never be deleted.
        prefix (str): The normalized key prefix ("" for the whole bucket).
        concurrency (int): Max number of concurrent deletions.

    Returns:
        int: The number of deleted objects.

    Raises:
        DeleteError: If an object could not be deleted, or the bucket
            could not be listed.
    """

    async def delete(key: str) -> str:
        try:
            await clients.client.delete_object(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise DeleteError(f"Failed to delete 's3://{bucket}/{key}': {e}") from e
        logger.info(f"Deleted old file: s3://{bucket}/{key}")
        return key

    logger.info(f"Looking for old files under 's3://{bucket}/{prefix}'...")
    paginator: "ListObjectsV2Paginator" = clients.client.get_paginator(
        "list_objects_v2"
    )
    pages: AsyncIterator[Dict[str, Any]] = paginator.paginate(
        Bucket=bucket, Prefix=prefix
    )

    deleted: int = 0
    async with BoundedWorkQueue(delete, concurrency, fail_fast=False) as queue:
        try:
            async for page in pages:
                stale_keys: List[str] = select_stale_keys(page, keep_keys, prefix)
                for key in stale_keys:
                    await queue.submit(key)
                await queue.drain()
                deleted += len(stale_keys)
        except (ClientError, BotoCoreError) as e:
            # Deletions raise DeleteError, so this is the listing itself.
            raise DeleteError(f"Failed to list 's3://{bucket}/{prefix}': {e}") from e
    return deleted
