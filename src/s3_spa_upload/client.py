# src/s3_spa_upload/client.py
"""
Ownership of the aiobotocore S3 client used by a sync run.

A bucket that lives in another region answers puts with a permanent
redirect. When that happens the holder swaps in a client bound to the
bucket's region, and every later operation of the run uses that client.
"""

import asyncio
import logging
from contextlib import AsyncExitStack
from types import TracebackType
from typing import TYPE_CHECKING, Optional, Type

from aiobotocore.session import AioSession
from botocore.config import Config as BotoConfig

from s3_spa_upload.config import S3Config

if TYPE_CHECKING:
    from types_aiobotocore_s3.client import S3Client

logger: logging.Logger = logging.getLogger(__name__)


class S3ClientHolder:
    """
    An async context manager holding the current S3 client of a run.

    All clients created by the holder stay open until the context exits, so
    operations that started on a replaced client can still complete.
    """

    def __init__(
        self,
        session: AioSession,
        s3_config: S3Config,
        boto_config: Optional[BotoConfig] = None,
    ) -> None:
        """
        Initialize the client holder.

        Args:
            session (AioSession): The session used to create clients.
            s3_config (S3Config): The bucket and credential configuration.
            boto_config (BotoConfig, optional): Client configuration.
        """
        self._session: AioSession = session
        self._s3_config: S3Config = s3_config
        self._boto_config: Optional[BotoConfig] = boto_config
        self._stack: AsyncExitStack = AsyncExitStack()
        self._lock: asyncio.Lock = asyncio.Lock()
        self._client: Optional["S3Client"] = None
        self._region: Optional[str] = s3_config.region

    @property
    def client(self) -> "S3Client":
        """The client all new operations should use."""
        if self._client is None:
            raise RuntimeError("The S3 client holder has not been opened.")
        return self._client

    @property
    def region(self) -> Optional[str]:
        """The region the current client is bound to, if known."""
        return self._region

    async def __aenter__(self) -> "S3ClientHolder":
        self._client = await self._create_client(self._region)
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self._client = None
        await self._stack.aclose()

    async def redirect(self, region: str) -> "S3Client":
        """
        Re-targets the holder to `region`.

        Only one redirect runs at a time; callers racing on the same region
        get the client created by the first of them.

        Args:
            region (str): The region named by the redirect response.

        Returns:
            S3Client: The client bound to `region`.
        """
        async with self._lock:
            if self._client is not None and region == self._region:
                return self._client
            logger.warning(
                f"Bucket '{self._s3_config.bucket}' is in region '{region}'. "
                f"Switching S3 client from region '{self._region or 'default'}'."
            )
            self._client = await self._create_client(region)
            self._region = region
            return self._client

    async def _create_client(self, region: Optional[str]) -> "S3Client":
        client: "S3Client" = await self._stack.enter_async_context(
            self._session.create_client(
                "s3",
                **self._s3_config.as_boto_dict(region),
                config=self._boto_config,
            )
        )
        return client
