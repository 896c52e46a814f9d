# src/s3_spa_upload/pipeline.py
"""Core orchestration logic for the s3-spa-upload pipeline."""

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Set, Union

from aiobotocore.session import AioSession, get_session
from botocore.config import Config as BotoConfig
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeRemainingColumn,
)

from s3_spa_upload.client import S3ClientHolder
from s3_spa_upload.config import Config, S3Config, SyncOptions
from s3_spa_upload.exceptions import SyncInterrupted
from s3_spa_upload.reconciler import remove_stale_objects
from s3_spa_upload.uploader import Uploader
from s3_spa_upload.walker import walk_directory
from s3_spa_upload.work_queue import BoundedWorkQueue

logger: logging.Logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncSummary:
    """
    The outcome of a sync run.

    Attributes:
        uploaded (int): Number of files uploaded.
        deleted (int): Number of old objects deleted from the bucket.
    """

    uploaded: int
    deleted: int = 0


class S3SpaUploadPipeline:
    """Orchestrates one sync of a directory to a bucket."""

    def __init__(
        self,
        directory: Union[str, Path],
        config: Config,
        shutdown_event: Optional[asyncio.Event] = None,
        session: Optional[AioSession] = None,
    ) -> None:
        """
        Initializes the pipeline with the given configuration.

        Args:
            directory (Union[str, Path]): The local directory to upload.
            config (Config): The application configuration.
            shutdown_event (asyncio.Event, optional): Event to signal graceful
                shutdown.
            session (AioSession, optional): Session used to create S3 clients.
                A profile-aware session is created when omitted.
        """
        self._root: Path = Path(os.path.abspath(directory))
        self._config: Config = config
        self._shutdown_event: asyncio.Event = shutdown_event or asyncio.Event()
        self._session: AioSession = session or (
            AioSession(profile=config.s3.profile)
            if config.s3.profile
            else get_session()
        )

    async def run(self) -> SyncSummary:
        """
        Executes the full synchronization pipeline.

        Walks the directory, uploads every file with bounded concurrency and,
        if requested, deletes bucket objects under the prefix that were not
        uploaded in this run. Errors are not caught: a failed upload aborts
        the run, possibly after other files were already uploaded.

        Returns:
            SyncSummary: Counts of uploaded and deleted objects.

        Raises:
            FilesystemError: If the directory cannot be walked or a file read.
            UploadError: If a file could not be uploaded.
            DeleteError: If an old object could not be deleted.
            SyncInterrupted: If a shutdown signal stopped the uploads.
        """
        options: SyncOptions = self._config.options
        logger.info(
            f"Syncing '{self._root}' to "
            f"'s3://{self._config.s3.bucket}/{options.prefix}'."
        )

        loop: asyncio.AbstractEventLoop = asyncio.get_running_loop()
        files: List[Path] = await loop.run_in_executor(
            None, walk_directory, self._root
        )

        boto_config: BotoConfig = BotoConfig(
            signature_version="s3v4",
            max_pool_connections=options.concurrency + 50,
            retries={"max_attempts": 0, "mode": "standard"},
        )
        async with S3ClientHolder(
            self._session, self._config.s3, boto_config
        ) as clients:
            uploaded_keys: Set[str] = await self._run_uploads(files, clients)
            logger.info(f"Uploaded {len(uploaded_keys)} files")

            if self._shutdown_event.is_set():
                raise SyncInterrupted(
                    f"Shutdown requested after {len(uploaded_keys)} of "
                    f"{len(files)} files were uploaded. Old files were not deleted."
                )

            deleted: int = 0
            if options.delete:
                deleted = await remove_stale_objects(
                    clients,
                    self._config.s3.bucket,
                    uploaded_keys,
                    options.prefix,
                    options.concurrency,
                )
                logger.info(f"Deleted {deleted} old files")

        return SyncSummary(uploaded=len(uploaded_keys), deleted=deleted)

    async def _run_uploads(
        self, files: List[Path], clients: S3ClientHolder
    ) -> Set[str]:
        """
        Uploads all files through a fail-fast bounded work queue.

        Args:
            files (List[Path]): The files to upload.
            clients (S3ClientHolder): Holder of the current S3 client.

        Returns:
            Set[str]: The keys of all uploaded objects.
        """
        options: SyncOptions = self._config.options
        uploader: Uploader = Uploader(
            clients,
            self._config.s3.bucket,
            self._root,
            options.prefix,
            options.cache_control_mapping,
        )
        uploaded_keys: Set[str] = set()

        progress: Progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeRemainingColumn(),
            transient=True,
        )

        with progress:
            task_id: TaskID = progress.add_task("Uploading...", total=len(files))

            async def upload_and_track(path: Path) -> str:
                key: str = await uploader.upload(path)
                uploaded_keys.add(key)
                progress.update(task_id, advance=1)
                return key

            logger.info(
                f"Upload started of {len(files)} files "
                f"(with concurrency: {options.concurrency})"
            )
            async with BoundedWorkQueue(
                upload_and_track, options.concurrency
            ) as queue:
                for path in files:
                    if self._shutdown_event.is_set():
                        logger.warning("Shutdown initiated, no new uploads started.")
                        break
                    await queue.submit(path)
                await queue.drain()

        return uploaded_keys


async def s3_spa_upload(
    directory: Union[str, Path],
    bucket: str,
    options: Optional[SyncOptions] = None,
    **s3_settings: Optional[str],
) -> SyncSummary:
    """
    Uploads a directory to a bucket in one call.

    Args:
        directory (Union[str, Path]): The local directory to upload.
        bucket (str): The target bucket.
        options (SyncOptions, optional): Sync settings; defaults when omitted.
        **s3_settings: Further `S3Config` fields such as `region` or `profile`.

    Returns:
        SyncSummary: Counts of uploaded and deleted objects.
    """
    config: Config = Config(
        s3=S3Config(bucket=bucket, **s3_settings),  # type: ignore[arg-type]
        options=options or SyncOptions(),
    )
    return await S3SpaUploadPipeline(directory, config).run()
