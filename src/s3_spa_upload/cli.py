# src/s3_spa_upload/cli.py
"""Command-line interface for the s3-spa-upload tool."""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Optional

import click
from dotenv import load_dotenv
from rich.logging import RichHandler

from s3_spa_upload.cache_control import CacheControlMapping
from s3_spa_upload.config import (
    DEFAULT_CONCURRENCY,
    Config,
    S3Config,
    SyncOptions,
    load_cache_control_mapping,
)
from s3_spa_upload.exceptions import S3SpaUploadError
from s3_spa_upload.signals import GracefulShutdown

logger: logging.Logger = logging.getLogger(__name__)


def setup_logging(level: str) -> None:
    """Configure rich-based logging for the application."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )
    # Silence noisy loggers
    for logger_name in ["botocore", "aiobotocore", "urllib3"]:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


async def main_async(directory: Path, config: Config) -> None:
    """
    Asynchronously execute the upload pipeline.

    Args:
        directory (Path): The directory to upload.
        config (Config): The application configuration.
    """
    # Lazily import to keep CLI startup fast
    from s3_spa_upload.pipeline import S3SpaUploadPipeline

    async with GracefulShutdown() as shutdown_event:
        pipeline: S3SpaUploadPipeline = S3SpaUploadPipeline(
            directory, config, shutdown_event
        )
        await pipeline.run()


@click.command(context_settings=dict(help_option_names=["-h", "--help"]))
@click.argument(
    "directory",
    type=click.Path(exists=True, file_okay=False, dir_okay=True, path_type=Path),
)
@click.argument("bucket")
@click.option(
    "-d",
    "--delete",
    is_flag=True,
    default=False,
    help="Delete old files from the S3 bucket (limited to the prefix, if any).",
)
@click.option(
    "--cache-control-mapping",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to a JSON file that maps glob patterns to cache-control headers.",
)
@click.option(
    "-p",
    "--prefix",
    default="",
    help="Path prefix to prepend to every S3 object key of uploaded files.",
)
@click.option("--profile", default=None, help="AWS profile to use.")
@click.option("--region", default=None, help="AWS region of the bucket.")
@click.option(
    "--concurrency",
    type=click.IntRange(min=1),
    default=DEFAULT_CONCURRENCY,
    help="Maximum number of files to upload to S3 in parallel.",
    show_default=True,
)
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Set the logging level.",
    show_default=True,
)
def cli(**kwargs: Any) -> None:
    """
    Upload a dist/build directory containing a SPA (React, Angular, Vue, ...)
    to AWS S3.

    Every file below DIRECTORY is uploaded to BUCKET with a content-type
    and a cache-control header chosen from its file name. With --delete,
    objects under the prefix that are not part of the upload are removed
    afterwards.

    Credentials are resolved by botocore (environment, profile, instance
    role). Set S3_SPA_UPLOAD_ENDPOINT_URL to target an S3-compatible service.
    """
    load_dotenv()
    setup_logging(kwargs["log_level"])

    try:
        mapping: Optional[CacheControlMapping] = None
        if kwargs["cache_control_mapping"]:
            mapping = load_cache_control_mapping(kwargs["cache_control_mapping"])

        config: Config = Config(
            s3=S3Config(
                bucket=kwargs["bucket"],
                region=kwargs["region"],
                profile=kwargs["profile"],
            ),
            options=SyncOptions(
                delete=kwargs["delete"],
                cache_control_mapping=mapping,
                prefix=kwargs["prefix"],
                concurrency=kwargs["concurrency"],
            ),
        )

        asyncio.run(main_async(kwargs["directory"], config))
        logger.info("✅ Upload completed successfully.")
    except S3SpaUploadError as e:
        logger.critical(f"A critical application error occurred: {e}")
        sys.exit(1)
    except Exception:
        logger.critical(
            "An unexpected error caused the application to fail:", exc_info=True
        )
        sys.exit(1)


if __name__ == "__main__":
    cli()
