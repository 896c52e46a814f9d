# src/s3_spa_upload/signals.py
"""
Graceful shutdown for the upload run.

SIGINT and SIGTERM are translated into an `asyncio.Event`. The pipeline
checks it between uploads: no new uploads are started once it is set, and
old files are never deleted after an interrupted upload.
"""

import asyncio
import logging
import os
import signal
from types import FrameType
from typing import Any, Callable, Dict, Optional, Tuple, Union

logger: logging.Logger = logging.getLogger(__name__)

_SignalHandler = Union[Callable[[int, Optional[FrameType]], Any], int, None]

HANDLED_SIGNALS: Tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM)


class GracefulShutdown:
    """
    An async context manager that turns shutdown signals into an event.

    The first signal sets the event. A second one exits the process at once.
    Previous handlers are restored on exit.
    """

    def __init__(self) -> None:
        self._event: asyncio.Event = asyncio.Event()
        self._previous: Dict[signal.Signals, _SignalHandler] = {}

    async def __aenter__(self) -> asyncio.Event:
        """
        Installs the signal handlers.

        Returns:
            asyncio.Event: Set when the first shutdown signal arrives.
        """
        loop: asyncio.AbstractEventLoop = asyncio.get_running_loop()

        def _on_signal(signum: int, _: Optional[FrameType]) -> None:
            if self._event.is_set():
                logger.critical("Received second shutdown signal. Exiting now.")
                os._exit(1)
            logger.warning(
                f"Received {signal.strsignal(signum)}. Finishing running uploads; "
                "press Ctrl+C again to exit immediately."
            )
            loop.call_soon_threadsafe(self._event.set)

        for sig in HANDLED_SIGNALS:
            try:
                self._previous[sig] = signal.signal(sig, _on_signal)
            except (ValueError, OSError) as e:
                # Only the main thread may install handlers.
                logger.debug(f"Could not set handler for {sig.name}: {e}")

        return self._event

    async def __aexit__(self, *args: Any) -> None:
        """Restores the previous signal handlers."""
        while self._previous:
            sig, handler = self._previous.popitem()
            try:
                signal.signal(sig, handler)
            except (ValueError, OSError) as e:
                logger.warning(f"Could not restore handler for {sig.name}: {e}")
