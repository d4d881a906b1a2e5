"""Async deadline helper shared by remote calls and tunnel setup."""

import asyncio
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from .exceptions import OperationTimeoutError
from .logging import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def deadline(timeout: float | None, operation: str) -> AsyncIterator[None]:
    """Bound the enclosed block by ``timeout`` seconds.

    Raises OperationTimeoutError naming ``operation`` when the deadline passes.
    ``None`` disables the bound.
    """
    start = time.monotonic()
    try:
        async with asyncio.timeout(timeout):
            yield
    except TimeoutError as e:
        elapsed = time.monotonic() - start
        logger.warning("Deadline exceeded", operation=operation, elapsed=round(elapsed, 2))
        raise OperationTimeoutError(operation, timeout or elapsed) from e
