"""Deadline and error translation for every call to the remote backend."""

import asyncio
import logging
from typing import Any, Awaitable, Optional

from ordertrack.config import settings
from ordertrack.core.errors import translate_error

logger = logging.getLogger(__name__)


async def remote_call(awaitable: Awaitable[Any], timeout: Optional[float] = None) -> Any:
    """Await a backend call under a deadline; failures come out as OrderTrackError."""
    deadline = timeout if timeout is not None else settings.request_timeout_seconds
    try:
        return await asyncio.wait_for(awaitable, timeout=deadline)
    except asyncio.CancelledError:
        raise
    except Exception as e:
        error = translate_error(e)
        logger.warning(f"Remote call failed: {type(e).__name__}: {e}")
        raise error from e


async def execute(query: Any, timeout: Optional[float] = None) -> list:
    """Run a postgrest builder and return its rows (never None)."""
    response = await remote_call(query.execute(), timeout=timeout)
    return response.data or []
