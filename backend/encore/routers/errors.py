"""Translation of engine errors into HTTP responses."""

import asyncio
import logging
from typing import Awaitable, TypeVar

from fastapi import HTTPException

from encore.exceptions import EncoreError, NotFoundError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def run_engine_call(awaitable: Awaitable[T], seconds: float) -> T:
    """Await an engine operation under a timeout; map failures to HTTP errors."""
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError:
        logger.warning("Engine call timed out after %.1fs", seconds)
        raise HTTPException(status_code=504, detail="Request timed out")
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.message)
    except EncoreError as exc:
        raise HTTPException(status_code=500, detail=exc.message)
