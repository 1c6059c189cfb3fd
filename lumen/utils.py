from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Set, TypeVar

from lumen.llm.errors import OperationTimeout

T = TypeVar("T")

logger = logging.getLogger(__name__)

# Calls abandoned by with_timeout; held so they are not garbage collected mid-flight.
_abandoned: Set["asyncio.Future"] = set()


def _settle_abandoned(task: "asyncio.Future") -> None:
    _abandoned.discard(task)
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.debug("Abandoned call failed after its deadline: %s", error)


async def with_timeout(awaitable: Awaitable[T], seconds: float, label: str = "op") -> T:
    """
    Race an external call against a deadline.

    On expiry OperationTimeout is raised immediately. The call itself is not
    cancelled: it keeps running in the background and its outcome is discarded.
    """
    task = asyncio.ensure_future(awaitable)
    try:
        done, _ = await asyncio.wait({task}, timeout=seconds)
    except asyncio.CancelledError:
        task.cancel()
        raise

    if task in done:
        return task.result()

    _abandoned.add(task)
    task.add_done_callback(_settle_abandoned)
    raise OperationTimeout(label, seconds)


def utc_day_key(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).strftime("%Y-%m-%d")


def truncate(text: str, limit: int, suffix: str = "") -> str:
    if len(text) <= limit:
        return text
    return text[: max(0, limit - len(suffix))] + suffix
