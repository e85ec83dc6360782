# backend/vidscribe/progress.py
"""
Per-subscriber progress channel.

A channel sends the job's snapshot right away, then again every
``interval`` seconds. Once it sees a terminal status it sends that snapshot,
waits ``linger`` seconds so a trailing poll still finds the job, removes the
job from the registry and stops. Cancelling the consumer, or a subscriber
that has gone away, stops the channel where it is without touching the
registry.
"""
import asyncio
import enum
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional

from .config import PROGRESS_INTERVAL, PROGRESS_LINGER
from .exceptions import NotFound
from .registry import JobRegistry

logger = logging.getLogger(__name__)


class ChannelState(str, enum.Enum):
    OPEN = "open"
    LINGERING = "lingering"
    CLOSED = "closed"


class ProgressChannel:
    def __init__(self, registry: JobRegistry, job_id: str,
                 interval: float = PROGRESS_INTERVAL, linger: float = PROGRESS_LINGER,
                 disconnected: Optional[Callable[[], Awaitable[bool]]] = None):
        self.registry = registry
        self.job_id = job_id
        self.interval = interval
        self.linger = linger
        self.state = ChannelState.OPEN
        self.disconnected = disconnected

    async def stream(self) -> AsyncIterator[Dict[str, Any]]:
        try:
            while True:
                if await self._gone():
                    return
                job = self.registry.get(self.job_id)
                if job is None:
                    logger.debug("Job %s gone, closing channel", self.job_id)
                    return
                if job.is_terminal:
                    self.state = ChannelState.LINGERING

                yield job.snapshot()

                if self.state is ChannelState.LINGERING:
                    await asyncio.sleep(self.linger)
                    if await self._gone():
                        return
                    self.registry.delete(self.job_id)
                    return

                await asyncio.sleep(self.interval)
        finally:
            self.state = ChannelState.CLOSED

    async def _gone(self) -> bool:
        if self.disconnected is None:
            return False
        if await self.disconnected():
            logger.debug("Subscriber for %s disconnected, closing channel", self.job_id)
            return True
        return False


def open_channel(registry: JobRegistry, job_id: str, **kwargs) -> ProgressChannel:
    """Start a channel for a known job; unknown or expired ids raise NotFound."""
    if registry.get(job_id) is None:
        raise NotFound(job_id)
    return ProgressChannel(registry, job_id, **kwargs)
