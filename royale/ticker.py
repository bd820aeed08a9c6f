"""Repeating callbacks driven by an APScheduler scheduler."""

from __future__ import annotations

from typing import Any, Callable, Optional

from apscheduler.job import Job
from apscheduler.schedulers.base import BaseScheduler

from utils.logging_config import get_logger

logger = get_logger("ticker")


class Ticker:
    """Runs ``callback`` every ``interval`` seconds until cancelled.

    The callback is registered as a coroutine job so that an
    ``AsyncIOScheduler`` executes it on the event loop itself, interleaved with
    message handling but never concurrently with it.
    """

    def __init__(
        self,
        scheduler: BaseScheduler,
        callback: Callable[[], Any],
        *,
        interval: float,
        name: str,
    ) -> None:
        self.scheduler = scheduler
        self.callback = callback
        self.interval = interval
        self.name = name
        self._job: Optional[Job] = None

    @property
    def running(self) -> bool:
        return self._job is not None

    async def _run(self) -> None:
        self.callback()

    def start(self) -> None:
        if self._job is not None:
            return
        self._job = self.scheduler.add_job(
            self._run,
            "interval",
            seconds=self.interval,
            id=self.name,
            name=self.name,
            replace_existing=True,
        )
        logger.debug("Started ticker %s every %.3fs", self.name, self.interval)

    def cancel(self) -> None:
        job, self._job = self._job, None
        if job is None:
            return
        job.remove()
        logger.debug("Cancelled ticker %s", self.name)


__all__ = ["Ticker"]
