"""
QuickBooks Token Refresh Scheduler - Background Scheduler Service

Main entry point for the refresher process.
Runs one refresh tick immediately at startup, then one every
REFRESH_INTERVAL_MINUTES, until SIGINT/SIGTERM.

IMPORTANT: This process MUST run as a single instance (replicas: 1)
because ticks are not coordinated across processes.
"""

import asyncio
import logging
import signal
import sys
from datetime import datetime, timezone
from typing import Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from qbo_bridge.config import get_settings
from qbo_bridge.core.database import close_db, init_db
from qbo_bridge.jobs.schedulers.token_refresh import TickSummary, run_refresh_tick

logger = logging.getLogger(__name__)

JOB_ID = "qbo_token_refresh"

TickFunction = Callable[[], Awaitable[TickSummary]]


class TokenRefreshScheduler:
    """
    Owns the refresher's interval timer.

    States:
    - Idle: waiting for the next interval
    - Ticking: one batch in progress

    A firing that arrives while a tick is still running is skipped.
    Stopping prevents new ticks and waits for the in-flight tick to finish.
    """

    def __init__(
        self,
        tick: TickFunction | None = None,
        interval_minutes: int | None = None,
        manage_db: bool = True,
    ):
        self.settings = get_settings()
        self.interval_minutes = interval_minutes or self.settings.refresh_interval_minutes
        self.running = False
        self.last_summary: TickSummary | None = None
        self.skipped_ticks = 0
        self._tick_fn = tick or run_refresh_tick
        self._manage_db = manage_db
        self._scheduler: AsyncIOScheduler | None = None
        self._current_tick: asyncio.Task | None = None
        self._stopping: asyncio.Task | None = None
        self._shutdown_event = asyncio.Event()

    @property
    def is_ticking(self) -> bool:
        return self._current_tick is not None and not self._current_tick.done()

    async def run(self) -> None:
        """Start the scheduler and block until stop() completes."""
        logger.info("Starting QuickBooks token refresh scheduler...")
        logger.info(f"QuickBooks environment: {self.settings.qbo_env}")

        if self._manage_db:
            logger.info("Initializing database connection...")
            await init_db()
            logger.info("Database connection established")

        await self.start()
        logger.info("Running... (Ctrl+C to stop)")

        await self._shutdown_event.wait()

    async def start(self) -> None:
        """Schedule the refresh job; the first tick fires immediately."""
        scheduler = AsyncIOScheduler(timezone=timezone.utc)

        scheduler.add_job(
            self._on_interval,
            IntervalTrigger(minutes=self.interval_minutes, timezone=timezone.utc),
            id=JOB_ID,
            name="Refresh expiring QuickBooks tokens",
            next_run_time=datetime.now(timezone.utc),
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )

        scheduler.start()
        self._scheduler = scheduler
        self.running = True
        logger.info(f"Token refresh scheduled every {self.interval_minutes}m")

    async def stop(self) -> None:
        """
        Stop scheduling new ticks, drain the in-flight tick, release resources.

        Repeated calls (e.g. a second signal) wait for the same shutdown.
        """
        if self._stopping is None:
            self._stopping = asyncio.ensure_future(self._shutdown())
        await asyncio.shield(self._stopping)

    async def _shutdown(self) -> None:
        if not self.running:
            self._shutdown_event.set()
            return

        logger.info("Stopping QuickBooks token refresh scheduler...")
        self.running = False

        if self._scheduler:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("APScheduler stopped")

        if self.is_ticking:
            logger.info("Waiting for in-flight refresh tick to finish...")
            await self._current_tick

        if self._manage_db:
            await close_db()
            logger.info("Database connections closed")

        self._shutdown_event.set()
        logger.info("QuickBooks token refresh scheduler stopped")

    async def _on_interval(self) -> None:
        if not self.running:
            return
        if self.is_ticking:
            self.skipped_ticks += 1
            logger.warning("Previous token refresh tick still running, skipping this interval")
            return

        # Shielded so that shutting down APScheduler does not cancel a running tick
        self._current_tick = asyncio.ensure_future(self._run_tick())
        await asyncio.shield(self._current_tick)

    async def _run_tick(self) -> None:
        try:
            self.last_summary = await self._tick_fn()
        except Exception as e:
            logger.error(f"Token refresh tick failed: {e}", exc_info=True)

    def handle_signal(self, signum: int, frame) -> None:
        """Handle shutdown signals."""
        logger.info(f"Received signal {signum}, initiating shutdown...")
        asyncio.create_task(self.stop())


async def main() -> None:
    """Main entry point."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    # Suppress noisy third-party loggers
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    try:
        scheduler = TokenRefreshScheduler()
    except Exception as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    def make_handler(s: signal.Signals) -> None:
        scheduler.handle_signal(int(s), None)

    loop = asyncio.get_running_loop()
    loop.add_signal_handler(signal.SIGINT, make_handler, signal.SIGINT)
    loop.add_signal_handler(signal.SIGTERM, make_handler, signal.SIGTERM)

    try:
        await scheduler.run()
    except Exception as e:
        logger.error(f"Scheduler error: {e}", exc_info=True)
        sys.exit(1)


def run() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
