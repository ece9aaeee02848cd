"""Billing scheduler: periodic invoice generation, reminder and overdue sweeps."""

import asyncio
import logging
from datetime import date, datetime
from typing import Awaitable, Callable

from sqlalchemy.orm import Session, sessionmaker

from src.services.config import BillingConfig
from src.services.enforcement_service import EnforcementResult, EnforcementService
from src.services.invoice_generator import GenerationResult, InvoiceGenerator
from src.services.notification_service import NotificationService
from src.services.period_service import current_period
from src.services.reminder_service import ReminderResult, ReminderService

logger = logging.getLogger(__name__)


class BillingScheduler:
    """Owns the three billing timers.

    Manual triggers and timer ticks share the same run methods, and each job is
    serialized by its own lock so two sweeps of the same kind never overlap.
    Every run opens a fresh session. Generation is pure database work and runs on
    a worker thread; the sweeps interleave notifier awaits with short per-tenant
    transactions and stay on the event loop.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        notifier: NotificationService,
        config: BillingConfig,
    ):
        self.session_factory = session_factory
        self.notifier = notifier
        self.config = config
        self._tasks: list[asyncio.Task] = []
        self._generation_lock = asyncio.Lock()
        self._reminder_lock = asyncio.Lock()
        self._overdue_lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    async def run_invoice_generation(
        self, month: int | None = None, year: int | None = None
    ) -> GenerationResult:
        """Invoice every tenant for the given period (default: current period)."""
        if month is None or year is None:
            month, year = current_period(date.today())
        async with self._generation_lock:
            return await asyncio.to_thread(self._generate, month, year)

    def _generate(self, month: int, year: int) -> GenerationResult:
        db: Session = self.session_factory()
        try:
            return InvoiceGenerator(db).generate_for_period(month, year)
        finally:
            db.close()

    async def run_reminder_sweep(self, today: date | datetime | None = None) -> ReminderResult:
        """Run one reminder sweep."""
        async with self._reminder_lock:
            db: Session = self.session_factory()
            try:
                return await ReminderService(db, self.notifier).run_reminders(today)
            finally:
                db.close()

    async def run_overdue_sweep(self, today: date | datetime | None = None) -> EnforcementResult:
        """Run one overdue sweep."""
        async with self._overdue_lock:
            db: Session = self.session_factory()
            try:
                return await EnforcementService(db, self.notifier).run_enforcement(today)
            finally:
                db.close()

    async def _loop(
        self,
        name: str,
        job: Callable[[], Awaitable[object]],
        interval: float,
        run_first: bool,
    ) -> None:
        """Run job every interval seconds until cancelled."""
        if not run_first:
            await asyncio.sleep(interval)
        while True:
            try:
                result = await job()
                logger.debug("scheduler.tick: job=%s result=%s", name, result)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("scheduler.job_failed: job=%s", name)
            await asyncio.sleep(interval)

    def start(self) -> None:
        """Start the timers. Calling start twice is a no-op."""
        if self.running:
            logger.warning("scheduler.already_running")
            return

        run_on_start = self.config.scheduler_run_on_start
        self._tasks = [
            asyncio.create_task(
                self._loop(
                    "invoice_generation",
                    self.run_invoice_generation,
                    self.config.generation_interval_seconds,
                    run_first=True,
                ),
                name="billing-invoice-generation",
            ),
            asyncio.create_task(
                self._loop(
                    "reminder_sweep",
                    self.run_reminder_sweep,
                    self.config.reminder_interval_seconds,
                    run_first=run_on_start,
                ),
                name="billing-reminder-sweep",
            ),
            asyncio.create_task(
                self._loop(
                    "overdue_sweep",
                    self.run_overdue_sweep,
                    self.config.overdue_interval_seconds,
                    run_first=False,
                ),
                name="billing-overdue-sweep",
            ),
        ]
        logger.info(
            "scheduler.started: generation=%ss reminders=%ss overdue=%ss run_on_start=%s",
            self.config.generation_interval_seconds,
            self.config.reminder_interval_seconds,
            self.config.overdue_interval_seconds,
            run_on_start,
        )

    async def stop(self) -> None:
        """Cancel the timers and wait for them to finish."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if tasks:
            logger.info("scheduler.stopped")


__all__ = ["BillingScheduler"]
