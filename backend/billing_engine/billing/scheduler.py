"""Background task that runs the billing cycle on a fixed interval.

Runs are bounded by ``billing_run_timeout_seconds`` and can be aborted. An
abort first asks the run to stop between subscriptions; a run that does not
stop (e.g. blocked on the database) is cancelled outright.
"""

import asyncio
import logging
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from billing_engine.billing.cycle import BillingRunResult, run_billing_cycle
from billing_engine.config import settings
from billing_engine.database import async_session_factory

logger = logging.getLogger(__name__)


class BillingScheduler:
    """Owns at most one billing run at a time."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        interval_seconds: float,
        timeout_seconds: float,
    ) -> None:
        self._session_factory = session_factory
        self.interval_seconds = interval_seconds
        self.timeout_seconds = timeout_seconds
        self._loop_task: asyncio.Task | None = None
        self._current_run: asyncio.Task | None = None
        self._stop_requested = False
        self._lock = asyncio.Lock()
        self.last_result: BillingRunResult | None = None

    @property
    def is_running(self) -> bool:
        return self._current_run is not None and not self._current_run.done()

    def start(self) -> None:
        if self._loop_task is not None and not self._loop_task.done():
            return
        self._loop_task = asyncio.create_task(self._loop(), name="billing-scheduler")
        logger.info("Billing scheduler started (every %ss)", self.interval_seconds)

    async def stop(self) -> None:
        self.abort()
        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None
        logger.info("Billing scheduler stopped")

    async def _loop(self) -> None:
        while True:
            try:
                await self.run_once()
            except Exception:
                logger.exception("Scheduled billing run crashed")
            await asyncio.sleep(self.interval_seconds)

    async def run_once(self, as_of: date | None = None, db: AsyncSession | None = None) -> BillingRunResult:
        """Run one billing cycle, bounded by the configured timeout.

        With ``db`` the run uses the caller's session (manual runs from the
        API); otherwise it opens its own. The returned result reflects
        whatever was committed before a timeout or abort.
        """
        as_of = as_of or date.today()
        async with self._lock:
            self._stop_requested = False
            result = BillingRunResult(as_of=as_of)
            if db is not None:
                await self._run_bounded(db, result)
            else:
                async with self._session_factory() as session:
                    await self._run_bounded(session, result)
            self.last_result = result
            return result

    async def _run_bounded(self, db: AsyncSession, result: BillingRunResult) -> None:
        run = asyncio.ensure_future(
            run_billing_cycle(db, result.as_of, should_stop=lambda: self._stop_requested, result=result)
        )
        self._current_run = run
        try:
            await asyncio.wait_for(run, timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            result.aborted = True
            logger.error(
                "Billing run for %s timed out after %ss (%d units processed)",
                result.as_of.isoformat(),
                self.timeout_seconds,
                result.processed,
            )
        except asyncio.CancelledError:
            # Cancelled by abort(); anything else cancelling us propagates
            if not self._stop_requested:
                raise
            result.aborted = True
            logger.warning("Billing run for %s cancelled by abort", result.as_of.isoformat())
        finally:
            self._current_run = None

    def abort(self) -> bool:
        """Stop the current run. Returns ``False`` when nothing was running."""
        if not self.is_running:
            return False
        self._stop_requested = True
        # Let the run finish the unit in progress, then cancel if it lingers
        loop = asyncio.get_running_loop()
        run = self._current_run
        loop.call_later(min(5.0, self.timeout_seconds), lambda: run.cancel() if not run.done() else None)
        logger.warning("Billing run abort requested")
        return True


billing_scheduler = BillingScheduler(
    async_session_factory,
    interval_seconds=settings.billing_interval_seconds,
    timeout_seconds=settings.billing_run_timeout_seconds,
)
