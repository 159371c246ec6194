# 📄 File: recurring_billing/modules/subscriptions/domain/services/scheduler.py
# 🧭 Purpose (Layman Explanation):
# The alarm clock of the billing engine. It remembers when each subscription must be charged next,
# rings exactly once at that moment, and regularly double-checks that nobody was forgotten
# 🧪 Purpose (Technical Summary):
# Single-table asyncio scheduler: one loop task dispatching due entries, per-id dispatch
# serialization, a periodic safety sweep re-arming lost entries, and failure isolation per id
# 🔗 Dependencies:
# asyncio, structured logging, clock abstraction
# 🔄 Connected Modules / Calls From:
# engine.py (arm/disarm on lifecycle changes, start/shutdown), payment_processor.py (re-arm after attempts)

import asyncio
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from recurring_billing.shared.utils.helpers import Clock, ensure_utc, utc_now
from recurring_billing.shared.utils.logging import get_logger

logger = get_logger(__name__)

DispatchHandler = Callable[[str], Awaitable[Any]]
SweepSource = Callable[[], Iterable[Tuple[str, datetime]]]


class PaymentScheduler:
    """
    Schedules exactly one billing attempt per subscription at or after its due time.

    The table holds at most one entry per subscription id; arming again
    replaces the previous entry. An entry whose attempt is still running
    is kept in the table until that attempt finishes.
    """

    def __init__(
        self,
        handler: DispatchHandler,
        clock: Clock = utc_now,
        sweep_source: Optional[SweepSource] = None,
        sweep_interval: float = 60.0,
        max_idle: float = 300.0
    ):
        self._handler = handler
        self._clock = clock
        self._sweep_source = sweep_source
        self.sweep_interval = sweep_interval
        self.max_idle = max_idle

        self._entries: Dict[str, datetime] = {}
        self._in_flight: Dict[str, asyncio.Task] = {}
        self._wakeup = asyncio.Event()
        self._loop_task: Optional[asyncio.Task] = None
        self._sweep_task: Optional[asyncio.Task] = None
        self._running = False

        self.stats = {
            'dispatched': 0,
            'handler_errors': 0,
            'sweep_runs': 0,
            'sweep_rearmed': 0,
        }

    # =========================================================================
    # TABLE
    # =========================================================================

    def arm(self, subscription_id: str, due: datetime) -> None:
        """Schedule (or reschedule) the attempt for a subscription."""
        self._entries[subscription_id] = ensure_utc(due)
        self._wakeup.set()
        logger.debug(f"Armed {subscription_id} for {due.isoformat()}", subscription_id=subscription_id)

    def disarm(self, subscription_id: str) -> bool:
        """Remove the pending entry. Returns True if one existed."""
        removed = self._entries.pop(subscription_id, None) is not None
        if removed:
            self._wakeup.set()
            logger.debug(f"Disarmed {subscription_id}", subscription_id=subscription_id)
        return removed

    def has_entry(self, subscription_id: str) -> bool:
        return subscription_id in self._entries

    def due_time(self, subscription_id: str) -> Optional[datetime]:
        return self._entries.get(subscription_id)

    def is_in_flight(self, subscription_id: str) -> bool:
        return subscription_id in self._in_flight

    def pending(self) -> Dict[str, datetime]:
        return dict(self._entries)

    @property
    def is_running(self) -> bool:
        return self._running

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def _fire_due(self) -> List[asyncio.Task]:
        now = self._clock()
        due_ids = sorted(
            (due, subscription_id)
            for subscription_id, due in self._entries.items()
            if due <= now and subscription_id not in self._in_flight
        )

        tasks = []
        for _, subscription_id in due_ids:
            del self._entries[subscription_id]
            task = asyncio.create_task(
                self._dispatch(subscription_id), name=f"billing-{subscription_id}"
            )
            self._in_flight[subscription_id] = task
            tasks.append(task)

        self.stats['dispatched'] += len(tasks)
        return tasks

    async def _dispatch(self, subscription_id: str) -> None:
        try:
            await self._handler(subscription_id)
        except Exception as e:
            self.stats['handler_errors'] += 1
            logger.error(
                f"Billing attempt for {subscription_id} raised: {e}",
                exc_info=True,
                subscription_id=subscription_id
            )
        finally:
            self._in_flight.pop(subscription_id, None)
            self._wakeup.set()

    async def run_due(self) -> int:
        """
        Dispatch every entry due now and wait for those attempts to finish.

        Returns:
            Number of attempts dispatched
        """
        tasks = self._fire_due()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        return len(tasks)

    def sweep(self) -> int:
        """
        Arm every due subscription that has neither an entry nor an attempt in flight.

        Returns:
            Number of entries re-armed
        """
        if self._sweep_source is None:
            return 0

        now = self._clock()
        rearmed = 0
        for subscription_id, due in self._sweep_source():
            if due > now:
                continue
            if subscription_id in self._entries or subscription_id in self._in_flight:
                continue
            self.arm(subscription_id, due)
            rearmed += 1

        self.stats['sweep_runs'] += 1
        self.stats['sweep_rearmed'] += rearmed
        if rearmed:
            logger.warning(f"Sweep re-armed {rearmed} overdue subscription(s)", rearmed=rearmed)
        return rearmed

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def _next_delay(self) -> float:
        waiting = [due for sid, due in self._entries.items() if sid not in self._in_flight]
        if not waiting:
            return self.max_idle
        delay = (min(waiting) - self._clock()).total_seconds()
        return max(0.0, min(delay, self.max_idle))

    async def _run_loop(self) -> None:
        logger.info("Payment scheduler loop started")
        while self._running:
            self._wakeup.clear()
            self._fire_due()
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=self._next_delay())
            except asyncio.TimeoutError:
                pass

    async def _run_sweep(self) -> None:
        while self._running:
            await asyncio.sleep(self.sweep_interval)
            try:
                self.sweep()
            except Exception as e:
                logger.error(f"Scheduler sweep failed: {e}", exc_info=True)

    async def start(self) -> None:
        if self._running:
            return

        self._running = True
        self._wakeup.set()
        self._loop_task = asyncio.create_task(self._run_loop(), name="billing-scheduler")
        if self._sweep_source is not None:
            self._sweep_task = asyncio.create_task(self._run_sweep(), name="billing-sweep")

        logger.info(
            "Payment scheduler started",
            sweep_interval=self.sweep_interval,
            pending=len(self._entries)
        )

    async def shutdown(self) -> None:
        """Stop dispatching and wait for attempts already running."""
        self._running = False
        for task in (self._loop_task, self._sweep_task):
            if task is not None:
                task.cancel()
        await asyncio.gather(
            *(t for t in (self._loop_task, self._sweep_task) if t is not None),
            return_exceptions=True
        )
        self._loop_task = None
        self._sweep_task = None

        in_flight = list(self._in_flight.values())
        if in_flight:
            logger.info(f"Waiting for {len(in_flight)} billing attempt(s) to finish")
            await asyncio.gather(*in_flight, return_exceptions=True)

        logger.info("Payment scheduler stopped", pending=len(self._entries))
