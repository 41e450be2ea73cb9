import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from typing import Callable, List, Optional, Tuple

from .notifications import NotificationDispatcher
from .reminders import PRE_REMINDER_MINUTES, Reminder, ReminderStore, utcnow

log = logging.getLogger(__name__)

CHECK_INTERVAL_SECONDS = 30.0
DISPATCH_TIMEOUT_SECONDS = 20.0


def format_time(value: datetime, tz: tzinfo = timezone.utc) -> str:
    """Render ``2:30 PM`` style clock time in ``tz``."""
    return value.astimezone(tz).strftime("%I:%M %p").lstrip("0")


def pre_reminder_text(reminder: Reminder, tz: tzinfo = timezone.utc) -> str:
    return (
        "⏰ Reminder Alert!\n\n"
        f"Hey @{reminder.user_name}! Just a heads up, your reminder is coming up "
        f"in {PRE_REMINDER_MINUTES} minutes!\n\n"
        f"📝 Reminder: {reminder.message}\n"
        f"🕐 Time: {format_time(reminder.reminder_time, tz)}\n\n"
        "Get ready! I'll remind you again when it's time. 💪"
    )


def final_reminder_text(reminder: Reminder, now: datetime, tz: tzinfo = timezone.utc) -> str:
    return (
        "🔔 TIME'S UP!\n\n"
        f"@{reminder.user_name}, this is your reminder!\n\n"
        f"📝 {reminder.message}\n\n"
        f"⏰ It's now {format_time(now, tz)}. Time to get moving! 🚀"
    )


@dataclass
class TickReport:
    pre_sent: List[str] = field(default_factory=list)
    fired: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


class ReminderScheduler:
    """Periodic task that sends heads-up and final reminder notifications.

    Ticks never overlap: the loop awaits each tick before sleeping, and
    ``tick`` itself holds a lock for callers that drive it directly. Within a
    tick every due dispatch runs concurrently under its own timeout. A failed
    dispatch leaves the reminder's flags untouched, so the next tick retries.
    ``stop`` lets an in-flight tick finish and prevents any further tick.
    """

    def __init__(
        self,
        store: ReminderStore,
        *,
        interval: float = CHECK_INTERVAL_SECONDS,
        dispatch_timeout: Optional[float] = DISPATCH_TIMEOUT_SECONDS,
        tz: tzinfo = timezone.utc,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.store = store
        self.interval = interval
        self.dispatch_timeout = dispatch_timeout
        self.tz = tz
        self._clock = clock
        self.dispatcher: Optional[NotificationDispatcher] = None
        self._tick_lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, dispatcher: NotificationDispatcher) -> None:
        self.dispatcher = dispatcher
        if self.running:
            log.info("reminder scheduler already running; dispatcher replaced")
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run())
        log.info("reminder scheduler started (interval: %ss)", self.interval)

    async def stop(self) -> None:
        self._stop_event.set()
        task, self._task = self._task, None
        if task is not None:
            await task
        log.info("reminder scheduler stopped")

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.tick()
            except Exception as exc:
                log.exception("reminder tick failed: %s", exc)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                continue

    async def tick(self, now: Optional[datetime] = None) -> TickReport:
        report = TickReport()
        async with self._tick_lock:
            now = now or self._clock()
            due: List[Tuple[Reminder, bool, str]] = []
            for reminder in self.store.list_all():
                if now >= reminder.reminder_time:
                    due.append((reminder, True, final_reminder_text(reminder, now, self.tz)))
                elif (
                    not reminder.pre_notified
                    and reminder.has_lead_window
                    and reminder.pre_reminder_time <= now
                ):
                    due.append((reminder, False, pre_reminder_text(reminder, self.tz)))

            results = await asyncio.gather(
                *(self._dispatch(reminder, text) for reminder, _, text in due)
            )
            for (reminder, final, _), ok in zip(due, results):
                if not ok:
                    report.failed.append(reminder.id)
                elif final:
                    self.store.mark_notified_and_remove(reminder.id)
                    report.fired.append(reminder.id)
                else:
                    self.store.mark_pre_notified(reminder.id)
                    report.pre_sent.append(reminder.id)
                    log.info("pre-reminder sent for %s", reminder.id)
        return report

    async def _dispatch(self, reminder: Reminder, text: str) -> bool:
        if self.dispatcher is None:
            log.warning("no dispatcher configured; reminder %s left pending", reminder.id)
            return False
        try:
            delivery = self.dispatcher.deliver(
                reminder.conversation_id, reminder.user_name, reminder.user_id, text
            )
            if self.dispatch_timeout:
                ok = await asyncio.wait_for(delivery, timeout=self.dispatch_timeout)
            else:
                ok = await delivery
        except asyncio.TimeoutError:
            log.warning("delivery of reminder %s timed out", reminder.id)
            return False
        except Exception as exc:
            log.warning("failed to deliver reminder %s: %s", reminder.id, exc)
            return False
        if not ok:
            log.warning("delivery of reminder %s was rejected", reminder.id)
        return bool(ok)
