"""Wall-clock trigger loop for the dispatcher."""

import threading
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional

import pytz
from loguru import logger

from ..config import ScheduleConfig, SessionConfig
from .dispatcher import CycleResult, StrategyDispatcher


class SessionScheduler:
    """Drives a dispatcher through each trading day.

    Starts every symbol once per day at ``schedule.start_time``, advances them
    every ``tick_interval_seconds`` while the session is open and closes the
    session at market close.
    """

    def __init__(
        self,
        dispatcher: StrategyDispatcher,
        schedule: ScheduleConfig,
        session: SessionConfig,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.dispatcher = dispatcher
        self.schedule = schedule
        self.session = session
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._tz = pytz.timezone(session.timezone)

        self.started_for: Optional[date] = None
        self.closed_for: Optional[date] = None
        self.last_tick: Optional[datetime] = None

    def run_pending(self) -> Optional[CycleResult]:
        """Fire whichever trigger is due now, if any."""
        now = self._clock()
        local = now.astimezone(self._tz)
        today = local.date()

        if self.schedule.weekdays_only and today.weekday() >= 5:
            return None

        if self.started_for != today:
            if self.schedule.start_time <= local.time() < self.session.market_close:
                self.started_for = today
                self.last_tick = now
                return self.dispatcher.start_all(today)
            return None

        if self.closed_for == today:
            return None

        if local.time() >= self.session.market_close:
            self.closed_for = today
            return self.dispatcher.close_session("market close")

        interval = timedelta(seconds=self.schedule.tick_interval_seconds)
        if self.last_tick is None or now - self.last_tick >= interval:
            self.last_tick = now
            return self.dispatcher.advance_all()

        return None

    def run(self, stop_event: threading.Event, poll_seconds: float = 1.0) -> None:
        """Loop until ``stop_event`` is set."""
        logger.info(
            f"Scheduler running: start {self.schedule.start_time}, "
            f"tick every {self.schedule.tick_interval_seconds}s, close {self.session.market_close}"
        )

        while not stop_event.is_set():
            try:
                result = self.run_pending()
            except Exception as e:
                logger.opt(exception=e).error(f"Scheduler trigger failed: {e}")
                result = None

            if result is not None and result.failed:
                logger.warning(
                    f"{result.action}: failed symbols {[o.symbol for o in result.failed]}"
                )
            stop_event.wait(poll_seconds)

        logger.info("Scheduler stopped")
