import logging
import threading
from datetime import datetime, timezone
from typing import Optional, Set

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler
from dateutil import tz

from substitution_server.config import get_settings
from substitution_server.dto.models import Schoolday, UpdateOutcome
from substitution_server.errors import TransportError
from substitution_server.fetcher import SubstitutionPDFGetter
from substitution_server.parser import schedule_from_pdf
from substitution_server.store import BuildFn, SubstitutionStore

logger = logging.getLogger(__name__)

TICK_JOB_ID = "refresh_tick"
TICK_EXECUTOR = "tick"


def current_schoolday(now: datetime) -> Schoolday:
    return Schoolday.from_weekday(now.weekday())


class SubstitutionRefresher:
    """
    Every REFRESH_INTERVAL seconds fetches the PDFs of the current school day
    and the one after it and hands them to the store. Both days are checked
    as separate jobs on the scheduler's worker pool. The tick itself runs on
    its own single-thread executor, so a hanging download or extraction never
    holds up the next tick. A day whose check is still queued or running is
    skipped until that check finishes.
    """

    def __init__(
            self,
            store: SubstitutionStore,
            getter: SubstitutionPDFGetter,
            scheduler: Optional[BackgroundScheduler] = None,
            build: BuildFn = schedule_from_pdf,
    ):
        settings = get_settings()
        self._store = store
        self._getter = getter
        self._build = build
        self._interval = settings.REFRESH_INTERVAL
        self._zone = tz.gettz(settings.TIMEZONE)
        self._scheduler = scheduler or BackgroundScheduler(
            executors={
                "default": ThreadPoolExecutor(settings.REFRESH_WORKERS),
                TICK_EXECUTOR: ThreadPoolExecutor(1),
            },
            timezone=timezone.utc,
        )
        self._ticks = 0
        self._in_flight: Set[Schoolday] = set()
        self._in_flight_lock = threading.Lock()

    @property
    def ticks(self) -> int:
        return self._ticks

    def start(self) -> None:
        self._scheduler.add_job(
            self.tick,
            trigger="interval",
            seconds=self._interval,
            id=TICK_JOB_ID,
            executor=TICK_EXECUTOR,
            next_run_time=datetime.now(timezone.utc),
            max_instances=1,
            coalesce=True,
            misfire_grace_time=None,
        )
        self._scheduler.start()
        logger.info(f"Starting loop, checking every {self._interval}s")

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Refresh loop stopped.")

    def tick(self, now: Optional[datetime] = None) -> None:
        now = now or datetime.now(self._zone)
        today = current_schoolday(now)
        day_after = today.next_day()

        logger.debug(f"Local day: {now:%A}; next valid school day: {today}; day after that: {day_after}")

        for day in (today, day_after):
            if not self._claim(day):
                logger.debug(f"{day}: previous check still in flight, skipping")
                continue
            try:
                self._scheduler.add_job(
                    self.check_weekday_pdf,
                    args=[day],
                    name=f"check_{day}",
                    misfire_grace_time=None,
                )
            except Exception:
                self._release(day)
                raise

        self._ticks += 1
        logger.debug(f"Loop ran {self._ticks} times")

    def _claim(self, day: Schoolday) -> bool:
        with self._in_flight_lock:
            if day in self._in_flight:
                return False
            self._in_flight.add(day)
            return True

    def _release(self, day: Schoolday) -> None:
        with self._in_flight_lock:
            self._in_flight.discard(day)

    def check_weekday_pdf(self, day: Schoolday) -> UpdateOutcome:
        """Downloads the PDF of `day` and offers it to the store. Never raises."""
        try:
            return self._check(day)
        finally:
            self._release(day)

    def _check(self, day: Schoolday) -> UpdateOutcome:
        logger.info(f"Checking PDF for {day}")
        try:
            pdf = self._getter.get_weekday_pdf(day)
        except TransportError as exc:
            logger.error(str(exc))
            return UpdateOutcome.failed(str(exc))
        except Exception as exc:
            logger.exception(f"{day}: unexpected error while fetching")
            return UpdateOutcome.failed(f"{type(exc).__name__}: {exc}")

        outcome = self._store.try_update(day, pdf, self._build)
        logger.debug(f"{day}: {outcome.status.value}")
        return outcome
