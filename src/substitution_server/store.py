import hashlib
import logging
import threading
from concurrent.futures import Executor, Future
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from substitution_server.dto.models import (
    AuditRecord,
    Schoolday,
    SubstitutionSchedule,
    UpdateOutcome,
)
from substitution_server.errors import SubstitutionError
from substitution_server.parser import schedule_from_pdf

logger = logging.getLogger(__name__)

BuildFn = Callable[[bytes], SubstitutionSchedule]
AuditFn = Callable[[AuditRecord], None]


@dataclass(frozen=True)
class _Entry:
    json: str
    hash: str


def content_hash(pdf: bytes) -> str:
    return hashlib.sha512(pdf).hexdigest()


class SubstitutionStore:
    """
    Latest extracted schedule per school day, as JSON, plus the hash of the
    PDF it was built from.

    Writers of one day are serialized by that day's lock, which is held over
    the whole hash check, extraction and swap. Readers only take the short
    entries lock, so they see the old or the new entry, never a partial one.
    """

    def __init__(self, audit: Optional[AuditFn] = None, executor: Optional[Executor] = None):
        if audit is not None and executor is None:
            raise ValueError("an audit hook needs an executor to run on")
        self._entries: Dict[Schoolday, _Entry] = {}
        self._entries_lock = threading.Lock()
        self._day_locks: Dict[Schoolday, threading.Lock] = {day: threading.Lock() for day in Schoolday}
        self._audit = audit
        self._executor = executor

    def get_json(self, day: Schoolday) -> Optional[str]:
        with self._entries_lock:
            entry = self._entries.get(day)
        return entry.json if entry else None

    def get_hash(self, day: Schoolday) -> Optional[str]:
        with self._entries_lock:
            entry = self._entries.get(day)
        return entry.hash if entry else None

    def try_update(self, day: Schoolday, pdf: bytes, build: BuildFn = schedule_from_pdf) -> UpdateOutcome:
        """
        Replaces the entry of `day` with the schedule built from `pdf`, unless
        the PDF is byte-identical to the one already accepted. A failed build
        leaves the entry as it was.
        """
        new_hash = content_hash(pdf)

        with self._day_locks[day]:
            if self.get_hash(day) == new_hash:
                logger.debug(f"{day}: New hash matched old hash")
                return UpdateOutcome.unchanged()

            try:
                schedule = build(pdf)
                schedule_json = schedule.to_json()
            except SubstitutionError as exc:
                logger.error(f"{day}: extraction failed: {exc}")
                return UpdateOutcome.failed(str(exc))
            except Exception as exc:
                logger.exception(f"{day}: unexpected error during extraction")
                return UpdateOutcome.failed(f"{type(exc).__name__}: {exc}")

            with self._entries_lock:
                old = self._entries.get(day)
                self._entries[day] = _Entry(json=schedule_json, hash=new_hash)

        logger.info(f"Added new json for {day} to the json map.")
        if old is not None:
            logger.debug(f"{day}: an old json was replaced")

        self._submit_audit(new_hash, schedule)
        return UpdateOutcome.replaced()

    def _submit_audit(self, pdf_hash: str, schedule: SubstitutionSchedule) -> None:
        if self._audit is None:
            return

        record = AuditRecord(
            hash=pdf_hash,
            pdf_date=datetime.fromtimestamp(schedule.pdf_issue_date / 1000, tz=timezone.utc),
            insertion_time=datetime.now(timezone.utc),
            json=schedule.to_json_value(),
        )
        logger.debug("Spawning audit task.")
        try:
            future = self._executor.submit(self._audit, record)
        except RuntimeError as exc:
            logger.error(f"Audit task could not be scheduled: {exc}")
            return
        future.add_done_callback(_log_audit_failure)


def _log_audit_failure(future: Future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.error(f"Audit record could not be saved: {exc}")
