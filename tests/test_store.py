import hashlib
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from conftest import make_schedule
from substitution_server.dto.models import Schoolday, UpdateStatus
from substitution_server.errors import ExtractionToolError, MalformedTable, PersistenceError
from substitution_server.store import SubstitutionStore, content_hash


class CountingBuild:
    def __init__(self, schedule=None, exc=None, delay=0.0):
        self.schedule = schedule or make_schedule(**{"7a": "Math cancelled"})
        self.exc = exc
        self.delay = delay
        self.calls = 0
        self._lock = threading.Lock()

    def __call__(self, pdf):
        with self._lock:
            self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        if self.exc is not None:
            raise self.exc
        return self.schedule


class TestTryUpdate:
    def test_replaced_then_unchanged(self):
        store = SubstitutionStore()
        build = CountingBuild()

        first = store.try_update(Schoolday.MONDAY, b"pdf-1", build)
        content = store.get_json(Schoolday.MONDAY)
        second = store.try_update(Schoolday.MONDAY, b"pdf-1", build)

        assert first.status is UpdateStatus.REPLACED
        assert second.status is UpdateStatus.UNCHANGED
        assert build.calls == 1
        assert store.get_json(Schoolday.MONDAY) == content == build.schedule.to_json()

    def test_stores_sha512_of_source(self):
        store = SubstitutionStore()
        store.try_update(Schoolday.MONDAY, b"pdf-1", CountingBuild())

        assert store.get_hash(Schoolday.MONDAY) == hashlib.sha512(b"pdf-1").hexdigest()
        assert content_hash(b"pdf-1") == store.get_hash(Schoolday.MONDAY)

    def test_changed_source_replaces(self):
        store = SubstitutionStore()
        store.try_update(Schoolday.MONDAY, b"pdf-1", CountingBuild())
        newer = make_schedule(**{"7a": "Room change"})

        outcome = store.try_update(Schoolday.MONDAY, b"pdf-2", CountingBuild(newer))

        assert outcome.status is UpdateStatus.REPLACED
        assert store.get_json(Schoolday.MONDAY) == newer.to_json()
        assert store.get_hash(Schoolday.MONDAY) == content_hash(b"pdf-2")

    def test_days_are_separate(self):
        store = SubstitutionStore()
        build = CountingBuild()
        store.try_update(Schoolday.MONDAY, b"pdf-1", build)

        outcome = store.try_update(Schoolday.TUESDAY, b"pdf-1", build)

        assert outcome.status is UpdateStatus.REPLACED
        assert build.calls == 2
        assert store.get_json(Schoolday.WEDNESDAY) is None

    def test_absent_day(self):
        store = SubstitutionStore()
        assert store.get_json(Schoolday.FRIDAY) is None
        assert store.get_hash(Schoolday.FRIDAY) is None


class TestFailedUpdates:
    def test_failure_keeps_previous_entry(self):
        store = SubstitutionStore()
        good = CountingBuild()
        store.try_update(Schoolday.MONDAY, b"pdf-1", good)

        outcome = store.try_update(
            Schoolday.MONDAY, b"pdf-2", CountingBuild(exc=ExtractionToolError("tabula exited with 1"))
        )

        assert outcome.status is UpdateStatus.FAILED
        assert "tabula" in outcome.reason
        assert store.get_json(Schoolday.MONDAY) == good.schedule.to_json()
        assert store.get_hash(Schoolday.MONDAY) == content_hash(b"pdf-1")

    def test_malformed_table_leaves_day_empty(self):
        store = SubstitutionStore()
        outcome = store.try_update(Schoolday.MONDAY, b"pdf-1", CountingBuild(exc=MalformedTable("short row")))

        assert outcome.status is UpdateStatus.FAILED
        assert store.get_json(Schoolday.MONDAY) is None
        assert store.get_hash(Schoolday.MONDAY) is None

    def test_failed_source_is_retried(self):
        store = SubstitutionStore()
        store.try_update(Schoolday.MONDAY, b"pdf-1", CountingBuild(exc=ExtractionToolError("boom")))
        build = CountingBuild()

        outcome = store.try_update(Schoolday.MONDAY, b"pdf-1", build)

        assert outcome.status is UpdateStatus.REPLACED
        assert build.calls == 1

    def test_unexpected_error_is_a_failure(self):
        store = SubstitutionStore()
        outcome = store.try_update(Schoolday.MONDAY, b"pdf-1", CountingBuild(exc=KeyError("x")))

        assert outcome.status is UpdateStatus.FAILED
        assert "KeyError" in outcome.reason


class TestConcurrency:
    def test_different_days_do_not_block_each_other(self):
        store = SubstitutionStore()
        build = CountingBuild(delay=0.4)
        outcomes = {}

        def update(day):
            outcomes[day] = store.try_update(day, b"pdf-1", build)

        threads = [threading.Thread(target=update, args=(day,)) for day in (Schoolday.MONDAY, Schoolday.TUESDAY)]
        start = time.monotonic()
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        elapsed = time.monotonic() - start

        assert elapsed < 0.75
        assert all(o.status is UpdateStatus.REPLACED for o in outcomes.values())

    def test_same_day_updates_are_serialized(self):
        store = SubstitutionStore()
        build = CountingBuild(delay=0.2)
        outcomes = []

        def update():
            outcomes.append(store.try_update(Schoolday.MONDAY, b"pdf-1", build))

        threads = [threading.Thread(target=update) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert build.calls == 1
        assert sorted(o.status.value for o in outcomes) == ["replaced", "unchanged", "unchanged", "unchanged"]

    def test_reader_sees_old_entry_during_update(self):
        store = SubstitutionStore()
        old = CountingBuild()
        store.try_update(Schoolday.MONDAY, b"pdf-1", old)

        started = threading.Event()
        release = threading.Event()
        newer = make_schedule(**{"7a": "Room change"})

        def slow_build(pdf):
            started.set()
            release.wait(5)
            return newer

        writer = threading.Thread(target=store.try_update, args=(Schoolday.MONDAY, b"pdf-2", slow_build))
        writer.start()
        assert started.wait(5)

        assert store.get_json(Schoolday.MONDAY) == old.schedule.to_json()

        release.set()
        writer.join()
        assert store.get_json(Schoolday.MONDAY) == newer.to_json()


class TestAudit:
    def test_accepted_schedule_is_audited(self):
        records = []
        executor = ThreadPoolExecutor(max_workers=1)
        store = SubstitutionStore(audit=records.append, executor=executor)
        build = CountingBuild()

        store.try_update(Schoolday.MONDAY, b"pdf-1", build)
        store.try_update(Schoolday.MONDAY, b"pdf-1", build)
        executor.shutdown(wait=True)

        assert len(records) == 1
        record = records[0]
        assert record.hash == content_hash(b"pdf-1")
        assert record.json == build.schedule.to_json_value()
        assert int(record.pdf_date.timestamp() * 1000) == build.schedule.pdf_issue_date

    def test_failed_update_is_not_audited(self):
        records = []
        executor = ThreadPoolExecutor(max_workers=1)
        store = SubstitutionStore(audit=records.append, executor=executor)

        store.try_update(Schoolday.MONDAY, b"pdf-1", CountingBuild(exc=MalformedTable("x")))
        executor.shutdown(wait=True)

        assert records == []

    def test_audit_failure_is_only_logged(self, caplog):
        def broken_audit(record):
            raise PersistenceError("database is down")

        executor = ThreadPoolExecutor(max_workers=1)
        store = SubstitutionStore(audit=broken_audit, executor=executor)

        with caplog.at_level(logging.ERROR, logger="substitution_server.store"):
            outcome = store.try_update(Schoolday.MONDAY, b"pdf-1", CountingBuild())
            executor.shutdown(wait=True)

        assert outcome.status is UpdateStatus.REPLACED
        assert store.get_json(Schoolday.MONDAY) is not None
        assert "database is down" in caplog.text

    def test_stopped_executor_does_not_break_update(self):
        executor = ThreadPoolExecutor(max_workers=1)
        executor.shutdown()
        store = SubstitutionStore(audit=lambda record: None, executor=executor)

        outcome = store.try_update(Schoolday.MONDAY, b"pdf-1", CountingBuild())

        assert outcome.status is UpdateStatus.REPLACED

    def test_audit_needs_executor(self):
        with pytest.raises(ValueError):
            SubstitutionStore(audit=lambda record: None)
