from datetime import datetime, timedelta

import pytest

from pdf_merger_backend.audit import AuditLogger, AuditStore
from pdf_merger_backend.errors import LoggingError
from pdf_merger_backend.models import AuditRecord, OperationKind


def make_record(**overrides):
    values = {
        "operation": OperationKind.MERGE,
        "files_count": 2,
        "original_size": 4096,
        "final_size": 3900,
        "user_ip": "192.168.101.7",
        "server_ip": "10.0.0.5",
        "branch": "003 Kalyanpur",
    }
    values.update(overrides)
    return AuditRecord(**values)


@pytest.fixture
def store(tmp_path):
    return AuditStore(tmp_path / "audit.db")


class FailingStore:
    def append(self, record):
        raise LoggingError("store unavailable")


class TestAuditStore:
    def test_append_and_read_back(self, store):
        record = make_record(operation=OperationKind.COMPRESS, files_count=1, compression_ratio=12.5)
        store.append(record)

        [stored] = store.recent()
        assert stored == record

    def test_recent_is_newest_first_and_limited(self, store):
        base = datetime(2024, 1, 1)
        for minutes in range(5):
            store.append(make_record(timestamp=base + timedelta(minutes=minutes), files_count=minutes + 2))

        records = store.recent(limit=3)
        assert [r.files_count for r in records] == [6, 5, 4]

    def test_ping(self, store):
        assert store.ping() is True

    def test_unwritable_store_raises_logging_error(self, store):
        store.db_path = store.db_path.parent / "missing" / "audit.db"
        with pytest.raises(LoggingError):
            store.append(make_record())


class TestUnavailableStore:
    @pytest.fixture
    def blocked_path(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("a regular file where the data directory should be")
        return blocker / "audit.db"

    def test_construction_does_not_raise(self, blocked_path, caplog):
        store = AuditStore(blocked_path)
        assert store.ping() is False
        assert "unavailable" in caplog.text

    def test_append_and_recent_raise_logging_error(self, blocked_path):
        store = AuditStore(blocked_path)
        with pytest.raises(LoggingError):
            store.append(make_record())
        with pytest.raises(LoggingError):
            store.recent()

    def test_schema_is_created_once_path_recovers(self, blocked_path):
        store = AuditStore(blocked_path)
        blocked_path.parent.unlink()

        store.append(make_record())
        assert store.ping() is True
        assert len(store.recent()) == 1


class TestAuditLogger:
    def test_record_is_written_in_background(self, store):
        logger = AuditLogger(store)
        future = logger.record(make_record())
        assert future.result(timeout=5) is True
        assert len(store.recent()) == 1
        logger.shutdown()

    def test_failures_are_swallowed_and_logged(self, caplog):
        logger = AuditLogger(FailingStore())
        future = logger.record(make_record())
        assert future.result(timeout=5) is False
        assert "Failed to log merge operation" in caplog.text
        logger.shutdown()

    def test_record_after_shutdown_does_not_raise(self, store):
        logger = AuditLogger(store)
        logger.shutdown()
        assert logger.record(make_record()) is None

    def test_flush_waits_for_queued_records(self, store):
        logger = AuditLogger(store)
        for _ in range(3):
            logger.record(make_record())
        logger.flush(timeout=5)
        assert len(store.recent()) == 3
        logger.shutdown()
