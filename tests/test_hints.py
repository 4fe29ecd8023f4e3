import asyncio
import os

import pytest

from chatbridge.detection import FileChangeHintSource


@pytest.fixture
def db_file(tmp_path):
    path = tmp_path / "chat.db"
    path.write_bytes(b"initial")
    return path


@pytest.mark.unit
def test_watches_database_and_wal(db_file):
    source = FileChangeHintSource(db_file)

    assert [p.name for p in source.watched_paths] == ["chat.db", "chat.db-wal"]


@pytest.mark.unit
def test_missing_wal_is_tolerated(db_file):
    source = FileChangeHintSource(db_file)

    fingerprint = source.fingerprint()

    assert fingerprint[0] is not None
    assert fingerprint[1] is None


@pytest.mark.unit
def test_check_fires_callback_once_per_change(db_file):
    calls = []
    source = FileChangeHintSource(db_file, callback=lambda: calls.append(1))
    source.check()
    calls.clear()

    wal = db_file.with_name("chat.db-wal")
    wal.write_bytes(b"frame")

    assert source.check() is True
    assert source.check() is False
    assert calls == [1]


@pytest.mark.unit
def test_mtime_change_alone_is_a_hint(db_file):
    source = FileChangeHintSource(db_file)
    source.check()
    stat = db_file.stat()

    os.utime(db_file, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000))

    assert source.check() is True


@pytest.mark.unit
@pytest.mark.asyncio
async def test_loop_reports_writes(db_file):
    hinted = asyncio.Event()
    source = FileChangeHintSource(
        db_file, check_interval_seconds=0.01, callback=hinted.set
    )
    await source.start()
    try:
        db_file.write_bytes(b"initial plus a new row")
        await asyncio.wait_for(hinted.wait(), timeout=2)
    finally:
        await source.stop()

    assert source.is_running is False
