"""Tests for deduplicated, timestamped configuration backups."""

import os
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from pbx_reconcile.backup.store import BackupStore
from pbx_reconcile.errors import NotFoundError


class FakeClock:
    """Clock advanced manually by tests."""

    def __init__(self, start=datetime(2026, 3, 1, 12, 0, 0)):
        self.now = start

    def __call__(self):
        return self.now

    def tick(self, seconds=1):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(tmp_path, clock):
    return BackupStore(backup_dir=tmp_path / "backups", clock=clock)


@pytest.fixture
def conf(tmp_path):
    path = tmp_path / "pjsip.conf"
    path.write_text("state A\n")
    return path


class TestBackup:
    def test_creates_named_copy(self, store, conf, tmp_path):
        entry = store.backup(conf)
        assert entry.backup_id == "pjsip.conf.backup.20260301_120000"
        assert (tmp_path / "backups" / entry.backup_id).read_text() == "state A\n"
        assert entry.created_at == datetime(2026, 3, 1, 12, 0, 0)
        assert entry.source_path == str(conf)

    def test_backup_file_is_private(self, store, conf):
        entry = store.backup(conf)
        assert os.stat(entry.backup_path).st_mode & 0o777 == 0o600

    def test_idempotent_for_same_content(self, store, conf, clock):
        first = store.backup(conf)
        clock.tick()
        second = store.backup(conf)
        assert second.backup_id == first.backup_id
        assert len(store.list(conf)) == 1

    def test_new_content_creates_new_backup(self, store, conf, clock):
        store.backup(conf)
        clock.tick()
        conf.write_text("state B\n")
        store.backup(conf)
        entries = store.list(conf)
        assert len(entries) == 2
        assert entries[0].created_at > entries[1].created_at

    def test_force_copies_unchanged_content(self, store, conf, clock):
        store.backup(conf)
        clock.tick()
        store.backup(conf, force=True)
        assert len(store.list(conf)) == 2

    def test_same_second_gets_counter(self, store, conf):
        first = store.backup(conf)
        conf.write_text("state B\n")
        second = store.backup(conf)
        conf.write_text("state C\n")
        third = store.backup(conf)
        assert first.backup_id == "pjsip.conf.backup.20260301_120000"
        assert second.backup_id == "pjsip.conf.backup.20260301_120000_001"
        assert third.backup_id == "pjsip.conf.backup.20260301_120000_002"
        assert [e.backup_id for e in store.list(conf)] == [
            third.backup_id,
            second.backup_id,
            first.backup_id,
        ]

    def test_missing_source(self, store, tmp_path):
        assert store.backup(tmp_path / "absent.conf") is None

    def test_beside_original_when_no_dir(self, conf, clock):
        store = BackupStore(clock=clock)
        entry = store.backup(conf)
        assert (conf.parent / entry.backup_id).exists()

    def test_custom_tag(self, conf, clock, tmp_path):
        store = BackupStore(backup_dir=tmp_path / "b", tag="pbx", clock=clock)
        assert store.backup(conf).backup_id == "pjsip.conf.pbx.20260301_120000"

    def test_other_files_ignored(self, store, conf, tmp_path, clock):
        other = tmp_path / "pjsip.conf.local"
        other.write_text("x")
        store.backup(conf)
        store.backup(other)
        assert len(store.list(conf)) == 1
        assert len(store.list(other)) == 1


class TestLatestAndRestore:
    def test_latest(self, store, conf, clock):
        assert store.latest(conf) is None
        store.backup(conf)
        clock.tick()
        conf.write_text("state B\n")
        newest = store.backup(conf)
        assert store.latest(conf).backup_id == newest.backup_id

    def test_restore_replaces_content(self, store, conf, clock):
        entry = store.backup(conf)
        clock.tick()
        conf.write_text("state B\n")
        store.restore(entry.backup_id, conf)
        assert conf.read_text() == "state A\n"

    def test_restore_backs_up_current_content(self, store, conf, clock):
        entry = store.backup(conf)
        clock.tick()
        conf.write_text("state B\n")
        store.restore(entry.backup_id, conf)
        contents = [open(e.backup_path).read() for e in store.list(conf)]
        assert "state B\n" in contents

    def test_restore_unknown_id(self, store, conf):
        with pytest.raises(NotFoundError):
            store.restore("pjsip.conf.backup.20200101_000000", conf)

    def test_restore_rejects_paths(self, store, conf):
        with pytest.raises(NotFoundError):
            store.restore("../pjsip.conf.backup.20200101_000000", conf)

    def test_restore_rejects_malformed_id(self, store, conf):
        with pytest.raises(NotFoundError):
            store.restore("pjsip.conf", conf)


class TestCleanup:
    def _make_backups(self, store, conf, clock, states):
        for state in states:
            conf.write_text(state)
            store.backup(conf)
            clock.tick()

    def test_keeps_newest(self, store, conf, clock):
        self._make_backups(store, conf, clock, ["a", "b", "c", "d", "e"])
        newest = [e.backup_id for e in store.list(conf)][:2]
        deleted = store.cleanup(conf, keep=2)
        assert len(deleted) == 3
        assert [e.backup_id for e in store.list(conf)] == newest

    def test_idempotent(self, store, conf, clock):
        self._make_backups(store, conf, clock, ["a", "b", "c"])
        store.cleanup(conf, keep=1)
        assert store.cleanup(conf, keep=1) == []

    def test_dedup_then_keep_one(self, store, conf, clock):
        # A, A, A, B: three identical states collapse into one backup
        self._make_backups(store, conf, clock, ["A", "A", "A", "B"])
        assert len(store.list(conf)) == 2
        store.cleanup(conf, keep=1)
        entries = store.list(conf)
        assert len(entries) == 1
        assert open(entries[0].backup_path).read() == "B"

    def test_never_touches_active_file(self, store, conf, clock):
        self._make_backups(store, conf, clock, ["a", "b"])
        store.cleanup(conf, keep=0)
        assert store.list(conf) == []
        assert conf.read_text() == "b"

    def test_negative_keep(self, store, conf):
        with pytest.raises(ValueError):
            store.cleanup(conf, keep=-1)


class TestStatus:
    def test_status(self, store, conf, tmp_path):
        store.backup(conf)
        statuses = store.status([conf, tmp_path / "extensions.conf"])
        assert statuses[0].exists is True
        assert statuses[0].backup_count == 1
        assert statuses[0].latest is not None
        assert statuses[1].exists is False
        assert statuses[1].backup_count == 0
        assert statuses[1].latest is None


class TestConcurrentDeletion:
    @pytest.fixture
    def two_backups(self, store, conf, clock):
        old = store.backup(conf)
        clock.tick()
        conf.write_text("state B\n")
        new = store.backup(conf)
        return old, new

    def _vanish_newest(self, store):
        real_scan = store._scan

        def scan(path):
            found = real_scan(path)
            if found:
                found[0][2].unlink()
            return found

        return patch.object(store, "_scan", side_effect=scan)

    def test_list_skips_vanished_backup(self, store, conf, two_backups):
        old, _ = two_backups
        with self._vanish_newest(store):
            entries = store.list(conf)
        assert [e.backup_id for e in entries] == [old.backup_id]

    def test_latest_falls_back_to_next(self, store, conf, two_backups):
        old, _ = two_backups
        with self._vanish_newest(store):
            assert store.latest(conf).backup_id == old.backup_id

    def test_status_counts_existing_only(self, store, conf, two_backups):
        old, _ = two_backups
        with self._vanish_newest(store):
            status = store.status([conf])[0]
        assert status.backup_count == 1
        assert status.latest.backup_id == old.backup_id

    def test_entry_rejects_non_backup_name(self, store, conf, tmp_path):
        stray = tmp_path / "notes.txt"
        stray.write_text("x")
        with pytest.raises(NotFoundError):
            store._entry(conf, stray)
