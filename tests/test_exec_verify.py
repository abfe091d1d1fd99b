"""
Tests for mount table parsing and verification against the intended map.
"""

import pytest

from exec_errors import VerificationError
from exec_verify import (
    MountRecord,
    mount_source,
    parse_mount_line,
    read_mount_table,
    verify_mounts,
)


INTENT = {
    "/tmp/paramount.x/mount/d0000": "/tmp/paramount.x/client/d0000",
    "/tmp/paramount.x/mount/d0001": "/tmp/paramount.x/client/d0001",
}


def nfs(source, target, fstype="nfs"):
    return MountRecord(source, target, fstype, "rw,vers=3", "0", "0")


class TestParse:

    def test_six_fields(self):
        record = parse_mount_line("127.0.0.1:/export /mnt/c nfs rw,vers=3,addr=127.0.0.1 0 0\n")
        assert record == MountRecord("127.0.0.1:/export", "/mnt/c", "nfs", "rw,vers=3,addr=127.0.0.1", "0", "0")
        assert record.source == "127.0.0.1:/export"
        assert record.target == "/mnt/c"
        assert record.is_nfs

    def test_runs_of_whitespace(self):
        record = parse_mount_line("/dev/sda1   /    ext4\trw  0   1")
        assert record.mountpoint == "/"
        assert record.fstype == "ext4"
        assert record.passno == "1"
        assert not record.is_nfs

    def test_missing_trailing_fields_default(self):
        record = parse_mount_line("none /sys sysfs rw")
        assert (record.dump, record.passno) == ("0", "0")

    def test_octal_escapes_are_decoded(self):
        record = parse_mount_line(r"host:/srv/my\040share /mnt/my\040share nfs4 rw 0 0")
        assert record.source == "host:/srv/my share"
        assert record.target == "/mnt/my share"

    def test_malformed_line(self):
        with pytest.raises(ValueError):
            parse_mount_line("garbage")

    def test_read_skips_blank_lines(self, tmp_path):
        table = tmp_path / "mounts"
        table.write_text("proc /proc proc rw 0 0\n\n127.0.0.1:/e /c nfs rw 0 0\n")
        records = read_mount_table(str(table))
        assert [r.fstype for r in records] == ["proc", "nfs"]

    def test_mount_source(self):
        assert mount_source("127.0.0.1", "/tmp/x/mount/d0000") == "127.0.0.1:/tmp/x/mount/d0000"


class TestVerify:

    def test_matching_mounts_pass(self, log):
        records = [
            nfs("127.0.0.1:/tmp/paramount.x/mount/d0000", "/tmp/paramount.x/client/d0000"),
            nfs("127.0.0.1:/tmp/paramount.x/mount/d0001", "/tmp/paramount.x/client/d0001", fstype="nfs4"),
        ]
        assert verify_mounts(log, records, INTENT) == 2

    def test_fewer_mounts_than_intended_is_tolerated(self, log):
        records = [nfs("127.0.0.1:/tmp/paramount.x/mount/d0001", "/tmp/paramount.x/client/d0001")]
        assert verify_mounts(log, records, INTENT) == 1

    def test_no_mounts_at_all(self, log):
        assert verify_mounts(log, [], INTENT) == 0

    def test_mismatched_target_fails(self, log):
        records = [nfs("127.0.0.1:/tmp/paramount.x/mount/d0000", "/tmp/paramount.x/client/d0001")]
        with pytest.raises(VerificationError, match="expected mountpoint /tmp/paramount.x/client/d0000 found /tmp/paramount.x/client/d0001"):
            verify_mounts(log, records, INTENT)

    def test_untracked_nfs_mount_fails(self, log):
        records = [nfs("nas01:/stale/export", "/mnt/stale")]
        with pytest.raises(VerificationError, match="not found in map"):
            verify_mounts(log, records, INTENT)

    def test_untracked_nfs4_mount_fails(self, log):
        records = [nfs("nas01:/", "/mnt/v4", fstype="nfs4")]
        with pytest.raises(VerificationError, match="'nas01:/' not found in map"):
            verify_mounts(log, records, INTENT)

    def test_same_path_from_another_host_fails(self, log):
        records = [nfs("nas01:/tmp/paramount.x/mount/d0000", "/tmp/paramount.x/client/d0000")]
        with pytest.raises(VerificationError, match="'nas01:/tmp/paramount.x/mount/d0000' not found in map"):
            verify_mounts(log, records, INTENT)

    def test_matches_configured_server(self, log):
        records = [nfs("localhost:/tmp/paramount.x/mount/d0000", "/tmp/paramount.x/client/d0000")]
        assert verify_mounts(log, records, INTENT, nfs_server="localhost") == 1
        with pytest.raises(VerificationError, match="not found in map"):
            verify_mounts(log, records, INTENT)

    def test_unrelated_filesystems_are_ignored(self, log):
        records = [
            MountRecord("/dev/sda1", "/", "ext4", "rw"),
            MountRecord("/tmp/paramount.x/mount/d0000", "/elsewhere", "none", "rw,bind"),
            MountRecord("tmpfs", "/tmp/paramount.x/client/d0001", "tmpfs", "rw"),
            nfs("127.0.0.1:/tmp/paramount.x/mount/d0000", "/tmp/paramount.x/client/d0000"),
        ]
        assert verify_mounts(log, records, INTENT) == 1
