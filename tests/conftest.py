"""
Shared fixtures: a quiet logger, a run config rooted in tmp_path, and a fake
NFS host that answers exportfs / mount / umount and keeps a mount table file.
"""

import logging
import os
import subprocess
import threading

import pytest

import exec_mounts
from exec_config import RunConfig
from exec_logger import ColorLogger
from exec_tempdir import ScopedWorkspace


BASE_MOUNT_TABLE = (
    "proc /proc proc rw,nosuid,nodev,noexec,relatime 0 0\n"
    "/dev/sda1 / ext4 rw,relatime 0 0\n"
    "tmpfs /run tmpfs rw,nosuid,nodev,size=813152k,mode=755 0 0\n"
)


class FakeNfsHost:
    """Stands in for subprocess.run while exec_mounts drives exportfs, mount and umount."""

    def __init__(self, mount_table):
        self.mount_table = mount_table
        self.mount_table.write_text(BASE_MOUNT_TABLE)
        self.calls = []
        self.lock = threading.Lock()
        self.failing_targets = set()
        self.exportfs_rc = 0
        self.umount_rc = 0
        self.on_mount = None

    def commands(self, program):
        with self.lock:
            return [call for call in self.calls if os.path.basename(call[0]) == program]

    def add_mount(self, source, target, fstype="nfs"):
        with self.lock:
            with open(self.mount_table, "a") as f:
                f.write(f"{source} {target} {fstype} rw,relatime,vers=3,addr=127.0.0.1 0 0\n")

    def _mount(self, command):
        source, target = command[-2], command[-1]
        if self.on_mount is not None:
            self.on_mount(command)
        if target in self.failing_targets:
            return 32
        self.add_mount(source, target)
        return 0

    def _umount(self, command):
        with self.lock:
            lines = self.mount_table.read_text().splitlines(keepends=True)
            kept = [line for line in lines if line.split()[2] not in ("nfs", "nfs4")]
            self.mount_table.write_text("".join(kept))
        return self.umount_rc

    def run(self, command, capture_output=False, text=False, timeout=None, **kwargs):
        program = os.path.basename(command[0])
        with self.lock:
            self.calls.append(list(command))

        if program == "exportfs":
            rc = self.exportfs_rc
        elif program == "mount":
            rc = self._mount(command)
        elif program == "umount":
            rc = self._umount(command)
        else:
            rc = 127
        return subprocess.CompletedProcess(command, rc, stdout="", stderr="" if rc == 0 else "fake failure")


@pytest.fixture
def log():
    """Console-only logger at DEBUG so verbose paths are exercised"""
    return ColorLogger(name="test", level=logging.DEBUG)


@pytest.fixture
def exports_file(tmp_path):
    exports_dir = tmp_path / "exports.d"
    exports_dir.mkdir()
    return str(exports_dir / "paramount.exports")


@pytest.fixture
def mount_table(tmp_path):
    return tmp_path / "mounts"


@pytest.fixture
def config(exports_file, mount_table):
    return RunConfig(
        thread_count=4,
        exports_file=exports_file,
        mount_table=str(mount_table),
        mount_timeout=5,
        barrier_timeout=5,
    )


@pytest.fixture
def workspace(tmp_path):
    workspace_root = tmp_path / "tmp"
    workspace_root.mkdir()
    ws = ScopedWorkspace("paramount", root=workspace_root)
    yield ws
    ws.discard_contents()
    ws.delete_now()


@pytest.fixture
def nfs_host(monkeypatch, mount_table):
    """Route every external command issued by exec_mounts to a FakeNfsHost"""
    host = FakeNfsHost(mount_table)
    monkeypatch.setattr(exec_mounts.shutil, "which", lambda program: f"/usr/sbin/{program}")
    monkeypatch.setattr(exec_mounts.subprocess, "run", host.run)
    return host
