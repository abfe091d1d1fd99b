"""
exec_mounts.py — external NFS operations: export reload, mount, unmount
"""

import shutil
import subprocess
from dataclasses import dataclass
from typing import Optional


NFS_FSTYPES = ("nfs", "nfs4")   # v3-style and v4-style type tags in the mount table

MOUNT_TIMEOUT_RC = 124          # mount process killed after the per-mount timeout
MOUNT_LAUNCH_RC  = 127          # mount binary missing or could not be started

EXPORTFS_TIMEOUT = 120
UMOUNT_TIMEOUT   = 120


# ─────────────────────────────────────────────
#  Mount Options Dataclass
# ─────────────────────────────────────────────
@dataclass(frozen=True)
class MOUNT_OPTIONS:
    mount_mode: str     = "rw"      # every stress mount is read-write
    majorvers: int      = 3         # pinned protocol version


# ─────────────────────────────────────────────
#  Build mount options string
# ─────────────────────────────────────────────
def build_mount_options(options: MOUNT_OPTIONS) -> str:
    """
    Converts a MOUNT_OPTIONS dataclass into the comma-separated -o argument.
    """
    if options.mount_mode not in ("rw", "ro"):
        raise ValueError(f"Invalid mount mode: {options.mount_mode}")
    if options.majorvers not in (3, 4):
        raise ValueError(f"Invalid NFS major version: {options.majorvers}")

    return ",".join([options.mount_mode, f"nfsvers={options.majorvers}"])


def _resolve(program: str) -> str:
    """Full path of `program` from PATH, or the bare name so the failure surfaces from subprocess."""
    return shutil.which(program) or program


# ─────────────────────────────────────────────
#  Export reload
# ─────────────────────────────────────────────
def exportfs_reload(log) -> bool:
    """
    Re-read the export table and (de)activate entries accordingly (`exportfs -ra`).

    Returns
    -------
    bool : True if exportfs exited 0
    """
    command = [_resolve("exportfs"), "-ra"]
    log.debug(f"run exportfs: {' '.join(command)}")

    try:
        result = subprocess.run(
            command,
            capture_output=True,
            text=True,
            timeout=EXPORTFS_TIMEOUT,
        )
    except subprocess.TimeoutExpired:
        log.error(f"✗ exportfs timed out after {EXPORTFS_TIMEOUT} seconds")
        return False
    except OSError as e:
        log.error(f"✗ exportfs could not be started: {e}")
        return False

    if result.returncode != 0:
        log.error(f"✗ exportfs failed (exit {result.returncode}): {result.stderr.strip()}")
        return False
    return True


# ─────────────────────────────────────────────
#  Mount
# ─────────────────────────────────────────────
def mount_nfs(
        log,
        nfs_server: str,
        nfs_export: str,
        mount_point: str,
        options: Optional[MOUNT_OPTIONS] = None,
        timeout: float = 60,
        label: str = "mounter",
        ) -> int:
    """
    Mount one NFS export. A single attempt, no retry.

    Parameters
    ----------
    log         : Logger instance for logging steps and results
    nfs_server  : NFS server hostname or IP
    nfs_export  : Export path on the server
    mount_point : Existing local directory to mount onto
    options     : MOUNT_OPTIONS dataclass instance (defaults to rw, NFSv3)
    timeout     : Seconds the mount process may run before it is killed
    label       : Prefix for log lines, identifies the calling mounter

    Returns
    -------
    int : mount's exit status; MOUNT_TIMEOUT_RC on timeout, MOUNT_LAUNCH_RC if it could not run
    """
    if options is None:
        options = MOUNT_OPTIONS()

    opts_str = build_mount_options(options)
    source   = f"{nfs_server}:{nfs_export}"
    command  = [_resolve("mount"), "-t", "nfs", "-o", opts_str, source, mount_point]

    log.debug(f"{label} cmd '{' '.join(command)}'")

    try:
        result = subprocess.run(
            command,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        log.error(f"✗ {label} mount timed out after {timeout:g} seconds: {source}")
        return MOUNT_TIMEOUT_RC
    except OSError as e:
        log.error(f"✗ {label} mount could not be started: {e}")
        return MOUNT_LAUNCH_RC

    if result.returncode != 0:
        log.debug(f"✗ {label} mount failed (exit {result.returncode}): {result.stderr.strip()}")
    return result.returncode


# ─────────────────────────────────────────────
#  Unmount
# ─────────────────────────────────────────────
def unmount_all_nfs(log, fstypes: tuple = NFS_FSTYPES, lazy: bool = True, force: bool = False) -> bool:
    """
    Unmount every mounted filesystem of the given types, wherever it is (`umount -a -t ...`).

    Parameters
    ----------
    fstypes : Filesystem types to detach
    lazy    : Pass -l flag (detach now even if busy, clean up later)
    force   : Pass -f flag (for unresponsive servers)

    Returns
    -------
    bool : True if umount exited 0
    """
    command = [_resolve("umount"), "-a", "-t", ",".join(fstypes)]
    if force:
        command.append("-f")
    if lazy:
        command.append("-l")

    log.debug(f"unmount all {'/'.join(fstypes)} mounts: {' '.join(command)}")

    try:
        result = subprocess.run(
            command,
            capture_output=True,
            text=True,
            timeout=UMOUNT_TIMEOUT,
        )
    except subprocess.TimeoutExpired:
        log.error(f"✗ Unmount timed out after {UMOUNT_TIMEOUT} seconds")
        return False
    except OSError as e:
        log.error(f"✗ umount could not be started: {e}")
        return False

    if result.returncode != 0:
        log.error(f"✗ Unmount failed (exit {result.returncode}): {result.stderr.strip()}")
        return False
    return True
