"""
exec_verify.py — read the live mount table and check it against what was provisioned
"""

import re
from typing import Iterable, NamedTuple

from exec_config import DEFAULT_NFS_SERVER
from exec_errors import VerificationError
from exec_mounts import NFS_FSTYPES


class MountRecord(NamedTuple):
    # fields:
    # 0      1          2      3       4    5
    # device mountpoint fstype options dump passno
    device: str
    mountpoint: str
    fstype: str
    options: str
    dump: str = "0"
    passno: str = "0"

    @property
    def source(self) -> str:
        return self.device

    @property
    def target(self) -> str:
        return self.mountpoint

    @property
    def is_nfs(self) -> bool:
        return self.fstype in NFS_FSTYPES


# The kernel writes space, tab, newline and backslash in paths as \ooo
_OCTAL_ESCAPE = re.compile(r"\\([0-7]{3})")

def _unescape(field: str) -> str:
    return _OCTAL_ESCAPE.sub(lambda m: chr(int(m.group(1), 8)), field)


def parse_mount_line(line: str) -> MountRecord:
    """Split one mount-table line on runs of whitespace into a MountRecord."""
    fields = line.split()
    if len(fields) < 4:
        raise ValueError(f"Malformed mount table line: {line!r}")
    device, mountpoint, fstype, options = fields[:4]
    rest = fields[4:6] + ["0"] * (2 - len(fields[4:6]))
    return MountRecord(_unescape(device), _unescape(mountpoint), fstype, options, *rest)


def read_mount_table(path: str = "/proc/self/mounts") -> list[MountRecord]:
    """Fresh snapshot of the live mount table, in table order. Blank lines are skipped."""
    with open(path, "r", encoding="utf-8", errors="surrogateescape") as f:
        return [parse_mount_line(line) for line in f if line.strip()]


def mount_source(nfs_server: str, export_dir: str) -> str:
    """The source column the kernel shows for `export_dir` mounted from `nfs_server`."""
    return f"{nfs_server}:{export_dir}"


def verify_mounts(
        log,
        records: Iterable[MountRecord],
        intent_map: dict[str, str],
        nfs_server: str = DEFAULT_NFS_SERVER,
        ) -> int:
    """
    Every NFS mount on the host must be one of ours and sit on its intended
    client directory. Missing mounts are tolerated (mount failures are not
    fatal), extra or misplaced ones are not.

    A record is ours only if its whole source, server included, is
    `<nfs_server>:<export dir>`; the same path served by another host is not.

    Returns
    -------
    int : number of live NFS mounts that matched the intent map

    Raises
    ------
    VerificationError : an NFS mount is not in the map, or is mounted somewhere else
    """
    expected_targets = {mount_source(nfs_server, export): client for export, client in intent_map.items()}

    verified = 0
    for record in records:
        if not record.is_nfs:
            continue

        expected = expected_targets.get(record.source)
        if expected is None:
            raise VerificationError(f"Mount '{record.source}' not found in map")
        if expected != record.target:
            raise VerificationError(
                f"Mount '{record.source}' expected mountpoint {expected} found {record.target}"
            )
        verified += 1

    missing = len(intent_map) - verified
    if missing > 0:
        log.warning(f"⚠ {missing} of {len(intent_map)} intended mounts are not in the mount table")
    return verified
