"""
exec_exports.py — build, publish and withdraw the export table for a run
"""

import os
import tempfile
from typing import Iterable

from exec_errors import ProvisioningError


EXPORT_TAG    = "paramount"
EXPORT_CLIENT = "*"


def export_fsid(index: int) -> str:
    """Stable per-slot fsid. Every export shares one filesystem, so each needs its own."""
    if not 0 <= index <= 0xffff:
        raise ValueError(f"export index out of range for an fsid: {index}")
    return f"00000000-0000-0000-0000-00000000{index:04x}"


def export_options(fsid: str) -> str:
    return f"rw,no_subtree_check,no_root_squash,fsid={fsid}"


def begin_marker(tag: str = EXPORT_TAG) -> str:
    return f"### BEGIN {tag}"


def end_marker(tag: str = EXPORT_TAG) -> str:
    return f"### END {tag}"


# ─────────────────────────────────────────────
#  Render
# ─────────────────────────────────────────────
def render_export_table(slots: Iterable, tag: str = EXPORT_TAG) -> list[str]:
    """
    One line per slot, wrapped in BEGIN/END markers:

        ### BEGIN paramount
        "/tmp/paramount.x/mount/d0000"	*(rw,no_subtree_check,no_root_squash,fsid=...)
        ### END paramount

    Paths are double quoted so exportfs accepts them whatever they contain.
    """
    lines = [begin_marker(tag)]
    for slot in slots:
        lines.append(f'"{slot.export_dir}"\t{EXPORT_CLIENT}({export_options(slot.export_id)})')
    lines.append(end_marker(tag))
    return lines


def strip_export_block(text: str, tag: str = EXPORT_TAG) -> str:
    """
    Remove every BEGIN/END block for `tag` from export-file text, leaving all
    other lines untouched. An unterminated block runs to end of file.
    """
    kept = []
    inside = False
    for line in text.splitlines(keepends=True):
        marker = line.strip()
        if not inside and marker == begin_marker(tag):
            inside = True
            continue
        if inside:
            if marker == end_marker(tag):
                inside = False
            continue
        kept.append(line)
    return "".join(kept)


# ─────────────────────────────────────────────
#  Write (all-or-nothing)
# ─────────────────────────────────────────────
def write_export_table(log, path: str, slots: list, tag: str = EXPORT_TAG) -> int:
    """
    Publish the export table at `path`. The content goes to a temporary file
    in the same directory which then replaces `path` in one rename, so exportfs
    never sees a partial table.

    Returns
    -------
    int : number of export lines written

    Raises
    ------
    ProvisioningError : on any I/O failure; nothing is left at `path` from this call
    """
    lines = render_export_table(slots, tag)
    content = "".join(f"{line}\n" for line in lines)
    directory = os.path.dirname(os.path.abspath(path))

    tmp_path = None
    try:
        fd, tmp_path = tempfile.mkstemp(prefix=".paramount.", suffix=".tmp", dir=directory)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_path, 0o644)
        os.replace(tmp_path, path)
    except OSError as e:
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except FileNotFoundError:
                pass
        raise ProvisioningError(f"Failed to write export table {path}: {e}") from e

    log.debug(f"Wrote {len(slots)} exports to {path}")
    return len(slots)


# ─────────────────────────────────────────────
#  Remove
# ─────────────────────────────────────────────
def remove_export_table(log, path: str, tag: str = EXPORT_TAG) -> bool:
    """
    Withdraw this tool's block from `path`. The file is deleted when the block
    was all it held, and rewritten without the block otherwise. A missing file
    counts as success, so repeated calls are harmless. Never raises.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            text = f.read()
    except FileNotFoundError:
        return True
    except OSError as e:
        log.error(f"✗ Failed to read export table {path}: {e}")
        return False

    remainder = strip_export_block(text, tag)
    try:
        if remainder.strip():
            with open(path, "w", encoding="utf-8") as f:
                f.write(remainder)
            log.debug(f"Removed {tag} block from {path}")
        else:
            os.remove(path)
            log.debug(f"Removed export file {path}")
    except FileNotFoundError:
        pass
    except OSError as e:
        log.error(f"✗ Failed to remove export table {path}: {e}")
        return False
    return True
