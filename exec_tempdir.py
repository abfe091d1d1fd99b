"""
exec_tempdir.py — self-deleting temporary workspace
"""

import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional


class ScopedWorkspace:
    """
    Uniquely named directory under the system temp root (or `root`),
    named `<prefix>.<random>`. The whole tree is removed by delete_now() or at
    the end of a `with` block, unless preserve_contents() was called.

    delete_now() may be called any number of times.
    """

    def __init__(self, prefix: str = "paramount", root: Optional[str | Path] = None, preserve: bool = False):
        self._path = Path(tempfile.mkdtemp(prefix=f"{prefix}.", dir=root))
        self._preserve = preserve

    @property
    def path(self) -> Path:
        return self._path

    @property
    def preserved(self) -> bool:
        return self._preserve

    def preserve_contents(self):
        self._preserve = True

    def discard_contents(self):
        self._preserve = False

    def exists(self) -> bool:
        return os.path.isdir(self._path)

    def delete_now(self) -> bool:
        """Remove the tree. Returns True if nothing is left behind (or preserved on purpose)."""
        if self._preserve:
            return True
        try:
            shutil.rmtree(self._path)
        except FileNotFoundError:
            pass
        return not self.exists()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.delete_now()

    def __repr__(self):
        return f"<ScopedWorkspace path={str(self._path)!r} preserve={self._preserve}>"
