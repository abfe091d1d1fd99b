"""
exec_cleanup.py — one-shot teardown, run at the end of a run or from a signal handler
"""

import signal
import threading
from typing import Optional

from exec_errors import RunInterrupted
from exec_exports import remove_export_table
from exec_mounts import exportfs_reload, unmount_all_nfs


ARMED     = "armed"
EXECUTING = "executing"
DISARMED  = "disarmed"

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class CleanupController:
    """
    Tears down everything a run may have created, in a fixed order:

        1. lazily unmount every NFS mount on the host
        2. remove the export table (or this tool's block in it)
        3. exportfs -ra, so the removed exports are withdrawn
        4. delete the workspace (skipped when it is preserved)

    Every step is attempted even if an earlier one failed, and every step is
    idempotent on its own. The whole sequence runs at most once: the guard
    lock is taken without blocking and never released, so a second caller,
    whether another thread or a signal arriving mid-teardown, gets a no-op.

    The signal handler does not tear down itself. It raises RunInterrupted
    into the main thread, which unwinds the run exactly like a fatal error:
    the mount phase waits for mounts already in flight, then the dispatcher's
    `finally` calls run(). Teardown never starts while a mount is in flight.
    """

    def __init__(self, log, workspace, exports_file: str):
        self.log = log
        self.workspace = workspace
        self.exports_file = exports_file
        self.failed_steps: list[str] = []
        self._guard = threading.Lock()
        self._state = ARMED
        self._previous_handlers = {}
        self.interrupted_by: Optional[int] = None

    @property
    def state(self) -> str:
        return self._state

    def _steps(self):
        return [
            ("unmount all NFS mounts", lambda: unmount_all_nfs(self.log, lazy=True)),
            ("remove export file",     lambda: remove_export_table(self.log, self.exports_file)),
            ("run exportfs",           lambda: exportfs_reload(self.log)),
            ("remove temp dir",        self.workspace.delete_now),
        ]

    def run(self) -> bool:
        """
        Returns True if this call performed the teardown, False if it had
        already run or is running. Never raises.
        """
        if not self._guard.acquire(blocking=False):
            return False

        self._state = EXECUTING
        try:
            self.log.step("Cleanup")
            for what, action in self._steps():
                self.log.debug(what)
                try:
                    ok = action()
                except Exception as e:
                    self.log.error(f"✗ Cleanup step '{what}' failed: {e}")
                    ok = False
                if not ok:
                    self.failed_steps.append(what)

            if self.workspace.preserved:
                self.log.info(f"Preserved workspace {self.workspace.path}")
            if self.failed_steps:
                self.log.warning(f"⚠ Cleanup incomplete: {', '.join(self.failed_steps)}")
            else:
                self.log.success("✓ Cleanup complete")
        finally:
            self._state = DISARMED
        return True

    # ─────────────────────────────────────────
    #  Signal handling
    # ─────────────────────────────────────────
    def _handle_signal(self, signum, frame):
        # Only the first signal while armed interrupts the run
        if self._state != ARMED or self.interrupted_by is not None:
            return
        self.interrupted_by = signum
        self.log.warning(f"⚠ Caught {signal.Signals(signum).name}, stopping and cleaning up")
        raise RunInterrupted(signum)

    def install_signal_handlers(self, signals=HANDLED_SIGNALS):
        """Must be called from the main thread."""
        for signum in signals:
            self._previous_handlers[signum] = signal.signal(signum, self._handle_signal)

    def restore_signal_handlers(self):
        for signum, handler in self._previous_handlers.items():
            if handler is not None:     # installed outside Python
                signal.signal(signum, handler)
        self._previous_handlers.clear()
