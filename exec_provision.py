"""
exec_provision.py — lay out export/client directories, publish and activate
the exports, then fire every mount at once from behind a start barrier.
"""

import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from exec_config import RunConfig
from exec_errors import ProvisioningError
from exec_exports import export_fsid, write_export_table
from exec_mounts import MOUNT_LAUNCH_RC, MOUNT_OPTIONS, MOUNT_TIMEOUT_RC, exportfs_reload, mount_nfs


DRAIN_GRACE = 5.0   # seconds past mount_timeout for a killed mount process to be reaped


# ─────────────────────────────────────────────
#  Data model
# ─────────────────────────────────────────────
@dataclass(frozen=True)
class ExportSlot:
    index: int
    export_dir: str     # server side, exported
    client_dir: str     # client side, mount target
    export_id: str      # fsid= tag, distinct per slot


@dataclass(frozen=True)
class MountOutcome:
    index: int
    returncode: int
    started_at: Optional[float] = None     # time.monotonic() right after barrier release
    finished_at: Optional[float] = None

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0


@dataclass
class ProvisionResult:
    slots: list[ExportSlot]
    intent_map: dict[str, str]
    outcomes: list[MountOutcome] = field(default_factory=list)

    @property
    def failures(self) -> int:
        return count_failures(self.outcomes)


def count_failures(outcomes: list[MountOutcome]) -> int:
    return sum(1 for outcome in outcomes if not outcome.succeeded)


def slot_name(index: int) -> str:
    return f"d{index:04}"


def build_intent_map(slots: list[ExportSlot]) -> dict[str, str]:
    """export dir → client dir, i.e. what should be mounted where."""
    return {slot.export_dir: slot.client_dir for slot in slots}


# ─────────────────────────────────────────────
#  MountOrchestrator
# ─────────────────────────────────────────────
class MountOrchestrator:
    """
    Drives one provisioning run inside `workspace_dir`.

    The phases are separate methods so each can be exercised alone;
    provision() runs them in their required order:

        layout → publish_exports → activate → mount_all

    Every phase but mount_all raises ProvisioningError on failure. Individual
    mount failures are recorded in the returned outcomes and never raise.
    """

    def __init__(self, log, config: RunConfig, workspace_dir):
        self.log = log
        self.config = config
        # The live mount table reports canonical paths
        self.workspace_dir = Path(os.path.realpath(workspace_dir))
        self.mount_root = self.workspace_dir / "mount"
        self.client_root = self.workspace_dir / "client"

    # ─────────────────────────────────────────
    #  Layout
    # ─────────────────────────────────────────
    def _mkdir(self, path: Path, what: str):
        try:
            os.mkdir(path)
        except OSError as e:
            raise ProvisioningError(f"Failed to create {what} {path}: {e.strerror or e}") from e

    def layout(self) -> list[ExportSlot]:
        """Create mount/dNNNN and client/dNNNN for every slot."""
        self._mkdir(self.mount_root, "mount root directory")
        self._mkdir(self.client_root, "client root directory")

        slots = []
        for d in range(self.config.thread_count):
            export_dir = self.mount_root / slot_name(d)
            client_dir = self.client_root / slot_name(d)
            self._mkdir(export_dir, "mount directory")
            self.log.debug(f"Created mount {export_dir}")
            self._mkdir(client_dir, "client directory")
            self.log.debug(f"Created client mountpoint {client_dir}")
            slots.append(ExportSlot(d, str(export_dir), str(client_dir), export_fsid(d)))
        return slots

    # ─────────────────────────────────────────
    #  Exports
    # ─────────────────────────────────────────
    def publish_exports(self, slots: list[ExportSlot]) -> int:
        return write_export_table(self.log, self.config.exports_file, slots)

    def activate(self):
        """Mounts must never be tried against stale or unpublished exports."""
        if not exportfs_reload(self.log):
            raise ProvisioningError("exportfs failed, exports not activated")

    # ─────────────────────────────────────────
    #  Concurrent mount phase
    # ─────────────────────────────────────────
    def _mounter(self, slot: ExportSlot, barrier: threading.Barrier, options: MOUNT_OPTIONS) -> MountOutcome:
        barrier.wait()
        started = time.monotonic()
        self.log.debug(f"mounter {slot.index} mdir {slot.export_dir} mount on cdir {slot.client_dir}")
        returncode = mount_nfs(
            log         = self.log,
            nfs_server  = self.config.nfs_server,
            nfs_export  = slot.export_dir,
            mount_point = slot.client_dir,
            options     = options,
            timeout     = self.config.mount_timeout,
            label       = f"mounter {slot.index}",
        )
        return MountOutcome(slot.index, returncode, started, time.monotonic())

    def _drain(self, futures):
        """Wait, bounded by the mount timeout, for mounters that got past the barrier."""
        for future in futures:
            future.cancel()
        pending = [future for future in futures if not future.done()]
        if not pending:
            return

        bound = self.config.mount_timeout + DRAIN_GRACE
        self.log.warning(f"⚠ Waiting up to {bound:g} seconds for {len(pending)} in-flight mounts")
        _, still_running = wait(pending, timeout=bound)
        if still_running:
            self.log.error(f"✗ {len(still_running)} mounters did not finish, their mounts may outlive cleanup")

    def mount_all(self, slots: list[ExportSlot]) -> list[MountOutcome]:
        """
        One mounter thread per slot, all held at a barrier of len(slots) + 1.
        The coordinator arrives last, so no mount starts until every mounter
        exists and they all start together.

        If the barrier breaks (a mounter never arrived within barrier_timeout)
        or the coordinator is interrupted, the barrier is aborted so no thread
        is left waiting on it, and mounts already running are waited for
        before the exception propagates to cleanup.
        """
        n = len(slots)
        barrier = threading.Barrier(n + 1, timeout=self.config.barrier_timeout)
        options = MOUNT_OPTIONS(majorvers=self.config.nfs_version)
        executor = ThreadPoolExecutor(max_workers=n, thread_name_prefix="mounter")
        futures = {}

        try:
            for slot in slots:
                self.log.debug(f"Start mounter {slot.index}")
                try:
                    futures[executor.submit(self._mounter, slot, barrier, options)] = slot
                except RuntimeError as e:
                    raise ProvisioningError(f"Failed to start mounter {slot.index}: {e}") from e

            try:
                barrier.wait()
            except threading.BrokenBarrierError:
                raise ProvisioningError(
                    f"Start barrier broken: not every mounter arrived within {self.config.barrier_timeout:g} seconds"
                ) from None

            done, not_done = wait(futures, timeout=self.config.mount_timeout + self.config.barrier_timeout)
        except BaseException:
            barrier.abort()
            self._drain(futures)
            raise
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        outcomes = []
        for future, slot in futures.items():
            if future in not_done:
                self.log.error(f"✗ mounter {slot.index} did not report in time")
                outcomes.append(MountOutcome(slot.index, MOUNT_TIMEOUT_RC))
                continue
            try:
                outcomes.append(future.result())
            except Exception as e:
                self.log.error(f"✗ mounter {slot.index} failed: {e}")
                outcomes.append(MountOutcome(slot.index, MOUNT_LAUNCH_RC))

        outcomes.sort(key=lambda outcome: outcome.index)
        return outcomes

    # ─────────────────────────────────────────
    #  All phases
    # ─────────────────────────────────────────
    def provision(self) -> ProvisionResult:
        n = self.config.thread_count

        self.log.step(f"Creating {n} export and client directories under {self.workspace_dir}")
        slots = self.layout()

        self.log.step(f"Publishing export table {self.config.exports_file}")
        self.publish_exports(slots)

        self.log.step("Activating exports")
        self.activate()

        result = ProvisionResult(slots, build_intent_map(slots))

        self.log.step(f"Mounting {n} exports from {self.config.nfs_server} concurrently")
        result.outcomes = self.mount_all(slots)

        if result.failures:
            self.log.warning(f"⚠ Got {result.failures} mount failures")
        else:
            self.log.success(f"✓ All {n} mounts succeeded")
        return result
