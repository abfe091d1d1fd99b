"""
exec_config.py — run configuration and command line parsing
"""

import argparse
from dataclasses import dataclass
from typing import Optional


# ─────────────────────────────────────────────
#  Defaults
# ─────────────────────────────────────────────
DEFAULT_THREADS         = 128
DEFAULT_EXPORTS_FILE    = "/etc/exports.d/paramount.exports"
DEFAULT_MOUNT_TABLE     = "/proc/self/mounts"
DEFAULT_NFS_SERVER      = "127.0.0.1"
DEFAULT_NFS_VERSION     = 3
DEFAULT_MOUNT_TIMEOUT   = 60.0     # seconds per mount process
DEFAULT_BARRIER_TIMEOUT = 120.0    # seconds to wait for every mounter to arrive
MAX_THREADS             = 0x10000  # slot index must fit the 4 hex digits of an export fsid


# ─────────────────────────────────────────────
#  Run Config Dataclass
# ─────────────────────────────────────────────
@dataclass(frozen=True)
class RunConfig:
    thread_count: int       = DEFAULT_THREADS         # export/mount pairs to provision
    verbose: bool           = False                   # step-by-step progress output
    preserve_temp: bool     = False                   # keep the workspace after the run
    exports_file: str       = DEFAULT_EXPORTS_FILE    # export table written for this run
    mount_table: str        = DEFAULT_MOUNT_TABLE     # live mount table read at verification
    nfs_server: str         = DEFAULT_NFS_SERVER      # always loopback
    nfs_version: int        = DEFAULT_NFS_VERSION     # pinned protocol version
    mount_timeout: float    = DEFAULT_MOUNT_TIMEOUT
    barrier_timeout: float  = DEFAULT_BARRIER_TIMEOUT
    log_dir: Optional[str]  = None                    # plain-text run log, console only if None

    def __post_init__(self):
        if not 0 < self.thread_count <= MAX_THREADS:
            raise ValueError(f"thread_count must be between 1 and {MAX_THREADS}, got {self.thread_count}")
        if self.mount_timeout <= 0 or self.barrier_timeout <= 0:
            raise ValueError("timeouts must be positive")


# ─────────────────────────────────────────────
#  Argument type checks
# ─────────────────────────────────────────────
def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}")
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be greater than zero: {value}")
    return number


def _thread_count(value: str) -> int:
    number = _positive_int(value)
    if number > MAX_THREADS:
        raise argparse.ArgumentTypeError(f"must be at most {MAX_THREADS}: {value}")
    return number


def _positive_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number: {value!r}")
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be greater than zero: {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    # add_help=False: --help is handled by parse_run_config so it can exit non-zero
    parser = argparse.ArgumentParser(
        prog="paramount",
        description="Provision many concurrent loopback NFS mounts to stress an NFS server",
        add_help=False,
    )
    parser.add_argument('-h', '--help',     action='store_true',  help='produce help message')
    parser.add_argument('-p', '--preserve', action='store_true',  help='preserve temporary files and directories')
    parser.add_argument('-t', '--threads',  type=_thread_count, default=DEFAULT_THREADS,
                        help=f'the number of concurrent commands to issue (default: {DEFAULT_THREADS})')
    parser.add_argument('-v', '--verbose',  action='store_true',  help='show verbose output')
    parser.add_argument('--mount-timeout',  type=_positive_float, default=DEFAULT_MOUNT_TIMEOUT,
                        help=f'seconds each mount command may run (default: {DEFAULT_MOUNT_TIMEOUT:g})')
    parser.add_argument('--exports-file',   default=DEFAULT_EXPORTS_FILE,
                        help=f'export table to write (default: {DEFAULT_EXPORTS_FILE})')
    parser.add_argument('--log-dir',        default=None,
                        help='also write a plain-text log file into this directory')
    return parser


def parse_run_config(argv=None) -> Optional[RunConfig]:
    """
    Parse the command line into a RunConfig.
    Returns None when help was requested (usage has already been printed).
    Invalid values make argparse exit with status 2.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.help:
        parser.print_help()
        return None

    return RunConfig(
        thread_count  = args.threads,
        verbose       = args.verbose,
        preserve_temp = args.preserve,
        exports_file  = args.exports_file,
        mount_timeout = args.mount_timeout,
        log_dir       = args.log_dir,
    )
