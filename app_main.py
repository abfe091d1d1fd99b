"""

app_main.py       # ties it all together, runs one provisioning pass

exec_config.py    # RunConfig and command line options
exec_logger.py    # logging setup and helper functions
exec_errors.py    # fatal error types
exec_tempdir.py   # self-deleting workspace directory
exec_mounts.py    # exportfs / mount / umount wrappers, mount options dataclass
exec_exports.py   # export table rendering, atomic write, removal
exec_provision.py # directory layout, export activation, barrier-started concurrent mounts
exec_verify.py    # live mount table parsing and checking against the intended map
exec_cleanup.py   # one-shot teardown, also run from SIGINT/SIGTERM

"""

import os
import sys

from exec_cleanup import CleanupController
from exec_config import RunConfig, parse_run_config
from exec_errors import ParamountError, RunInterrupted
from exec_logger import clear_logger, get_logger
from exec_provision import MountOrchestrator
from exec_tempdir import ScopedWorkspace
from exec_verify import read_mount_table, verify_mounts


EXIT_SUCCESS = 0
EXIT_FAILURE = 1


def run(config: RunConfig, log, workspace: ScopedWorkspace) -> int:
    """
    Provision, verify, and always tear down. Returns the process exit status.
    Mount failures alone do not fail the run; anything fatal does.

    An interrupt may land anywhere, including while a fatal error is being
    reported, so RunInterrupted is caught outside the error handlers.
    """
    cleanup = CleanupController(log, workspace, config.exports_file)
    exit_code = EXIT_FAILURE

    try:
        try:
            cleanup.install_signal_handlers()
            log.header(f"paramount: {config.thread_count} concurrent NFS mounts")
            log.info(f"Workspace   : {workspace.path}")
            log.info(f"Export file : {config.exports_file}")
            if log.log_file_path is not None:
                log.info(f"Log file    : {log.log_file_path}")

            orchestrator = MountOrchestrator(log, config, workspace.path)
            result = orchestrator.provision()

            log.step("Scan mounts")
            records = read_mount_table(config.mount_table)
            verified = verify_mounts(log, records, result.intent_map, config.nfs_server)
            log.success(f"✓ Mounts check out ({verified} of {len(result.slots)} mounted, {result.failures} failed)")
            exit_code = EXIT_SUCCESS

        except ParamountError as e:
            log.error(f"✗ {e}")
        except Exception as e:
            log.critical(f"Caught exception: {e}", exc_info=True)

    except RunInterrupted as e:
        log.error(f"✗ Run {e}")
        exit_code = e.exit_code
    finally:
        cleanup.run()
        cleanup.restore_signal_handlers()

    return exit_code


def main(argv=None) -> int:
    config = parse_run_config(argv)
    if config is None:
        return EXIT_FAILURE     # --help, non-zero on purpose

    log = get_logger("paramount", log_dir=config.log_dir, verbose=config.verbose)
    try:
        if os.geteuid() != 0:
            log.error("✗ Mount operations require root privileges. Please run as root or with sudo.")
            return EXIT_FAILURE

        try:
            workspace = ScopedWorkspace("paramount", preserve=config.preserve_temp)
        except OSError as e:
            log.error(f"✗ Failed to create temp dir: {e}")
            return EXIT_FAILURE

        with workspace:
            return run(config, log, workspace)
    finally:
        clear_logger("paramount")     # closes the log file


if __name__ == "__main__":
    sys.exit(main())
