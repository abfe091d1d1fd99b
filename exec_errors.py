"""
exec_errors.py — failure taxonomy for a provisioning run
"""


class ParamountError(Exception):
    """Fatal condition. Carries a single operator-facing message."""


class ProvisioningError(ParamountError):
    """Directory layout, export table, export reload or mounter launch failed."""


class VerificationError(ParamountError):
    """The live mount table disagrees with what this run created."""


class RunInterrupted(BaseException):
    """
    Raised out of the signal handler once teardown has been done.
    Derives from BaseException so no `except Exception` in the run swallows it.
    """

    def __init__(self, signum: int):
        super().__init__(f"interrupted by signal {signum}")
        self.signum = signum

    @property
    def exit_code(self) -> int:
        return 128 + self.signum
