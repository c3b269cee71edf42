"""
Exception hierarchy for benchmark runs.

Configuration errors are raised before any container is touched. Acquisition
errors abort the current lifecycle stage and trigger the cleanup unwind.
Cancellation is kept distinct so callers can tell a user abort from a failure.

Copyright 2025 Advanced Micro Devices, Inc.
All rights reserved.
"""

from typing import List, Optional


class BenchError(Exception):
    """Base class for all composebench errors."""


class ConfigurationError(BenchError):
    """Invalid or unknown settings, raised before resources are acquired."""


class OutputExistsError(BenchError):
    """The output folder of a test run already exists."""

    def __init__(self, path):
        self.path = path
        super().__init__(f"output folder {str(path)!r} already exists")


class RunCancelled(BenchError):
    """The run context was cancelled while waiting."""

    def __init__(self, message: str = "run cancelled"):
        super().__init__(message)


class AcquisitionError(BenchError):
    """A resource needed by the run could not be acquired."""


class ControlPlaneError(AcquisitionError):
    """A docker / docker compose call failed."""


class ContainerStartError(AcquisitionError):
    """Containers of a composition failed to start."""


class ContainerDeadError(AcquisitionError):
    """A container reported a dead state while waiting for it to become ready."""

    def __init__(self, container: str):
        self.container = container
        super().__init__(f"container {container} is dead")


class HookError(AcquisitionError):
    """A lifecycle hook command exited with a non-zero status."""

    def __init__(self, hook: str, name: str, exit_code: int):
        self.hook = hook
        self.name = name
        self.exit_code = exit_code
        super().__init__(f"hook {hook!r} command {name!r} exited with code {exit_code}")


class CleanupError(BenchError):
    """Aggregate of every failure raised by cleanup actions."""

    def __init__(self, errors: List[BaseException]):
        self.errors = list(errors)
        super().__init__("; ".join(str(e) for e in self.errors))

    @classmethod
    def join(cls, errors: List[Optional[BaseException]]) -> Optional["CleanupError"]:
        """Return an aggregate of the non-None errors, or None if there are none."""
        collected = []
        for err in errors:
            if err is None:
                continue
            if isinstance(err, CleanupError):
                collected.extend(err.errors)
            else:
                collected.append(err)
        if not collected:
            return None
        return cls(collected)


class TestRunFailed(BenchError):
    """A test run of a batch failed; the batch stops at the first failure."""

    __test__ = False  # not a pytest test class

    def __init__(self, index: int, tool: str, cause: BaseException):
        self.index = index
        self.tool = tool
        self.cause = cause
        super().__init__(f"failed to run test {index} ({tool}): {cause}")
