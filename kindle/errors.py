"""
Error taxonomy for kindle.

Every error here is fatal to a bootstrap run. The CLI turns them into a
single descriptive log line and a non-zero exit code; no marker is ever
written after one of them is raised.
"""

from pathlib import Path
from typing import Optional, Union


class KindleError(Exception):
    """Base class for all kindle errors."""

    exit_code = 1


class ConfigError(KindleError):
    """Raised when a configuration value is missing or malformed."""

    pass


class MissingSecretError(KindleError):
    """A required secret file (or bundle key) does not exist."""

    def __init__(self, name: str, path: Union[str, Path], key: Optional[str] = None):
        self.name = name
        self.path = str(path)
        self.key = key
        if key:
            msg = f"Secret '{name}' ({self.path}) is missing required key {key}"
        else:
            msg = f"Secret '{name}' not found at {self.path}"
        super().__init__(msg)


class EmptySecretError(KindleError):
    """A required secret exists but is blank after trimming."""

    def __init__(self, name: str, path: Union[str, Path], key: Optional[str] = None):
        self.name = name
        self.path = str(path)
        self.key = key
        if key:
            msg = f"Secret '{name}' ({self.path}) has an empty value for {key}"
        else:
            msg = f"Secret '{name}' at {self.path} is empty"
        super().__init__(msg)


class ReadinessTimeoutError(KindleError):
    """A dependency did not become reachable before its deadline."""

    def __init__(self, target: str, timeout: float, attempts: int = 0):
        self.target = target
        self.timeout = timeout
        self.attempts = attempts
        super().__init__(
            f"{target} not reachable after {timeout:g}s ({attempts} attempts)"
        )


class PolicyViolationError(KindleError):
    """A value was rejected by a validation policy."""

    pass


class CommandError(KindleError):
    """An external tool exited with a non-zero status."""

    def __init__(self, argv, code: int, output: str = ""):
        self.argv = list(argv)
        self.code = code
        self.output = output
        msg = f"{self.argv[0]} failed with exit code {code}"
        tail = output.strip().splitlines()[-5:]
        if tail:
            msg += "\n" + "\n".join(f"  {line}" for line in tail)
        super().__init__(msg)


class InitializationStepError(KindleError):
    """
    Wraps the failure of one initialization step.

    Attributes:
        step_id: Identifier of the failing step (e.g. "exec:install-db")
        cause: The underlying exception
    """

    def __init__(self, step_id: str, cause: BaseException):
        self.step_id = step_id
        self.cause = cause
        super().__init__(f"Step {step_id} failed: {cause}")


class BootstrapInterrupted(KindleError):
    """The bootstrap process received a termination signal."""

    def __init__(self, signum: int):
        self.signum = signum
        self.exit_code = 128 + signum
        super().__init__(f"Interrupted by signal {signum}")
