"""
Base transport interface.

Steps never call subprocess or os directly; they go through a Transport so
that tests can substitute the external tools (openssl, mysqld, wp-cli,
nginx) while keeping file operations real.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, NoReturn, Optional, Sequence, Tuple


class Process(ABC):
    """Handle on a background process started with Transport.spawn()."""

    pid: int

    @abstractmethod
    def poll(self) -> Optional[int]:
        """Return the exit code, or None while running."""
        pass

    @abstractmethod
    def terminate(self) -> None:
        pass

    @abstractmethod
    def kill(self) -> None:
        pass

    @abstractmethod
    def wait(self, timeout: Optional[float] = None) -> int:
        """
        Wait for exit.

        Raises:
            TimeoutError: If the process is still running after timeout
        """
        pass


class Transport(ABC):
    """
    Abstract base class for command running and file operations.

    Implementations:
    - LocalTransport: Run commands on this machine
    - NullTransport: Raise a helpful error on any use
    """

    @abstractmethod
    def run_command(
        self,
        args: Sequence[str],
        input: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Tuple[str, int]:
        """
        Run a command from a list of arguments (no shell).

        Args:
            args: Command and arguments
            input: Text fed to the command's standard input
            timeout: Seconds before the command is killed

        Returns:
            Tuple of (output, exit_code)

        Raises:
            TimeoutError: If the command outlives timeout

        Example:
            output, code = transport.run_command(["nginx", "-t"])
        """
        pass

    @abstractmethod
    def spawn(self, args: Sequence[str]) -> Process:
        """Start a background process."""
        pass

    @abstractmethod
    def exec_process(self, args: Sequence[str]) -> NoReturn:
        """
        Replace the current process image with args.

        On success this never returns; the new program keeps our PID.
        """
        pass

    @abstractmethod
    def read_file(self, path: str) -> bytes:
        """
        Read file content.

        Raises:
            FileNotFoundError: If file doesn't exist
        """
        pass

    @abstractmethod
    def write_file(self, path: str, content: bytes) -> None:
        pass

    @abstractmethod
    def file_exists(self, path: str) -> bool:
        pass

    @abstractmethod
    def remove_file(self, path: str) -> None:
        """Remove a file; missing files are ignored."""
        pass

    @abstractmethod
    def make_dirs(self, path: str, mode: Optional[int] = None) -> None:
        pass

    @abstractmethod
    def set_mode(self, path: str, mode: int) -> None:
        pass

    @abstractmethod
    def stat(self, path: str) -> Optional[Dict[str, Any]]:
        """
        Return {"type", "mode", "owner", "group"} for path, or None.
        """
        pass

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class NullTransport(Transport):
    """
    Null Object implementation of Transport.

    Used as the default transport for steps so they need no None checks;
    any call means the step was used outside a sequencer.
    """

    def _raise_error(self, method_name: str) -> NoReturn:
        raise RuntimeError(
            f"Cannot call {method_name}: Transport not initialized. "
            f"Steps must be run through a BootstrapSequencer."
        )

    def run_command(self, args, input=None, timeout=None) -> Tuple[str, int]:
        self._raise_error("run_command()")

    def spawn(self, args) -> Process:
        self._raise_error("spawn()")

    def exec_process(self, args) -> NoReturn:
        self._raise_error("exec_process()")

    def read_file(self, path: str) -> bytes:
        self._raise_error("read_file()")

    def write_file(self, path: str, content: bytes) -> None:
        self._raise_error("write_file()")

    def file_exists(self, path: str) -> bool:
        self._raise_error("file_exists()")

    def remove_file(self, path: str) -> None:
        self._raise_error("remove_file()")

    def make_dirs(self, path: str, mode: Optional[int] = None) -> None:
        self._raise_error("make_dirs()")

    def set_mode(self, path: str, mode: int) -> None:
        self._raise_error("set_mode()")

    def stat(self, path: str) -> Optional[Dict[str, Any]]:
        self._raise_error("stat()")
