"""
Local transport - run commands on this machine.
"""

import grp
import os
import pwd
import stat as stat_module
import subprocess
from pathlib import Path
from typing import Any, Dict, NoReturn, Optional, Sequence, Tuple

from kindle.transport.base import Process, Transport


class LocalProcess(Process):
    """Process handle backed by subprocess.Popen."""

    def __init__(self, popen: subprocess.Popen):
        self._popen = popen
        self.pid = popen.pid

    def poll(self) -> Optional[int]:
        return self._popen.poll()

    def terminate(self) -> None:
        self._popen.terminate()

    def kill(self) -> None:
        self._popen.kill()

    def wait(self, timeout: Optional[float] = None) -> int:
        try:
            return self._popen.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            raise TimeoutError(f"process {self.pid} still running after {timeout}s") from None


class LocalTransport(Transport):
    """
    Local transport for running commands on the local machine.

    Uses subprocess for command execution and os.execvp for hand-off.
    """

    def run_command(
        self,
        args: Sequence[str],
        input: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Tuple[str, int]:
        """
        Run command from list of arguments (no shell).

        Returns:
            Tuple of (output, exit_code)
        """
        try:
            result = subprocess.run(
                list(args),
                input=input,
                stdin=None if input is not None else subprocess.DEVNULL,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            raise TimeoutError(f"{args[0]} did not finish within {timeout}s") from None
        except FileNotFoundError:
            return f"{args[0]}: command not found", 127
        return result.stdout + result.stderr, result.returncode

    def spawn(self, args: Sequence[str]) -> Process:
        popen = subprocess.Popen(
            list(args),
            stdin=subprocess.DEVNULL,
        )
        return LocalProcess(popen)

    def exec_process(self, args: Sequence[str]) -> NoReturn:
        os.execvp(args[0], list(args))

    def read_file(self, path: str) -> bytes:
        return Path(path).read_bytes()

    def write_file(self, path: str, content: bytes) -> None:
        Path(path).write_bytes(content)

    def file_exists(self, path: str) -> bool:
        return Path(path).exists()

    def remove_file(self, path: str) -> None:
        Path(path).unlink(missing_ok=True)

    def make_dirs(self, path: str, mode: Optional[int] = None) -> None:
        Path(path).mkdir(parents=True, exist_ok=True)
        if mode is not None:
            os.chmod(path, mode)

    def set_mode(self, path: str, mode: int) -> None:
        os.chmod(path, mode)

    def stat(self, path: str) -> Optional[Dict[str, Any]]:
        try:
            st = os.stat(path)
        except FileNotFoundError:
            return None

        if stat_module.S_ISDIR(st.st_mode):
            file_type = "directory"
        elif stat_module.S_ISREG(st.st_mode):
            file_type = "file"
        else:
            file_type = "other"

        return {
            "type": file_type,
            "mode": stat_module.S_IMODE(st.st_mode),
            "owner": _user_name(st.st_uid),
            "group": _group_name(st.st_gid),
        }


def _user_name(uid: int) -> str:
    try:
        return pwd.getpwuid(uid).pw_name
    except KeyError:
        return str(uid)


def _group_name(gid: int) -> str:
    try:
        return grp.getgrgid(gid).gr_name
    except KeyError:
        return str(gid)
