"""
Test doubles shared by the unit and integration tests.

FakeTransport keeps file operations real (use a tmp_path) and replaces the
external tools: commands are recorded and answered from scripted
responses, spawned processes are FakeProcess objects and exec_process
records the argv instead of replacing the test runner.
"""

from typing import Callable, List, Optional, Sequence, Tuple

import mysql.connector
from mysql.connector import errorcode

from kindle.transport import LocalTransport, Process


class FakeProcess(Process):
    """A background process that runs until terminated."""

    def __init__(self, argv: Sequence[str], pid: int = 4242, exit_code: Optional[int] = None,
                 ignores_sigterm: bool = False):
        self.argv = list(argv)
        self.pid = pid
        self.returncode = exit_code
        self.ignores_sigterm = ignores_sigterm
        self.terminated = False
        self.killed = False

    def poll(self) -> Optional[int]:
        return self.returncode

    def terminate(self) -> None:
        self.terminated = True
        if not self.ignores_sigterm:
            self.returncode = -15

    def kill(self) -> None:
        self.killed = True
        self.returncode = -9

    def wait(self, timeout: Optional[float] = None) -> int:
        if self.returncode is None:
            raise TimeoutError(f"process {self.pid} still running")
        return self.returncode


class FakeTransport(LocalTransport):
    """
    LocalTransport with scripted commands.

    Example:
        transport = FakeTransport()
        transport.respond(["wp", "core", "is-installed"], code=1)
        output, code = transport.run_command(["wp", "core", "is-installed", "--path=/x"])
        # ("", 1)
    """

    def __init__(self):
        self.commands: List[List[str]] = []
        self.inputs: List[Optional[str]] = []
        self.spawned: List[FakeProcess] = []
        self.exec_argv: Optional[List[str]] = None
        self.exec_error: Optional[OSError] = None
        self.process_factory: Callable[[Sequence[str]], FakeProcess] = FakeProcess
        self._responses: List[Tuple[List[str], str, int, Optional[Callable]]] = []

    def respond(self, prefix: Sequence[str], output: str = "", code: int = 0,
                effect: Optional[Callable[[List[str]], None]] = None) -> None:
        """Answer commands starting with prefix (latest registration wins)."""
        self._responses.insert(0, (list(prefix), output, code, effect))

    def run_command(self, args, input=None, timeout=None) -> Tuple[str, int]:
        argv = list(args)
        self.commands.append(argv)
        self.inputs.append(input)

        for prefix, output, code, effect in self._responses:
            if argv[:len(prefix)] == prefix:
                if effect:
                    effect(argv)
                return output, code
        return "", 0

    def ran(self, *prefix: str) -> List[List[str]]:
        """Commands that started with prefix, in order."""
        return [argv for argv in self.commands if argv[:len(prefix)] == list(prefix)]

    def input_for(self, *prefix: str) -> Optional[str]:
        for argv, stdin in zip(self.commands, self.inputs):
            if argv[:len(prefix)] == list(prefix):
                return stdin
        return None

    def spawn(self, args) -> Process:
        process = self.process_factory(args)
        self.spawned.append(process)
        return process

    def exec_process(self, args) -> None:
        if self.exec_error is not None:
            raise self.exec_error
        self.exec_argv = list(args)


class FakeCursor:
    def __init__(self, connection: "FakeConnection"):
        self.connection = connection
        self._rows: List[tuple] = []

    def execute(self, statement: str, params=None) -> None:
        self.connection.executed.append((statement, params))
        if statement.startswith("SELECT User, Host FROM mysql.user"):
            self._rows = [("", host) for host in self.connection.anonymous_hosts]
        else:
            self._rows = []

    def fetchall(self) -> List[tuple]:
        return list(self._rows)

    def close(self) -> None:
        pass


class FakeConnection:
    def __init__(self, anonymous_hosts: Sequence[str] = ()):
        self.executed: List[tuple] = []
        self.anonymous_hosts = list(anonymous_hosts)
        self.closed = False

    def cursor(self) -> FakeCursor:
        return FakeCursor(self)

    def close(self) -> None:
        self.closed = True


class FakeConnector:
    """
    Stand-in for mysql.connector.connect.

    Args:
        root_password: Password root currently has ("" for a fresh install)
    """

    def __init__(self, root_password: str = "", anonymous_hosts: Sequence[str] = ()):
        self.root_password = root_password
        self.anonymous_hosts = anonymous_hosts
        self.attempts: List[dict] = []
        self.connections: List[FakeConnection] = []

    def __call__(self, **params) -> FakeConnection:
        self.attempts.append(params)
        if params.get("password") != self.root_password:
            raise mysql.connector.Error(
                msg="Access denied for user 'root'@'localhost'",
                errno=errorcode.ER_ACCESS_DENIED_ERROR,
            )
        connection = FakeConnection(self.anonymous_hosts)
        self.connections.append(connection)
        return connection

    @property
    def executed(self) -> List[tuple]:
        return [item for connection in self.connections for item in connection.executed]
