"""
MariaDB bootstrap steps.

InstallDataDirectory creates the system tables once. ProvisionDatabase
starts a temporary, network-less server, applies idempotent SQL through
mysql-connector-python and stops the server again. Passwords and user names
are bound parameters; database names are validated and backtick-quoted.
"""

import re
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import mysql.connector
from mysql.connector import errorcode

from kindle.core import Plan, Step
from kindle.errors import CommandError, ReadinessTimeoutError
from kindle.logging import get_kindle_logger
from kindle.probe import ReadinessProbe, UnixSocketTarget
from kindle.steps.command import CommandStep
from kindle.transport import Process, Transport

logger = get_kindle_logger(__name__)

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z0-9_$]{1,64}$")

Statement = Tuple[str, Optional[tuple]]


def quote_identifier(name: str) -> str:
    """
    Backtick-quote a database identifier.

    Raises:
        ValueError: If name has characters outside [A-Za-z0-9_$]
    """
    if not IDENTIFIER_PATTERN.match(name or ""):
        raise ValueError(f"Invalid database identifier: {name!r}")
    return f"`{name}`"


class InstallDataDirectory(CommandStep):
    """
    Run mysql_install_db unless the system tables already exist.

    Root is created without a password ("normal" authentication) so the
    provisioning step can connect over the socket and set one.
    """

    def __init__(self, datadir: str, user: str = "mysql", **options):
        super().__init__(
            "install-datadir",
            [
                "mysql_install_db",
                f"--user={user}",
                f"--datadir={datadir}",
                "--auth-root-authentication-method=normal",
            ],
            creates=f"{datadir.rstrip('/')}/mysql",
            **options,
        )
        self.datadir = datadir


class _ServerSocket(UnixSocketTarget):
    """Socket target that fails fast when the server process died."""

    def __init__(self, path: str, process: Process, argv: Sequence[str]):
        super().__init__(path)
        self.process = process
        self.argv = list(argv)

    def probe(self, attempt_timeout: float) -> bool:
        code = self.process.poll()
        if code is not None:
            raise CommandError(self.argv, code, "server exited during startup")
        return super().probe(attempt_timeout)


class TemporaryServer:
    """
    Context manager around a short-lived mysqld used for provisioning.

    Example:
        with TemporaryServer(transport, probe, argv, "/run/mysqld/mysqld.sock"):
            ...
    """

    def __init__(
        self,
        transport: Transport,
        probe: ReadinessProbe,
        argv: Sequence[str],
        socket_path: str,
        startup_timeout: float = 60.0,
        shutdown_timeout: float = 30.0,
    ):
        self.transport = transport
        self.probe = probe
        self.argv = list(argv)
        self.socket_path = socket_path
        self.startup_timeout = startup_timeout
        self.shutdown_timeout = shutdown_timeout
        self.process: Optional[Process] = None

    def __enter__(self) -> "TemporaryServer":
        logger.info("Starting temporary database server")
        self.process = self.transport.spawn(self.argv)

        try:
            target = _ServerSocket(self.socket_path, self.process, self.argv)
            result = self.probe.wait_for(target, timeout=self.startup_timeout)
            if not result.ready:
                raise ReadinessTimeoutError(str(target), self.startup_timeout, result.attempts)
        except BaseException:
            self.stop()
            raise

        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()

    def stop(self) -> None:
        if self.process is None or self.process.poll() is not None:
            return

        logger.info("Stopping temporary database server")
        self.process.terminate()
        try:
            self.process.wait(timeout=self.shutdown_timeout)
        except TimeoutError:
            logger.warning("Temporary server ignored SIGTERM, killing it")
            self.process.kill()
            self.process.wait(timeout=self.shutdown_timeout)


class ProvisionDatabase(Step):
    """
    Set the root password and create the application database and user.

    Every statement is safe to repeat, so a run interrupted halfway can
    simply start over.

    Example:
        ProvisionDatabase(datadir="/var/lib/mysql",
                          socket_path="/run/mysqld/mysqld.sock",
                          database="wordpress",
                          app_user="wpuser")
    """

    def __init__(
        self,
        datadir: str,
        socket_path: str,
        database: str,
        app_user: str,
        os_user: str = "mysql",
        root_secret: str = "db_root_password",
        app_secret: str = "db_password",
        connect: Optional[Callable[..., Any]] = None,
        **options,
    ):
        super().__init__("provision", **options)

        self.datadir = datadir
        self.socket_path = socket_path
        self.database = database
        self.app_user = app_user
        self.os_user = os_user
        self.root_secret = root_secret
        self.app_secret = app_secret
        self.connect = connect or mysql.connector.connect

    def step_type(self) -> str:
        return "sql"

    @property
    def server_argv(self) -> List[str]:
        return [
            "mysqld",
            f"--user={self.os_user}",
            f"--datadir={self.datadir}",
            "--skip-networking",
            f"--socket={self.socket_path}",
        ]

    def check(self) -> Dict[str, Any]:
        # Guarded by the plan's marker; the SQL itself is idempotent
        return {"done": False, "reason": "provision database and users"}

    def statements(self, root_password: str, app_password: str) -> List[Statement]:
        """SQL to run, in order, as (statement, params)."""
        db = quote_identifier(self.database)
        return [
            ("ALTER USER 'root'@'localhost' IDENTIFIED BY %s", (root_password,)),
            (f"CREATE DATABASE IF NOT EXISTS {db}", None),
            ("CREATE USER IF NOT EXISTS %s@%s IDENTIFIED BY %s",
             (self.app_user, "%", app_password)),
            # Keeps the password in sync when the secret was rotated
            ("ALTER USER %s@%s IDENTIFIED BY %s", (self.app_user, "%", app_password)),
            (f"GRANT ALL PRIVILEGES ON {db}.* TO %s@%s", (self.app_user, "%")),
            ("DROP DATABASE IF EXISTS `test`", None),
        ]

    def apply(self, plan: Plan) -> None:
        quote_identifier(self.database)

        # Fail on missing secrets before any server is started
        root_password = self.context.secrets.get(self.root_secret).reveal()
        app_password = self.context.secrets.get(self.app_secret).reveal()

        server = TemporaryServer(
            self.transport,
            self.context.probe,
            self.server_argv,
            self.socket_path,
            startup_timeout=self.context.config.probe_timeout,
        )
        with server:
            cnx = self._connect_root(root_password)
            try:
                cursor = cnx.cursor()
                for statement, params in self.statements(root_password, app_password):
                    cursor.execute(statement, params)
                self._drop_anonymous_users(cursor)
                cursor.execute("FLUSH PRIVILEGES")
                cursor.close()
            finally:
                cnx.close()

        logger.info("Database %s and user %s provisioned", self.database, self.app_user)

    def _connect_root(self, root_password: str):
        """
        Connect as root, with the password first.

        A fresh data directory has a passwordless root; a data directory
        whose provisioning was interrupted after ALTER USER already has the
        final password.
        """
        params = {"unix_socket": self.socket_path, "user": "root", "autocommit": True}
        try:
            return self.connect(password=root_password, **params)
        except mysql.connector.Error as err:
            if err.errno != errorcode.ER_ACCESS_DENIED_ERROR:
                raise
            logger.debug("Root password rejected, trying passwordless root")
        return self.connect(password="", **params)

    def _drop_anonymous_users(self, cursor) -> None:
        cursor.execute("SELECT User, Host FROM mysql.user WHERE User = ''")
        for _, host in cursor.fetchall():
            cursor.execute("DROP USER IF EXISTS ''@%s", (host,))
