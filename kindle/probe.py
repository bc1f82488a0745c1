"""
ReadinessProbe - wait for a dependency to become reachable.

Every wait has a finite deadline and sleeps on a threading.Event, so a
termination signal ends the wait at once instead of after the next sleep.

Example:
    probe = ReadinessProbe(interval=1.0, timeout=60)
    result = probe.wait_for(TcpTarget("mariadb", 3306))
    if result.ready:
        ...

    # Or raise ReadinessTimeoutError on timeout:
    probe.require(TcpTarget("mariadb", 3306))

    # As PID 1, let docker stop end the wait (BootstrapInterrupted):
    with probe.interrupt_on_signals():
        probe.require(TcpTarget("mariadb", 3306))
"""

import signal
import socket
import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence

from kindle.errors import BootstrapInterrupted, ReadinessTimeoutError
from kindle.logging import get_kindle_logger
from kindle.transport import NullTransport, Transport

logger = get_kindle_logger(__name__)

ON_TIMEOUT_POLICIES = ("abort", "proceed")
HANDLED_SIGNALS = (signal.SIGTERM, signal.SIGINT)


class ReadinessTarget(ABC):
    """
    A dependency endpoint to wait for.

    Args:
        timeout: Per-target deadline (default: the probe's)
        interval: Per-target poll interval (default: the probe's)
        on_timeout: "abort" (raise) or "proceed" (warn and continue)
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        interval: Optional[float] = None,
        on_timeout: str = "abort",
    ):
        if on_timeout not in ON_TIMEOUT_POLICIES:
            raise ValueError(f"on_timeout must be one of {ON_TIMEOUT_POLICIES}")
        self.timeout = timeout
        self.interval = interval
        self.on_timeout = on_timeout

    @abstractmethod
    def probe(self, attempt_timeout: float) -> bool:
        """Make one attempt; True when the dependency answered."""
        pass

    @abstractmethod
    def describe(self) -> str:
        pass

    def __str__(self):
        return self.describe()


class TcpTarget(ReadinessTarget):
    """A TCP host:port that must accept connections."""

    def __init__(self, host: str, port: int, **kwargs):
        super().__init__(**kwargs)
        self.host = host
        self.port = port

    def probe(self, attempt_timeout: float) -> bool:
        try:
            with socket.create_connection((self.host, self.port), timeout=attempt_timeout):
                return True
        except OSError:
            return False

    def describe(self) -> str:
        return f"tcp://{self.host}:{self.port}"


class UnixSocketTarget(ReadinessTarget):
    """A unix domain socket that must accept connections."""

    def __init__(self, path: str, **kwargs):
        super().__init__(**kwargs)
        self.path = path

    def probe(self, attempt_timeout: float) -> bool:
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(attempt_timeout)
        try:
            sock.connect(self.path)
            return True
        except OSError:
            return False
        finally:
            sock.close()

    def describe(self) -> str:
        return f"unix://{self.path}"


class CommandTarget(ReadinessTarget):
    """A command that must exit 0 (e.g. mysqladmin ping)."""

    def __init__(self, argv: Sequence[str], transport: Optional[Transport] = None, **kwargs):
        super().__init__(**kwargs)
        self.argv = list(argv)
        self.transport = transport or NullTransport()

    def probe(self, attempt_timeout: float) -> bool:
        try:
            _, code = self.transport.run_command(self.argv, timeout=attempt_timeout)
        except TimeoutError:
            return False
        return code == 0

    def describe(self) -> str:
        return f"command `{' '.join(self.argv)}`"


class ProbeStatus(Enum):
    READY = "ready"
    TIMED_OUT = "timed_out"


@dataclass
class ProbeResult:
    """Outcome of one wait."""
    target: str
    status: ProbeStatus
    elapsed: float
    attempts: int

    @property
    def ready(self) -> bool:
        return self.status == ProbeStatus.READY


class ReadinessProbe:
    """
    Polls readiness targets until they answer or a deadline passes.

    Args:
        interval: Seconds between attempts
        timeout: Default deadline in seconds (must be finite)
        cancel: Event that aborts any wait when set
        clock: Monotonic clock (injectable for tests)
    """

    def __init__(
        self,
        interval: float = 1.0,
        timeout: float = 60.0,
        cancel: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.interval = interval
        self.timeout = timeout
        self.cancel = cancel or threading.Event()
        self.clock = clock
        self.signum = 0

    def wait_for(
        self,
        target: ReadinessTarget,
        timeout: Optional[float] = None,
        interval: Optional[float] = None,
    ) -> ProbeResult:
        """
        Poll target until it is ready or the deadline passes.

        Returns:
            ProbeResult with READY or TIMED_OUT

        Raises:
            BootstrapInterrupted: If the cancel event is set while waiting
            ValueError: If no positive timeout/interval is available
        """
        timeout = _first(timeout, target.timeout, self.timeout)
        interval = _first(interval, target.interval, self.interval)
        if timeout is None or timeout <= 0:
            raise ValueError("a positive, finite timeout is required")
        if interval is None or interval <= 0:
            raise ValueError("a positive interval is required")

        start = self.clock()
        deadline = start + timeout
        attempts = 0

        while True:
            self._check_cancelled()

            remaining = deadline - self.clock()
            attempts += 1
            if target.probe(max(min(interval, remaining), 0.05)):
                return ProbeResult(str(target), ProbeStatus.READY, self.clock() - start, attempts)

            remaining = deadline - self.clock()
            if remaining <= 0:
                return ProbeResult(str(target), ProbeStatus.TIMED_OUT, self.clock() - start, attempts)

            logger.debug("%s not ready (attempt %d)", target, attempts)
            self._sleep(min(interval, remaining))

    def require(
        self,
        target: ReadinessTarget,
        timeout: Optional[float] = None,
        interval: Optional[float] = None,
    ) -> ProbeResult:
        """
        Wait for target and apply its timeout policy.

        Raises:
            ReadinessTimeoutError: On timeout when target.on_timeout is "abort"
        """
        logger.info("Waiting for %s", target)
        result = self.wait_for(target, timeout=timeout, interval=interval)

        if result.ready:
            logger.info("%s is ready (%.1fs)", target, result.elapsed)
            return result

        if target.on_timeout == "proceed":
            logger.warning(
                "%s not ready after %.0fs, proceeding anyway", target, result.elapsed
            )
            return result

        raise ReadinessTimeoutError(
            str(target), _first(timeout, target.timeout, self.timeout), result.attempts
        )

    @contextmanager
    def interrupt_on_signals(self, signals=HANDLED_SIGNALS):
        """
        Turn termination signals into BootstrapInterrupted while active.

        A wait in progress is cancelled and the handler raises, so the caller
        unwinds and exits with 128+signum. The previous handlers are restored
        on exit. Outside the main thread this does nothing.
        """
        if threading.current_thread() is not threading.main_thread():
            yield self
            return

        previous = {signum: signal.signal(signum, self._on_signal) for signum in signals}
        try:
            yield self
        finally:
            for signum, handler in previous.items():
                signal.signal(signum, handler)

    def _on_signal(self, signum, frame) -> None:
        self.signum = signum
        self.cancel.set()
        raise BootstrapInterrupted(signum)

    def _sleep(self, seconds: float) -> None:
        if self.cancel.wait(seconds):
            self._check_cancelled()

    def _check_cancelled(self) -> None:
        if self.cancel.is_set():
            raise BootstrapInterrupted(self.signum)


def _first(*values: Optional[float]) -> Optional[float]:
    for value in values:
        if value is not None:
            return value
    return None

