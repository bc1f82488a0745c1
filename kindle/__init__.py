__version__ = "0.1.0"

from kindle.core import BootstrapPlan, BootstrapSequencer, Plan, Action, Step
from kindle.secrets import Secret, SecretLoader
from kindle.probe import ReadinessProbe, TcpTarget, UnixSocketTarget, CommandTarget
from kindle.state import OnceGuard, FileMarkerStore, SqliteMarkerStore
from kindle.policy import validate_admin_identity
from kindle.logging import get_logger, get_kindle_logger, setup_logging

"""
Foundations of kindle:
    Step is one unit of bootstrap work, checked before it is applied.
    BootstrapPlan is the ordered bootstrap of one service.
    BootstrapSequencer runs a plan and hands off to the service's daemon.
    SecretLoader reads sensitive values from mounted files.
    ReadinessProbe waits, with a deadline, for a dependency to answer.
    OnceGuard makes sure one-time initialization is recorded only when it finished.
"""

__all__ = [
    "BootstrapPlan",
    "BootstrapSequencer",
    "Plan",
    "Action",
    "Step",
    "Secret",
    "SecretLoader",
    "ReadinessProbe",
    "TcpTarget",
    "UnixSocketTarget",
    "CommandTarget",
    "OnceGuard",
    "FileMarkerStore",
    "SqliteMarkerStore",
    "validate_admin_identity",
    "get_logger",
    "get_kindle_logger",
    "setup_logging",
]
