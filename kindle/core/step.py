"""
Core step abstraction for kindle.

All bootstrap steps (CommandStep, EnsureDirectory, SelfSignedCertificate,
...) inherit from Step and implement the Check/Plan/Apply pattern:
1. Check: inspect current state
2. Plan: decide whether there is work left
3. Apply: do the work
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from kindle.transport import NullTransport, Transport

if TYPE_CHECKING:
    from kindle.config import KindleConfig
    from kindle.probe import ReadinessProbe, ReadinessTarget
    from kindle.secrets import SecretLoader


class Action(Enum):
    """What a step will do when applied."""
    NONE = "none"
    RUN = "run"


@dataclass
class Plan:
    """Execution plan for a single step."""
    action: Action
    reason: str = ""

    def has_changes(self) -> bool:
        return self.action != Action.NONE

    def __str__(self):
        if self.action == Action.NONE:
            return f"No changes ({self.reason})" if self.reason else "No changes"
        return f"Run: {self.reason}" if self.reason else "Run"


@dataclass
class BootstrapContext:
    """
    Everything a step may use, passed in explicitly.

    Attributes:
        config: Non-secret configuration
        secrets: Loader for mounted secret files
        transport: Process and file access
        probe: Readiness probe (shares the sequencer's cancel event)
    """
    config: "KindleConfig"
    secrets: "SecretLoader"
    transport: Transport = field(default_factory=NullTransport)
    probe: Optional["ReadinessProbe"] = None

    @property
    def command_timeout(self) -> float:
        return self.config.command_timeout


class Step(ABC):
    """
    Base class for all bootstrap steps.

    A step must either be naturally idempotent or report, from check(),
    that its work is already done.
    """

    def __init__(self, name: str, **options):
        """
        Initialize step.

        Args:
            name: Step identifier (e.g. "install-db", "/etc/nginx/ssl")
            **options: Step-specific options
        """
        self.name = name
        self.options = options
        self._actual_state: Dict[str, Any] = {}
        self._context: Optional[BootstrapContext] = None

    @property
    def id(self) -> str:
        """
        Unique step identifier.

        Format: step_type:name
        Example: dir:/run/mysqld, exec:install-db
        """
        return f"{self.step_type()}:{self.name}"

    @property
    def context(self) -> BootstrapContext:
        if self._context is None:
            raise RuntimeError(
                f"Step {self.id} is not bound to a context. "
                f"Add it to a BootstrapPlan and run it through a BootstrapSequencer."
            )
        return self._context

    @property
    def transport(self) -> Transport:
        return self.context.transport

    def bind(self, context: BootstrapContext) -> "Step":
        self._context = context
        return self

    @abstractmethod
    def step_type(self) -> str:
        """Return step type string (exec, dir, tls, ...)."""
        pass

    @abstractmethod
    def check(self) -> Dict[str, Any]:
        """
        Inspect current state.

        Returns:
            Dictionary of state; must contain "done" (bool)

        Example:
            {"done": False, "exists": False}
        """
        pass

    def plan(self) -> Plan:
        """Generate execution plan from check()."""
        self._actual_state = self.check()

        if self._actual_state.get("done"):
            return Plan(Action.NONE, self._actual_state.get("reason", "already done"))
        return Plan(Action.RUN, self._actual_state.get("reason", ""))

    @abstractmethod
    def apply(self, plan: Plan) -> None:
        """
        Do the work.

        Raises:
            Exception if the step fails
        """
        pass

    def __repr__(self):
        return f"{self.__class__.__name__}(name={self.name!r})"

    def __str__(self):
        return self.id


@dataclass
class BootstrapPlan:
    """
    Ordered bootstrap of one service.

    Attributes:
        service: Service name used in logs
        handoff: argv of the long-running daemon
        prepare: Idempotent steps run on every start
        dependencies: Targets to wait for before initializing
        marker: Marker id guarding `steps` (None: steps run on every start
            and must all be idempotent)
        steps: Initialization steps
    """
    service: str
    handoff: List[str]
    prepare: List[Step] = field(default_factory=list)
    dependencies: List["ReadinessTarget"] = field(default_factory=list)
    marker: Optional[str] = None
    steps: List[Step] = field(default_factory=list)

    def all_steps(self) -> List[Step]:
        return list(self.prepare) + list(self.steps)
