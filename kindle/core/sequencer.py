"""
BootstrapSequencer - runs a BootstrapPlan and hands off to the daemon.

The sequencer:
1. Runs the idempotent prepare steps
2. Waits for every dependency (bounded, signal-aware)
3. Runs the initialization steps unless the plan's marker is already done
4. Writes the marker, only after every step succeeded
5. Replaces itself with the daemon (exec), so the daemon becomes PID 1
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from kindle.core.step import BootstrapContext, BootstrapPlan, Step
from kindle.errors import (
    BootstrapInterrupted,
    CommandError,
    EmptySecretError,
    InitializationStepError,
    MissingSecretError,
    PolicyViolationError,
    ReadinessTimeoutError,
)
from kindle.logging import get_kindle_logger
from kindle.probe import ReadinessProbe
from kindle.state import OnceGuard

logger = get_kindle_logger(__name__)

# Errors that already name their cause and are not wrapped per step
PASSTHROUGH_ERRORS = (
    MissingSecretError,
    EmptySecretError,
    PolicyViolationError,
    ReadinessTimeoutError,
    BootstrapInterrupted,
    InitializationStepError,
)


class State(Enum):
    """Sequencer states."""
    PENDING = "pending"
    PREPARING = "preparing"
    WAITING_ON_DEPENDENCY = "waiting_on_dependency"
    INITIALIZING = "initializing"
    MARKING_COMPLETE = "marking_complete"
    HANDING_OFF = "handing_off"
    RUNNING = "running"
    FAILED = "failed"


@dataclass
class SequenceResult:
    """
    Result of a bootstrap run.

    Contains the visited states and which steps ran or were skipped.
    """
    service: str
    transitions: List[State] = field(default_factory=list)
    steps_run: List[str] = field(default_factory=list)
    steps_skipped: List[str] = field(default_factory=list)
    already_initialized: bool = False
    marker_written: bool = False
    error: Optional[BaseException] = None
    duration: float = 0.0

    @property
    def state(self) -> State:
        return self.transitions[-1] if self.transitions else State.PENDING

    @property
    def success(self) -> bool:
        return self.error is None and self.state != State.FAILED


class BootstrapSequencer:
    """
    Runs one service's bootstrap plan.

    Example:
        sequencer = BootstrapSequencer(plan, context, guard)
        sequencer.run()          # does not return on success
        sequencer.run(handoff=False)  # stop after marking complete
    """

    def __init__(
        self,
        plan: BootstrapPlan,
        context: BootstrapContext,
        guard: Optional[OnceGuard] = None,
    ):
        """
        Initialize sequencer.

        Args:
            plan: The service's bootstrap plan
            context: Shared context bound to every step
            guard: OnceGuard for the plan's marker (required if plan.marker)
        """
        if plan.marker and guard is None:
            raise ValueError(f"Plan {plan.service} declares a marker but no OnceGuard was given")

        self.plan = plan
        self.context = context
        self.guard = guard
        if context.probe is None:
            context.probe = ReadinessProbe(
                interval=context.config.probe_interval,
                timeout=context.config.probe_timeout,
            )
        self.probe = context.probe
        self.result = SequenceResult(service=plan.service)

        for step in plan.all_steps():
            step.bind(context)

    @property
    def state(self) -> State:
        return self.result.state

    def _enter(self, state: State) -> None:
        self.result.transitions.append(state)
        logger.transition(self.plan.service, state.value)

    def run(self, handoff: bool = True) -> SequenceResult:
        """
        Run the plan.

        Args:
            handoff: exec the daemon at the end (False stops after marking)

        Returns:
            SequenceResult (only reached when handoff is False, or when the
            transport's exec_process returns, as test transports do)

        Raises:
            KindleError subclasses; the state is FAILED and no marker is written
        """
        start = time.time()

        try:
            with self.probe.interrupt_on_signals():
                self._enter(State.PREPARING)
                self._run_steps(self.plan.prepare)

                self._enter(State.WAITING_ON_DEPENDENCY)
                for target in self.plan.dependencies:
                    self.probe.require(target)

                if self.plan.marker and self.guard.is_done(self.plan.marker):
                    self.result.already_initialized = True
                    logger.info(
                        "%s already initialized (marker %s), skipping initialization",
                        self.plan.service,
                        self.plan.marker,
                    )
                else:
                    self._enter(State.INITIALIZING)
                    self._run_steps(self.plan.steps)

                    self._enter(State.MARKING_COMPLETE)
                    if self.plan.marker:
                        self.guard.mark_done(self.plan.marker)
                        self.result.marker_written = True
                    logger.success(f"{self.plan.service} initialized")
        except BaseException as e:
            self.result.error = e
            self._enter(State.FAILED)
            raise
        finally:
            self.result.duration = time.time() - start

        if handoff:
            self._handoff()

        return self.result

    def _run_steps(self, steps: List[Step]) -> None:
        for step in steps:
            try:
                plan = step.plan()
                if not plan.has_changes():
                    logger.skip(step.id, plan.reason or "nothing to do")
                    self.result.steps_skipped.append(step.id)
                    continue

                logger.step(step.id, "running")
                step_start = time.time()
                step.apply(plan)
                logger.step(step.id, "done", time.time() - step_start)
                self.result.steps_run.append(step.id)
            except PASSTHROUGH_ERRORS:
                raise
            except Exception as e:
                raise InitializationStepError(step.id, e) from e

    def _handoff(self) -> None:
        argv = self.plan.handoff
        self._enter(State.HANDING_OFF)
        logger.info("Starting %s: %s", self.plan.service, " ".join(argv))

        self._enter(State.RUNNING)
        try:
            self.context.transport.exec_process(argv)
        except OSError as e:
            error = CommandError(argv, 127, str(e))
            self.result.error = error
            self._enter(State.FAILED)
            raise error from e
