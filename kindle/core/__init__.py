"""
Core kindle functionality.

Exports the step abstraction, bootstrap plans and the sequencer.
"""

from kindle.core.step import Action, BootstrapContext, BootstrapPlan, Plan, Step
from kindle.core.sequencer import BootstrapSequencer, SequenceResult, State

__all__ = [
    "Action",
    "Plan",
    "Step",
    "BootstrapContext",
    "BootstrapPlan",
    "BootstrapSequencer",
    "SequenceResult",
    "State",
]
