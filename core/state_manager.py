"""
Workflow state management for the block manipulation cycle.
Tracks the controller's position in the fixed sequence, validates every
transition and keeps a bounded history of transitions.
"""

import time
from enum import Enum
from typing import Dict, Optional, List, Any, Set
from dataclasses import dataclass, field
from collections import defaultdict

from .exceptions import StateTransitionError
from utils.logger import get_logger


class WorkflowState(Enum):
    """Position of the controller in the manipulation cycle"""
    IDLE = "idle"
    RESETTING = "resetting"
    DETECTING = "detecting"
    AWAITING_REFINEMENT = "awaiting_refinement"
    PLACING_OBJECT = "placing_object"
    FINISHED = "finished"


@dataclass
class StateTransition:
    """Represents a state transition event"""
    from_state: WorkflowState
    to_state: WorkflowState
    timestamp: float
    cycle: int
    reason: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class WorkflowStateMachine:
    """
    State holder for the workflow controller.

    Mutated only from the event loop thread, so no locking is done here.
    FINISHED is terminal; every other state may move to FINISHED when the
    process is shut down.
    """

    VALID_TRANSITIONS: Dict[WorkflowState, Set[WorkflowState]] = {
        WorkflowState.IDLE: {
            WorkflowState.RESETTING,
            WorkflowState.FINISHED
        },
        WorkflowState.RESETTING: {
            WorkflowState.DETECTING,
            WorkflowState.PLACING_OBJECT,  # perception skipped
            WorkflowState.IDLE,
            WorkflowState.FINISHED
        },
        WorkflowState.DETECTING: {
            WorkflowState.AWAITING_REFINEMENT,
            WorkflowState.FINISHED
        },
        WorkflowState.AWAITING_REFINEMENT: {
            WorkflowState.PLACING_OBJECT,
            WorkflowState.FINISHED
        },
        WorkflowState.PLACING_OBJECT: {
            WorkflowState.IDLE,
            WorkflowState.FINISHED
        },
        WorkflowState.FINISHED: set()
    }

    def __init__(self, max_history: int = 1000):
        self.max_history = max_history
        self._state = WorkflowState.IDLE
        self._cycle = 0
        self._history: List[StateTransition] = []
        self._stats = defaultdict(int)
        self.logger = get_logger("state_manager")

    @property
    def state(self) -> WorkflowState:
        return self._state

    @property
    def cycle(self) -> int:
        """Number of cycles started so far"""
        return self._cycle

    @property
    def is_finished(self) -> bool:
        return self._state == WorkflowState.FINISHED

    def is_valid_transition(self, from_state: WorkflowState, to_state: WorkflowState) -> bool:
        """Check if state transition is valid"""
        return to_state in self.VALID_TRANSITIONS.get(from_state, set())

    def transition(
        self,
        new_state: WorkflowState,
        reason: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> StateTransition:
        """
        Move to a new state.

        Entering RESETTING starts a new cycle.

        Raises:
            StateTransitionError: If the transition is not in the table
        """
        current_state = self._state
        if not self.is_valid_transition(current_state, new_state):
            raise StateTransitionError(
                f"Invalid workflow transition: {current_state.value} -> {new_state.value}",
                current_state=current_state.value,
                attempted_state=new_state.value
            )

        if new_state == WorkflowState.RESETTING:
            self._cycle += 1

        transition = StateTransition(
            from_state=current_state,
            to_state=new_state,
            timestamp=time.time(),
            cycle=self._cycle,
            reason=reason,
            metadata=metadata or {}
        )
        self._state = new_state

        self._history.append(transition)
        if len(self._history) > self.max_history:
            self._history.pop(0)

        self._stats[f"transition_{current_state.value}_to_{new_state.value}"] += 1
        self._stats["total_transitions"] += 1

        self.logger.debug(
            f"State transition: {current_state.value} -> {new_state.value} (cycle {self._cycle})"
            + (f" (reason: {reason})" if reason else "")
        )
        return transition

    def get_history(self, limit: int = 100) -> List[StateTransition]:
        """Most recent transitions, oldest first"""
        return self._history[-limit:]

    def get_statistics(self) -> Dict[str, Any]:
        """Get state machine statistics"""
        return {
            "state": self._state.value,
            "cycles": self._cycle,
            "total_transitions": self._stats.get("total_transitions", 0),
            "transition_counts": {
                k: v for k, v in self._stats.items()
                if k.startswith("transition_")
            },
            "history_length": len(self._history)
        }
