"""
Shared result types for the remote operation clients.
Terminal goal statuses and the tagged outcome handed to the controller.
"""

import time
from enum import Enum
from typing import Dict, Any, Optional
from dataclasses import dataclass, field


class GoalStatus(Enum):
    """Status of a goal as reported by a remote action server"""
    PENDING = "pending"
    ACTIVE = "active"
    SUCCEEDED = "succeeded"
    ABORTED = "aborted"
    REJECTED = "rejected"
    PREEMPTED = "preempted"
    RECALLED = "recalled"
    LOST = "lost"

    @property
    def is_terminal(self) -> bool:
        return self not in {GoalStatus.PENDING, GoalStatus.ACTIVE}

    @classmethod
    def parse(cls, value: Optional[str]) -> 'GoalStatus':
        """Map a wire status to a GoalStatus; anything unknown is LOST"""
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.LOST


@dataclass(frozen=True)
class OperationOutcome:
    """
    Result of one remote operation: Succeeded(result) or Failed(description).

    Every non-success terminal status is treated the same way.
    """
    step: str
    status: GoalStatus
    result: Dict[str, Any] = field(default_factory=dict)
    description: Optional[str] = None
    completed_at: float = field(default_factory=time.time)

    @property
    def succeeded(self) -> bool:
        return self.status == GoalStatus.SUCCEEDED

    @classmethod
    def from_terminal(
        cls,
        step: str,
        status: GoalStatus,
        result: Optional[Dict[str, Any]] = None
    ) -> 'OperationOutcome':
        """
        Build the outcome for a goal that reached a terminal status.

        Failures are described by the status name, followed by the server's
        "text" entry from the result when there is one.
        """
        result = result or {}
        if status == GoalStatus.SUCCEEDED:
            return cls(step=step, status=status, result=result)
        description = status.value.upper()
        if result.get("text"):
            description = f"{description}: {result['text']}"
        return cls(step=step, status=status, result=result, description=description)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step,
            "status": self.status.value,
            "succeeded": self.succeeded,
            "description": self.description,
            "result": self.result,
            "completed_at": self.completed_at,
        }
