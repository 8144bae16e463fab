"""
Custom exception hierarchy for the block manipulation workflow.
Separates startup failures, rejected requests and failed goals so the
controller can decide between escalation and recovery.
"""

import time
from typing import Optional, Dict, Any
from enum import Enum


class ErrorSeverity(Enum):
    """Severity levels for workflow errors"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class WorkflowException(Exception):
    """
    Base exception for all workflow operations.

    Carries the remote service involved, error severity,
    and whether the current cycle can be retried.
    """

    def __init__(
        self,
        message: str,
        service_name: Optional[str] = None,
        recoverable: bool = True,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.service_name = service_name
        self.recoverable = recoverable
        self.severity = severity
        self.error_code = error_code
        self.context = context or {}
        self.timestamp = time.time()

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging"""
        return {
            "error_type": self.__class__.__name__,
            "message": str(self),
            "service_name": self.service_name,
            "recoverable": self.recoverable,
            "severity": self.severity.value,
            "error_code": self.error_code,
            "context": self.context,
            "timestamp": self.timestamp
        }


class ServiceUnavailableError(WorkflowException):
    """A remote service could not be reached"""

    def __init__(self, message: str, service_name: str, **kwargs):
        super().__init__(
            message,
            service_name=service_name,
            recoverable=False,
            severity=ErrorSeverity.CRITICAL,
            error_code=kwargs.pop("error_code", "SERVICE_UNAVAILABLE"),
            **kwargs
        )


class RemoteRejectedError(WorkflowException):
    """A blocking request was answered with a negative acknowledgement"""

    def __init__(self, message: str, service_name: str, response: Any = None, **kwargs):
        context = kwargs.get('context', {})
        if response is not None:
            context['response'] = str(response)
        kwargs['context'] = context

        super().__init__(
            message,
            service_name=service_name,
            recoverable=True,  # Only the current cycle is lost
            severity=ErrorSeverity.MEDIUM,
            error_code=kwargs.pop("error_code", "REMOTE_REJECTED"),
            **kwargs
        )


class OperationFailedError(WorkflowException):
    """An asynchronous goal reached a non-success terminal status"""

    def __init__(self, message: str, step: str, status: str, recoverable: bool = False, **kwargs):
        context = kwargs.get('context', {})
        context.update({
            'step': step,
            'status': status
        })
        kwargs['context'] = context

        super().__init__(
            message,
            recoverable=recoverable,
            severity=ErrorSeverity.MEDIUM if recoverable else ErrorSeverity.HIGH,
            error_code=kwargs.pop("error_code", "OPERATION_FAILED"),
            **kwargs
        )


class StateTransitionError(WorkflowException):
    """Invalid workflow state transition attempted"""

    def __init__(self, message: str, current_state: str, attempted_state: str, **kwargs):
        context = kwargs.get('context', {})
        context.update({
            'current_state': current_state,
            'attempted_state': attempted_state
        })
        kwargs['context'] = context

        super().__init__(
            message,
            recoverable=False,
            severity=ErrorSeverity.HIGH,
            error_code="INVALID_TRANSITION",
            **kwargs
        )


class ConfigurationError(WorkflowException):
    """Workflow configuration error"""

    def __init__(self, message: str, config_key: str = None, **kwargs):
        context = kwargs.get('context', {})
        if config_key:
            context['config_key'] = config_key
        kwargs['context'] = context

        super().__init__(
            message,
            recoverable=False,  # Config errors require a restart
            severity=ErrorSeverity.HIGH,
            error_code="CONFIGURATION_ERROR",
            **kwargs
        )


class ServiceNotReadyError(WorkflowException):
    """A goal was submitted before the server was confirmed reachable"""

    def __init__(self, message: str, service_name: str, **kwargs):
        super().__init__(
            message,
            service_name=service_name,
            recoverable=False,
            severity=ErrorSeverity.CRITICAL,
            error_code="SERVICE_NOT_READY",
            **kwargs
        )


class GoalInFlightError(WorkflowException):
    """A goal was submitted while another is still outstanding on the same client"""

    def __init__(self, message: str, service_name: str, goal_id: Optional[str] = None, **kwargs):
        context = kwargs.get('context', {})
        if goal_id:
            context['outstanding_goal_id'] = goal_id
        kwargs['context'] = context

        super().__init__(
            message,
            service_name=service_name,
            recoverable=False,
            severity=ErrorSeverity.CRITICAL,
            error_code="GOAL_IN_FLIGHT",
            **kwargs
        )
