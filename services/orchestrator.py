"""
Workflow Controller - sequences home reset, block detection, interactive
manipulation and pick and place, and decides whether to run another cycle.

Each remote completion is routed through a dispatch table keyed by the
current state and whether the step succeeded. Failures before pick and place
terminate the workflow; a pick and place failure only ends the cycle.
"""

import asyncio
from functools import partial
from typing import Dict, Any, Optional

from core.exceptions import OperationFailedError
from core.settings import WorkflowConfig
from core.state_manager import WorkflowStateMachine, WorkflowState
from domain.goals import WorkflowGoals
from .action_client import RemoteOperationClient
from .base import GoalStatus, OperationOutcome
from .home_reset import HomeResetClient
from utils.logger import get_logger


EXIT_OK = 0
EXIT_STEP_FAILED = 1

# Step name reported for the goal outstanding in each state
STEP_NAMES = {
    WorkflowState.DETECTING: "block_detection",
    WorkflowState.AWAITING_REFINEMENT: "interactive_manipulation",
    WorkflowState.PLACING_OBJECT: "pick_place",
}


class WorkflowController:
    """
    Owns the fixed sequence and the repeat/terminate decision.

    All methods run on the event loop thread. At most one remote goal is
    outstanding at any time, so completions never interleave.
    """

    # (state, succeeded) -> handler
    _OUTCOME_HANDLERS = {
        (WorkflowState.DETECTING, True): "_on_blocks_detected",
        (WorkflowState.DETECTING, False): "_on_step_failed",
        (WorkflowState.AWAITING_REFINEMENT, True): "_on_target_confirmed",
        (WorkflowState.AWAITING_REFINEMENT, False): "_on_step_failed",
        (WorkflowState.PLACING_OBJECT, True): "_on_pick_place_finished",
        (WorkflowState.PLACING_OBJECT, False): "_on_pick_place_finished",
    }

    def __init__(
        self,
        config: WorkflowConfig,
        goals: WorkflowGoals,
        home_client: HomeResetClient,
        block_detection_client: RemoteOperationClient,
        interactive_manipulation_client: RemoteOperationClient,
        pick_place_client: RemoteOperationClient,
        state_machine: Optional[WorkflowStateMachine] = None,
    ):
        self.config = config
        self.goals = goals
        self.home_client = home_client
        self.block_detection_client = block_detection_client
        self.interactive_manipulation_client = interactive_manipulation_client
        self.pick_place_client = pick_place_client
        self.state_machine = state_machine or WorkflowStateMachine()

        self.last_outcomes: Dict[str, OperationOutcome] = {}
        self.shutdown_reason: Optional[str] = None

        self._exit_code: Optional[int] = None
        self._finished: Optional[asyncio.Future] = None

        self.logger = get_logger("orchestrator")

    @property
    def state(self) -> WorkflowState:
        return self.state_machine.state

    @property
    def is_shut_down(self) -> bool:
        return self._exit_code is not None

    @property
    def exit_code(self) -> Optional[int]:
        return self._exit_code

    # Cycle steps

    def start(self) -> None:
        """Begin the first cycle. Must be called from the running event loop."""
        self.reset_arm()

    def reset_arm(self) -> None:
        """Blocking home reset, then hand over to the first asynchronous step"""
        if self.is_shut_down:
            return

        self.state_machine.transition(WorkflowState.RESETTING, reason="cycle start")
        self.logger.info("1. Resetting arm to home position")

        reset_ok = self.home_client.reset_home()
        if self.is_shut_down:
            return
        if not reset_ok:
            self.logger.error(
                f"Failed to call service {self.home_client.service_name}: "
                f"{self.home_client.last_error or self.home_client.last_response}"
            )
            self.state_machine.transition(WorkflowState.IDLE, reason="home reset failed")
            return

        if self.config.skip_perception:
            self.logger.info("1.1 Skipping perception, sending goal")
            self._send_goal(WorkflowState.PLACING_OBJECT, self.pick_place_client, self.goals.pick_place)
        else:
            self.logger.info("2. Detecting blocks")
            self._send_goal(WorkflowState.DETECTING, self.block_detection_client, self.goals.block_detection)

    def _send_goal(self, next_state: WorkflowState, client: RemoteOperationClient, goal) -> None:
        self.state_machine.transition(next_state, reason=f"submitting {STEP_NAMES[next_state]} goal")
        client.submit(goal, partial(self._handle_completion, next_state))

    def _handle_completion(self, state: WorkflowState, status: GoalStatus, result: Dict[str, Any]) -> None:
        """Continuation for every remote goal; routes on (state, succeeded)"""
        step = STEP_NAMES[state]
        if self.is_shut_down:
            self.logger.debug(f"Ignoring {step} completion ({status.value}) after shutdown")
            return
        if state != self.state:
            self.logger.warning(
                f"Ignoring stale {step} completion while in {self.state.value}"
            )
            return

        outcome = OperationOutcome.from_terminal(step, status, result)
        self.last_outcomes[step] = outcome

        handler = getattr(self, self._OUTCOME_HANDLERS[(state, outcome.succeeded)])
        handler(outcome)

    def _on_blocks_detected(self, outcome: OperationOutcome) -> None:
        self.logger.info("3. Detected blocks, adding interactive markers. Waiting for user input.")
        self._send_goal(
            WorkflowState.AWAITING_REFINEMENT,
            self.interactive_manipulation_client,
            self.goals.interactive_manipulation
        )

    def _on_target_confirmed(self, outcome: OperationOutcome) -> None:
        # The confirmed pose in outcome.result is not threaded into the goal
        self.logger.info("4. Interactive marker received, moving arm")
        self._send_goal(WorkflowState.PLACING_OBJECT, self.pick_place_client, self.goals.pick_place)

    def _on_step_failed(self, outcome: OperationOutcome) -> None:
        error = OperationFailedError(
            f"{outcome.step} did not succeed: {outcome.description}",
            step=outcome.step,
            status=outcome.status.value
        )
        self.logger.error(str(error))
        self.logger.debug(error.to_dict())
        self.shutdown(f"{outcome.step} failed", exit_code=EXIT_STEP_FAILED)

    def _on_pick_place_finished(self, outcome: OperationOutcome) -> None:
        if outcome.succeeded:
            self.logger.info("5. Pick and place commands successful")
        else:
            self.logger.error(f"6. Pick and place did not succeed: {outcome.description}")

        if self.config.once:
            self.shutdown("single cycle complete", exit_code=EXIT_OK)
            return

        self.state_machine.transition(WorkflowState.IDLE, reason="cycle complete")
        self.logger.info("Restarting demo ---------------------------------------------")
        asyncio.get_running_loop().call_soon(self.reset_arm)

    # Lifecycle

    def shutdown(self, reason: str, exit_code: int = EXIT_OK) -> bool:
        """
        Stop the workflow. Only the first call has any effect.

        Returns:
            bool: True if this call performed the shutdown
        """
        if self.is_shut_down:
            self.logger.debug(f"Shutdown already done ({self.shutdown_reason}); ignoring '{reason}'")
            return False

        self._exit_code = exit_code
        self.shutdown_reason = reason
        self.state_machine.transition(WorkflowState.FINISHED, reason=reason)
        self.logger.info(f"Shutting down: {reason}")

        if self._finished is not None and not self._finished.done():
            self._finished.set_result(exit_code)
        return True

    @property
    def finished(self) -> asyncio.Future:
        """Resolves with the exit code on shutdown; needs a running loop on first access"""
        if self._finished is None:
            self._finished = asyncio.get_running_loop().create_future()
            if self._exit_code is not None:
                self._finished.set_result(self._exit_code)
        return self._finished

    async def wait_finished(self) -> int:
        """Wait until the workflow shuts down and return its exit code"""
        return await self.finished

    def get_status(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "cycle": self.state_machine.cycle,
            "shut_down": self.is_shut_down,
            "shutdown_reason": self.shutdown_reason,
            "exit_code": self._exit_code,
            "last_outcomes": {step: o.to_dict() for step, o in self.last_outcomes.items()},
            "transitions": self.state_machine.get_statistics(),
        }
