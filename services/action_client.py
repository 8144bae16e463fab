"""
Remote operation client - submits goals to an action server over HTTP and
reports the terminal status back through a one-shot completion callback.

One client instance talks to one named action. The same class serves block
detection, interactive manipulation and pick and place; only the goal type
differs.
"""

import asyncio
from typing import Dict, Any, Optional, Callable, Generic, TypeVar, Protocol

import aiohttp

from core.exceptions import ServiceUnavailableError, ServiceNotReadyError, GoalInFlightError
from .base import GoalStatus
from utils.logger import get_logger


class Goal(Protocol):
    def to_payload(self) -> Dict[str, Any]: ...


G = TypeVar('G', bound=Goal)

CompletionCallback = Callable[[GoalStatus, Dict[str, Any]], None]


class RemoteOperationClient(Generic[G]):
    """
    Non-blocking client for a single remote action.

    submit() returns immediately; a background task posts the goal, polls its
    status and schedules the callback on the event loop once the goal is
    terminal. At most one goal may be outstanding at a time.
    """

    def __init__(
        self,
        action_name: str,
        server_url: str,
        request_timeout: float = 10.0,
        poll_interval: float = 0.5,
        server_wait_interval: float = 1.0,
        max_poll_failures: int = 5,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.action_name = action_name
        self.base_url = f"{server_url.rstrip('/')}/actions/{action_name.strip('/')}"
        self.request_timeout = request_timeout
        self.poll_interval = poll_interval
        self.server_wait_interval = server_wait_interval
        self.max_poll_failures = max_poll_failures

        self._session = session
        self._owns_session = session is None
        self._server_ready = False

        # Outstanding goal tracking
        self._goal_task: Optional[asyncio.Task] = None
        self._goal_id: Optional[str] = None

        self.logger = get_logger("action_client")

    @classmethod
    def from_config(cls, action_name: str, config, session: Optional[aiohttp.ClientSession] = None):
        """Build a client for one action from the workflow configuration"""
        return cls(action_name, session=session, **config.get_server_config())

    @property
    def is_server_ready(self) -> bool:
        return self._server_ready

    @property
    def has_outstanding_goal(self) -> bool:
        return self._goal_task is not None and not self._goal_task.done()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.request_timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self._session

    async def is_server_connected(self) -> bool:
        """Single reachability probe"""
        try:
            async with self._get_session().get(self.base_url) as response:
                return response.status < 400
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.debug(f"Action server '{self.action_name}' not reachable: {e}")
            return False

    async def wait_for_server(self, timeout: Optional[float] = None) -> None:
        """
        Block until the action server answers.

        Waits forever when timeout is None.

        Raises:
            ServiceUnavailableError: If the timeout expires first
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout

        while not await self.is_server_connected():
            if deadline is not None and loop.time() >= deadline:
                raise ServiceUnavailableError(
                    f"Action server '{self.action_name}' not reachable after {timeout}s",
                    service_name=self.action_name
                )
            await asyncio.sleep(self.server_wait_interval)

        self._server_ready = True
        self.logger.debug(f"Action server '{self.action_name}' is up at {self.base_url}")

    def submit(self, goal: G, on_complete: CompletionCallback) -> None:
        """
        Hand a goal to the action server without waiting for it.

        on_complete(status, result) fires exactly once, on the event loop,
        when the goal reaches a terminal status.

        Raises:
            ServiceNotReadyError: If wait_for_server() has not succeeded yet
            GoalInFlightError: If a previous goal is still outstanding
        """
        if not self._server_ready:
            raise ServiceNotReadyError(
                f"Goal submitted to '{self.action_name}' before the server was confirmed",
                service_name=self.action_name
            )
        if self.has_outstanding_goal:
            raise GoalInFlightError(
                f"Action '{self.action_name}' already has an outstanding goal",
                service_name=self.action_name,
                goal_id=self._goal_id
            )

        self._goal_id = None
        self._goal_task = asyncio.create_task(
            self._run_goal(goal.to_payload(), on_complete),
            name=f"goal-{self.action_name}"
        )

    async def _run_goal(self, payload: Dict[str, Any], on_complete: CompletionCallback) -> None:
        try:
            status, result = await self._execute_goal(payload)
        except Exception as e:
            self.logger.exception(f"Goal on '{self.action_name}' failed unexpectedly")
            status, result = GoalStatus.LOST, {"text": f"goal monitoring failed: {e}"}
        if status != GoalStatus.SUCCEEDED:
            self.logger.debug(f"Goal on '{self.action_name}' finished with {status.value}: {result}")
        asyncio.get_running_loop().call_soon(on_complete, status, result)

    async def _execute_goal(self, payload: Dict[str, Any]):
        """Post the goal and follow it to a terminal status"""
        try:
            async with self._get_session().post(f"{self.base_url}/goals", json=payload) as response:
                if response.status >= 400:
                    error_text = await response.text()
                    self.logger.error(
                        f"Action server '{self.action_name}' refused goal: {response.status} - {error_text}"
                    )
                    return GoalStatus.REJECTED, {"text": f"HTTP {response.status}: {error_text}"}
                body = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            self.logger.error(f"Could not send goal to '{self.action_name}': {e}")
            return GoalStatus.LOST, {"text": f"goal not delivered: {e}"}

        if not isinstance(body, dict) or not body.get("goal_id"):
            self.logger.error(f"Action server '{self.action_name}' returned no goal id: {body}")
            return GoalStatus.LOST, {"text": "goal accepted without a goal id"}

        self._goal_id = str(body["goal_id"])
        self.logger.debug(f"Goal {self._goal_id} accepted by '{self.action_name}'")
        return await self._monitor_goal(self._goal_id)

    async def _monitor_goal(self, goal_id: str):
        """Poll the goal status until it is terminal"""
        consecutive_failures = 0
        status_url = f"{self.base_url}/goals/{goal_id}"

        while True:
            await asyncio.sleep(self.poll_interval)
            try:
                async with self._get_session().get(status_url) as response:
                    if response.status >= 400:
                        raise aiohttp.ClientResponseError(
                            response.request_info,
                            response.history,
                            status=response.status,
                            message=await response.text()
                        )
                    body = await response.json()
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
                consecutive_failures += 1
                self.logger.warning(
                    f"Status poll for goal {goal_id} on '{self.action_name}' failed "
                    f"({consecutive_failures}/{self.max_poll_failures}): {e}"
                )
                if consecutive_failures >= self.max_poll_failures:
                    return GoalStatus.LOST, {"text": f"lost contact with action server: {e}"}
                continue

            consecutive_failures = 0
            if not isinstance(body, dict):
                return GoalStatus.LOST, {"text": f"malformed status for goal {goal_id}"}
            status = GoalStatus.parse(body.get("status"))
            if status.is_terminal:
                payload = body.get("result")
                if payload is None:
                    result = {}
                elif isinstance(payload, dict):
                    result = dict(payload)
                else:
                    # e.g. a bare list of detected poses
                    result = {"result": payload}
                if body.get("text"):
                    result.setdefault("text", body["text"])
                return status, result

    async def cancel(self) -> None:
        """Stop following the outstanding goal; its callback will not fire"""
        if self.has_outstanding_goal:
            self.logger.warning(f"Abandoning goal {self._goal_id} on '{self.action_name}'")
            self._goal_task.cancel()
            try:
                await self._goal_task
            except asyncio.CancelledError:
                pass
        self._goal_task = None

    async def close(self) -> None:
        """Cancel anything in flight and release the HTTP session"""
        await self.cancel()
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
