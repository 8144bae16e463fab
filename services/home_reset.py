"""
Home reset client - blocking request/response call that sends the arm to
its home configuration.
"""

import asyncio
from typing import Optional, Dict, Any

import requests

from core.exceptions import RemoteRejectedError, ServiceUnavailableError
from utils.logger import get_logger


class HomeResetClient:
    """
    Client for the send-home service.

    reset_home() suspends the calling thread until the service answers.
    Every failure is reported through the return value, never raised.
    """

    def __init__(
        self,
        service_name: str,
        server_url: str,
        request_timeout: float = 10.0,
        server_wait_interval: float = 1.0,
        session: Optional[requests.Session] = None,
    ):
        self.service_name = service_name
        self.url = f"{server_url.rstrip('/')}/services/{service_name.strip('/')}"
        self.request_timeout = request_timeout
        self.server_wait_interval = server_wait_interval
        self.request: Dict[str, Any] = {"sendHome": True}

        self._session = session or requests.Session()
        self.last_response: Optional[Dict[str, Any]] = None
        self.last_error: Optional[RemoteRejectedError] = None

        self.logger = get_logger("home_reset")

    @classmethod
    def from_config(cls, config, session: Optional[requests.Session] = None) -> 'HomeResetClient':
        return cls(
            config.send_home_service,
            server_url=config.server_url,
            request_timeout=config.request_timeout,
            server_wait_interval=config.server_wait_interval,
            session=session,
        )

    def exists(self) -> bool:
        """Single existence probe"""
        try:
            response = self._session.get(self.url, timeout=self.request_timeout)
            return response.status_code < 400
        except requests.RequestException as e:
            self.logger.debug(f"Service {self.service_name} not available: {e}")
            return False

    async def wait_for_existence(self, timeout: Optional[float] = None) -> None:
        """
        Wait until the service exists. Waits forever when timeout is None.

        The probe runs in a worker thread so the event loop keeps
        handling signals meanwhile.
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout

        while not await asyncio.to_thread(self.exists):
            if deadline is not None and loop.time() >= deadline:
                raise ServiceUnavailableError(
                    f"Service {self.service_name} not available after {timeout}s",
                    service_name=self.service_name
                )
            await asyncio.sleep(self.server_wait_interval)

    def reset_home(self) -> bool:
        """
        Ask the arm to go home and wait for the acknowledgement.

        Returns:
            bool: True only on an acknowledged success
        """
        self.last_response = None
        self.last_error = None
        try:
            response = self._session.post(self.url, json=self.request, timeout=self.request_timeout)
        except requests.RequestException as e:
            self.last_error = RemoteRejectedError(
                f"Failed to call service {self.service_name}: {e}",
                service_name=self.service_name,
                error_code="SERVICE_CALL_FAILED"
            )
            self.logger.debug(self.last_error.to_dict())
            return False

        try:
            body = response.json()
        except ValueError:
            body = {"raw": response.text}
        self.last_response = body

        if response.status_code >= 400:
            self.last_error = RemoteRejectedError(
                f"Service {self.service_name} answered {response.status_code}",
                service_name=self.service_name,
                response=body
            )
            return False

        if not isinstance(body, dict) or body.get("success") is not True:
            self.last_error = RemoteRejectedError(
                f"Service {self.service_name} did not acknowledge the reset",
                service_name=self.service_name,
                response=body
            )
            return False

        return True

    def close(self) -> None:
        self._session.close()
