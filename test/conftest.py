"""
Root conftest with shared fixtures for all test modules.
"""
import os
import sys
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path

import pytest

# Ensure the project root and the test directory are importable
project_path = Path(__file__).parent.parent
test_path = Path(__file__).parent
for path in (project_path, test_path):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

# Keep test log files out of the working tree
os.environ.setdefault("BLOCK_MANIPULATION_LOG_DIR", tempfile.mkdtemp(prefix="block_manipulation_logs_"))

from aiohttp.test_utils import TestServer

from core.settings import WorkflowConfig
from domain.goals import build_goals
from services.orchestrator import WorkflowController
from fixtures.workflow_simulators import CallTrace, HomeServiceSimulator, ActionServerSimulator
from fakes.fake_action_gateway import FakeActionGateway
from utils.logger import configure_logging


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Fast unit tests (no external deps)")
    config.addinivalue_line("markers", "integration: Full workflow cycles against simulators")
    config.addinivalue_line("markers", "edge_case: Error handling and shutdown tests")


# ===== Configuration Fixtures =====
@pytest.fixture(autouse=True)
def restore_log_levels():
    """Undo any log level applied from a loaded configuration."""
    yield
    configure_logging()


@pytest.fixture
def make_config():
    """Build a WorkflowConfig that ignores any .env file in the working directory."""
    def _make(**overrides):
        return WorkflowConfig(_env_file=None, **overrides)
    return _make


@pytest.fixture
def workflow_config(make_config):
    """Default configuration from the reference scenario."""
    return make_config(arm_link="/base_link", block_size=0.03, once=True)


# ===== Simulator Fixtures =====
@pytest.fixture
def call_trace():
    """Shared call trace for one test."""
    return CallTrace()


@pytest.fixture
def make_controller(call_trace):
    """
    Factory for a controller wired to simulators.

    Returns (controller, simulators) where simulators is a dict keyed by
    HomeReset, Detection, InteractiveRefinement and PickAndPlace.
    """
    def _make(config, home_results=None, detection=None, refinement=None, pick_place=None, hold=False):
        simulators = {
            "HomeReset": HomeServiceSimulator(call_trace, results=home_results),
            "Detection": ActionServerSimulator(call_trace, "Detection", statuses=detection,
                                               result={"blocks": [{"x": 0.1, "y": 0.0}]}),
            "InteractiveRefinement": ActionServerSimulator(call_trace, "InteractiveRefinement",
                                                           statuses=refinement,
                                                           result={"pose": {"x": 0.2, "y": 0.05}}),
            "PickAndPlace": ActionServerSimulator(call_trace, "PickAndPlace", statuses=pick_place, hold=hold),
        }
        controller = WorkflowController(
            config=config,
            goals=build_goals(config),
            home_client=simulators["HomeReset"],
            block_detection_client=simulators["Detection"],
            interactive_manipulation_client=simulators["InteractiveRefinement"],
            pick_place_client=simulators["PickAndPlace"],
        )
        return controller, simulators
    return _make


# ===== HTTP Gateway Fixtures =====
@pytest.fixture
def gateway():
    """Fresh fake action gateway for each test."""
    return FakeActionGateway()


@pytest.fixture
def running_gateway(gateway):
    """Async context manager serving the gateway; yields its base URL."""
    @asynccontextmanager
    async def _run():
        server = TestServer(gateway.make_app())
        await server.start_server()
        try:
            yield str(server.make_url("/")).rstrip("/")
        finally:
            await server.close()
    return _run

