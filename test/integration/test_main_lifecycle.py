"""
Integration tests for the process lifecycle.
Covers startup ordering, shutdown during startup, exit codes and
configuration loading from the command line.
"""
import asyncio
import logging

import pytest

import main
from core.exceptions import ConfigurationError
from services.base import GoalStatus
from services.orchestrator import EXIT_OK, EXIT_STEP_FAILED

WAITS = ["wait:Detection", "wait:InteractiveRefinement", "wait:PickAndPlace", "wait:HomeReset"]


@pytest.mark.integration
class TestRunWorkflow:
    """Tests for run_workflow with simulated services."""

    @pytest.mark.asyncio
    async def test_waits_for_all_services_before_first_cycle(self, workflow_config, make_controller, call_trace):
        controller, sims = make_controller(workflow_config)

        exit_code = await asyncio.wait_for(main.run_workflow(workflow_config, controller), timeout=2.0)

        assert exit_code == EXIT_OK
        assert call_trace == WAITS + ["HomeReset", "Detection", "InteractiveRefinement", "PickAndPlace"]

    @pytest.mark.asyncio
    async def test_clients_closed_on_exit(self, workflow_config, make_controller):
        controller, sims = make_controller(workflow_config)

        await asyncio.wait_for(main.run_workflow(workflow_config, controller), timeout=2.0)

        assert all(sim.closed for sim in sims.values())

    @pytest.mark.asyncio
    async def test_final_status_logged(self, workflow_config, make_controller, caplog):
        controller, _ = make_controller(workflow_config)
        caplog.set_level(logging.INFO, logger="main")

        await asyncio.wait_for(main.run_workflow(workflow_config, controller), timeout=2.0)

        assert "Final status" in caplog.text
        assert "single cycle complete" in caplog.text

    @pytest.mark.asyncio
    async def test_detection_failure_exit_code(self, workflow_config, make_controller, call_trace):
        controller, _ = make_controller(workflow_config, detection=[GoalStatus.ABORTED])

        exit_code = await asyncio.wait_for(main.run_workflow(workflow_config, controller), timeout=2.0)

        assert exit_code == EXIT_STEP_FAILED
        assert call_trace == WAITS + ["HomeReset", "Detection"]

    @pytest.mark.asyncio
    async def test_shutdown_while_waiting_for_services(self, workflow_config, make_controller, call_trace):
        controller, sims = make_controller(workflow_config)

        async def never_ready(timeout=None):
            call_trace.record("wait:Detection")
            await asyncio.Event().wait()

        sims["Detection"].wait_for_server = never_ready
        asyncio.get_running_loop().call_later(0.05, controller.shutdown, "received SIGTERM")

        exit_code = await asyncio.wait_for(main.run_workflow(workflow_config, controller), timeout=2.0)

        assert exit_code == EXIT_OK
        assert call_trace == ["wait:Detection"]
        assert "HomeReset" not in call_trace.calls

    @pytest.mark.asyncio
    async def test_unhandled_callback_error_shuts_down(self, workflow_config, make_controller, call_trace):
        """A programming error in a continuation ends the run with a failure code."""
        controller, sims = make_controller(workflow_config)
        sims["PickAndPlace"].ready = False

        exit_code = await asyncio.wait_for(main.run_workflow(workflow_config, controller), timeout=2.0)

        assert exit_code == EXIT_STEP_FAILED
        assert controller.shutdown_reason == "unhandled error"
        assert "PickAndPlace" not in call_trace.calls


@pytest.mark.unit
class TestConfigLoading:
    """Tests for command-line configuration."""

    def test_cli_overrides(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        args = main.parse_args(["--once", "--skip-perception", "--server-url", "http://gateway:9090/"])

        config = main.load_config(args)

        assert config.once is True
        assert config.skip_perception is True
        assert config.server_url == "http://gateway:9090"

    def test_env_file(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        env_file = tmp_path / "workflow.env"
        env_file.write_text("BLOCK_MANIPULATION_BLOCK_SIZE=0.05\nBLOCK_MANIPULATION_ARM_LINK=/arm_base\n")

        config = main.load_config(main.parse_args(["--env-file", str(env_file)]))

        assert config.block_size == 0.05
        assert config.arm_link == "/arm_base"
        assert config.once is False

    def test_invalid_configuration_exit_code(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("BLOCK_MANIPULATION_BLOCK_SIZE", "-0.03")

        assert main.main([]) == main.EXIT_BAD_CONFIG

    def test_invalid_configuration_names_parameter(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("BLOCK_MANIPULATION_BLOCK_SIZE", "-0.03")

        with pytest.raises(ConfigurationError) as exc_info:
            main.load_config(main.parse_args([]))

        assert exc_info.value.context["config_key"] == "block_size"
        assert exc_info.value.recoverable is False

    def test_unordered_geometry_accepted(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("BLOCK_MANIPULATION_Z_UP", "0.01")
        monkeypatch.setenv("BLOCK_MANIPULATION_TABLE_HEIGHT", "0.02")

        config = main.load_config(main.parse_args([]))

        assert config.z_up == 0.01
        assert config.table_height == 0.02

    def test_log_level_from_env_file(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("BLOCK_MANIPULATION_LOG_LEVEL", raising=False)
        env_file = tmp_path / "workflow.env"
        env_file.write_text("BLOCK_MANIPULATION_LOG_LEVEL=warning\n")

        main.load_config(main.parse_args(["--env-file", str(env_file)]))

        main_logger = logging.getLogger("main")
        assert main_logger.handlers
        assert all(h.level == logging.WARNING for h in main_logger.handlers)

    def test_production_environment_logs_errors_only(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("BLOCK_MANIPULATION_ENVIRONMENT", "production")

        config = main.load_config(main.parse_args([]))

        assert config.is_production()
        assert logging.getLogger("main").level == logging.ERROR
