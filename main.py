"""
Process entry point for the block manipulation workflow.

Loads the configuration, waits until every remote service is reachable,
runs the workflow controller and shuts everything down cleanly.
"""

import argparse
import asyncio
import signal
import sys
from typing import Optional, List

from pydantic import ValidationError

from core.exceptions import ConfigurationError
from core.settings import WorkflowConfig
from domain.goals import build_goals
from services.action_client import RemoteOperationClient
from services.home_reset import HomeResetClient
from services.orchestrator import WorkflowController, EXIT_OK, EXIT_STEP_FAILED
from utils.logger import get_logger, configure_logging

EXIT_BAD_CONFIG = 2

logger = get_logger("main")


def build_controller(config: WorkflowConfig) -> WorkflowController:
    """Create the goals, the four remote clients and the controller"""
    goals = build_goals(config)
    return WorkflowController(
        config=config,
        goals=goals,
        home_client=HomeResetClient.from_config(config),
        block_detection_client=RemoteOperationClient.from_config(config.block_detection_action, config),
        interactive_manipulation_client=RemoteOperationClient.from_config(
            config.interactive_manipulation_action, config
        ),
        pick_place_client=RemoteOperationClient.from_config(config.pick_place_action, config),
    )


async def _wait_unless_shut_down(controller: WorkflowController, waiter) -> bool:
    """Await a startup wait; return False if shutdown happened first"""
    wait_task = asyncio.ensure_future(waiter)
    done, _ = await asyncio.wait({wait_task, controller.finished}, return_when=asyncio.FIRST_COMPLETED)

    if wait_task in done:
        wait_task.result()
        return True

    wait_task.cancel()
    try:
        await wait_task
    except asyncio.CancelledError:
        pass
    return False


async def wait_for_services(controller: WorkflowController) -> bool:
    """Block until all four remote services are reachable, in a fixed order"""
    logger.info("Finished initializing, waiting for servers:")
    waits = [
        ("- Waiting for block detection server.", controller.block_detection_client.wait_for_server),
        ("- Waiting for interactive manipulation.", controller.interactive_manipulation_client.wait_for_server),
        ("- Waiting for pick and place server.", controller.pick_place_client.wait_for_server),
        ("- Waiting for send home service.", controller.home_client.wait_for_existence),
    ]
    for message, wait in waits:
        logger.info(message)
        if not await _wait_unless_shut_down(controller, wait()):
            return False
    return True


def _install_handlers(loop: asyncio.AbstractEventLoop, controller: WorkflowController) -> None:
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, controller.shutdown, f"received {sig.name}", EXIT_OK)
        except NotImplementedError:
            logger.warning(f"Signal handler for {sig.name} not supported on this platform")

    def handle_loop_exception(loop, context):
        exception = context.get("exception")
        logger.error(f"Unhandled error in workflow: {context.get('message')}", exc_info=exception)
        controller.shutdown("unhandled error", exit_code=EXIT_STEP_FAILED)

    loop.set_exception_handler(handle_loop_exception)


def _remove_handlers(loop: asyncio.AbstractEventLoop) -> None:
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.remove_signal_handler(sig)
        except NotImplementedError:
            pass
    loop.set_exception_handler(None)


async def run_workflow(config: WorkflowConfig, controller: Optional[WorkflowController] = None) -> int:
    """
    Run the workflow until it shuts down.

    Returns:
        int: Process exit code
    """
    controller = controller or build_controller(config)
    loop = asyncio.get_running_loop()
    _install_handlers(loop, controller)

    logger.info(f"Block size {config.block_size}")
    logger.info(f"Table height {config.table_height}")

    try:
        if await wait_for_services(controller):
            logger.info(" ")
            controller.start()
        return await controller.wait_finished()
    finally:
        for client in (
            controller.block_detection_client,
            controller.interactive_manipulation_client,
            controller.pick_place_client,
        ):
            await client.close()
        controller.home_client.close()
        _remove_handlers(loop)
        logger.info(f"Final status: {controller.get_status()}")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Reset, detect, confirm and pick-and-place blocks in a loop"
    )
    parser.add_argument("--once", action="store_true", default=None,
                        help="Stop after the first pick and place")
    parser.add_argument("--skip-perception", action="store_true", default=None,
                        help="Send the pick and place goal straight after the home reset")
    parser.add_argument("--server-url", default=None,
                        help="Base URL of the action gateway")
    parser.add_argument("--env-file", default=None,
                        help="Read parameters from this .env file")
    return parser.parse_args(argv)


def load_config(args: argparse.Namespace) -> WorkflowConfig:
    """
    Layer command-line values on top of the environment and .env file,
    then apply the configured log level.

    Raises:
        ConfigurationError: If any parameter fails validation
    """
    overrides = {
        key: value for key, value in {
            "once": args.once,
            "skip_perception": args.skip_perception,
            "server_url": args.server_url,
        }.items()
        if value is not None
    }
    if args.env_file:
        overrides["_env_file"] = args.env_file
    try:
        config = WorkflowConfig(**overrides)
    except ValidationError as e:
        first = e.errors()[0]
        raise ConfigurationError(
            f"Invalid configuration: {e}",
            config_key=".".join(str(part) for part in first["loc"]) or None
        ) from e

    configure_logging(config.log_level.value, production=config.is_production())
    return config


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        config = load_config(args)
    except ConfigurationError as e:
        logger.error(str(e))
        return EXIT_BAD_CONFIG

    exit_code = asyncio.run(run_workflow(config))
    logger.info(f"Workflow exited with code {exit_code}")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
