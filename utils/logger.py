"""
Logging configuration module.

Loggers pick up their level from the environment when first created;
configure_logging() re-applies the level from the loaded WorkflowConfig so
values from a .env file or the command line take effect too.
"""
import logging
import sys
from datetime import datetime
import os
from logging.handlers import RotatingFileHandler
from typing import Optional, Set, Tuple

_LEVELS = {
    'DEBUG': logging.DEBUG,
    'INFO': logging.INFO,
    'WARNING': logging.WARNING,
    'ERROR': logging.ERROR,
    'CRITICAL': logging.CRITICAL,
}

# Set by configure_logging(); None means "read the environment"
_configured_level: Optional[str] = None
_configured_production: Optional[bool] = None

# Names of loggers created through get_logger()
_workflow_loggers: Set[str] = set()


def _resolve_levels() -> Tuple[int, int]:
    """Return (logger level, handler level) for the current settings"""
    if _configured_production is not None:
        is_production = _configured_production
    else:
        is_production = os.getenv('BLOCK_MANIPULATION_ENVIRONMENT', 'development').lower() == 'production'
    if is_production:
        return logging.ERROR, logging.ERROR

    level_name = _configured_level or os.getenv('BLOCK_MANIPULATION_LOG_LEVEL', 'INFO')
    return logging.DEBUG, _LEVELS.get(level_name.upper(), logging.INFO)


def get_logger(name: str) -> logging.Logger:
    """
    Create and configure a logger instance with component-specific organization.

    Args:
        name (str): Name of the logger (e.g., "orchestrator", "action_client")

    Returns:
        logging.Logger: Configured logger instance
    """
    logger = logging.getLogger(name)

    if not logger.handlers:  # Only add handlers if they don't exist
        logger_level, handler_level = _resolve_levels()
        logger.setLevel(logger_level)

        logs_dir = os.getenv(
            'BLOCK_MANIPULATION_LOG_DIR',
            os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'logs')
        )
        os.makedirs(logs_dir, exist_ok=True)

        component_name = _get_component_name(name)
        log_file = os.path.join(logs_dir, f'{component_name}_{datetime.now().strftime("%Y%m%d")}.log')

        # Rotating file handler (10MB max, keep 5 files)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10*1024*1024,  # 10MB
            backupCount=5
        )
        file_handler.setLevel(handler_level)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
        ))

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(handler_level)
        console_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))

        logger.addHandler(file_handler)
        logger.addHandler(console_handler)
        _workflow_loggers.add(name)

    return logger


def configure_logging(level: Optional[str] = None, production: Optional[bool] = None) -> None:
    """
    Apply a log level to every workflow logger, existing and future.

    Calling it without arguments goes back to the environment variables.

    Args:
        level (str): Level name such as "INFO" or "DEBUG"
        production (bool): Log errors only, whatever the level
    """
    global _configured_level, _configured_production
    _configured_level = level.upper() if level else None
    _configured_production = production

    logger_level, handler_level = _resolve_levels()
    for name in _workflow_loggers:
        logger = logging.getLogger(name)
        logger.setLevel(logger_level)
        for handler in logger.handlers:
            handler.setLevel(handler_level)


def _get_component_name(logger_name: str) -> str:
    """Map a logger name to the component log file it writes to"""
    component_mapping = {
        # Remote collaborators
        'action_client': 'remote',
        'home_reset': 'remote',

        # Workflow core
        'orchestrator': 'workflow',
        'state_manager': 'workflow',

        # Process
        'main': 'system',
        'settings': 'system',
    }

    return component_mapping.get(logger_name, 'general')
