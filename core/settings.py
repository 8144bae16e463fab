"""
Centralized workflow configuration using Pydantic Settings.
Parameters are read once at startup from the environment, an optional .env
file and command-line overrides, and are immutable afterwards.
"""

from typing import Dict, Any
from enum import Enum

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Environment types"""

    DEVELOPMENT = "development"
    TESTING = "testing"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Logging levels"""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class WorkflowConfig(BaseSettings):
    """
    Parameters for the block manipulation workflow.

    Unset parameters fall back to the defaults below. Instances are frozen,
    so the controller and every callback can read them without coordination.
    """

    model_config = SettingsConfigDict(
        env_prefix="BLOCK_MANIPULATION_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Environment
    environment: Environment = Field(default=Environment.DEVELOPMENT)
    log_level: LogLevel = Field(default=LogLevel.INFO)

    # Workspace geometry
    arm_link: str = Field(default="/base_link", min_length=1)
    gripper_open: float = Field(default=0.042, gt=0)
    gripper_closed: float = Field(default=0.024, gt=0)
    z_up: float = Field(default=0.12, gt=0)
    table_height: float = Field(default=0.01, gt=0)  # the arm "down" height
    block_size: float = Field(default=0.03, gt=0)

    # Cycle policy
    once: bool = Field(default=False, description="Terminate after the first pick and place")
    skip_perception: bool = Field(default=False, description="Go straight from home reset to pick and place")

    # Remote services
    server_url: str = Field(default="http://localhost:9090")
    block_detection_action: str = Field(default="block_detection", min_length=1)
    interactive_manipulation_action: str = Field(default="interactive_manipulation", min_length=1)
    pick_place_action: str = Field(default="pick_place", min_length=1)
    send_home_service: str = Field(default="/send_home", min_length=1)
    pick_place_topic: str = Field(default="/pick_place", min_length=1)

    # Transport tuning
    request_timeout: float = Field(default=10.0, gt=0)
    poll_interval: float = Field(default=0.5, gt=0)
    server_wait_interval: float = Field(default=1.0, gt=0)
    max_poll_failures: int = Field(default=5, ge=1)

    @field_validator("environment", mode="before")
    @classmethod
    def validate_environment(cls, v):
        """Validate environment value"""
        if isinstance(v, str):
            return v.lower()
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level value"""
        if isinstance(v, str):
            return v.upper()
        return v

    @field_validator("arm_link")
    @classmethod
    def validate_arm_link(cls, v):
        """Reference frame must name something"""
        if not v.strip():
            raise ValueError("arm_link must be a non-empty frame identifier")
        return v.strip()

    @field_validator("server_url")
    @classmethod
    def validate_server_url(cls, v):
        """Validate server URL format"""
        if not v.startswith(("http://", "https://")):
            raise ValueError("server_url must start with http:// or https://")
        return v.rstrip("/")

    def get_server_config(self) -> Dict[str, Any]:
        """Get remote transport configuration"""
        return {
            "server_url": self.server_url,
            "request_timeout": self.request_timeout,
            "poll_interval": self.poll_interval,
            "server_wait_interval": self.server_wait_interval,
            "max_poll_failures": self.max_poll_failures,
        }

    def is_production(self) -> bool:
        """Check if running in production mode"""
        return self.environment == Environment.PRODUCTION

