"""Runtime configuration for the bridge.

Settings come from environment variables (the same names the Docker
deployment uses) and can be overridden from the command line.
"""

import logging
import os
import platform
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from sbmcp.exceptions import ConfigError

logger = logging.getLogger(__name__)

TRUTHY = {"1", "true", "yes", "on"}


class Settings(BaseModel):
    """Bridge configuration."""

    host: str = Field(default="0.0.0.0", alias="HOST", description="Interface to bind")
    port: int = Field(default=4000, alias="PORT", description="Port for the MCP endpoint")
    sb_api_base_url: str = Field(
        default="http://silverbullet:3000",
        alias="SB_API_BASE_URL",
        description="Base URL of the SilverBullet HTTP API",
    )
    sb_auth_token: str | None = Field(
        default=None, alias="SB_AUTH_TOKEN", description="Bearer token for SilverBullet"
    )
    mcp_token: str | None = Field(
        default=None, alias="MCP_TOKEN", description="Token MCP clients must present"
    )
    debug_requests: bool = Field(
        default=False, alias="DEBUG_REQUESTS", description="Log every inbound request"
    )

    class Config:
        populate_by_name = True

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        **overrides: Any,
    ) -> "Settings":
        """Build settings from environment variables.

        Args:
            environ: Mapping to read from. Defaults to os.environ.
            **overrides: Field values that take precedence (None values are ignored).

        Returns:
            Parsed settings.

        Raises:
            ConfigError: If a value cannot be parsed (e.g. a non-numeric PORT).
        """
        env = os.environ if environ is None else environ
        data: dict[str, Any] = {}
        for name, field in cls.model_fields.items():
            if field.alias and field.alias in env and env[field.alias] != "":
                data[name] = env[field.alias]
        if "debug_requests" in data:
            data["debug_requests"] = str(data["debug_requests"]).lower() in TRUTHY
        data.update({k: v for k, v in overrides.items() if v is not None})

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    @property
    def sb_auth_enabled(self) -> bool:
        """Whether requests to SilverBullet carry a bearer token."""
        return bool(self.sb_auth_token)

    def validate_required(self) -> None:
        """Ensure the settings needed to serve MCP clients are present.

        Raises:
            ConfigError: If MCP_TOKEN is not set. The bridge never runs
                unauthenticated.
        """
        if not self.mcp_token:
            raise ConfigError(
                "MCP_TOKEN environment variable is required for security. "
                "Please set MCP_TOKEN and restart."
            )

    def describe(self) -> dict[str, Any]:
        """Summarize the configuration without exposing secrets."""
        return {
            "host": self.host,
            "port": self.port,
            "sb_api_base_url": self.sb_api_base_url,
            "mcp_auth": "enabled" if self.mcp_token else "MISSING",
            "sb_auth": "enabled" if self.sb_auth_enabled else "disabled (no SB_AUTH_TOKEN)",
            "python": platform.python_version(),
        }


def log_configuration(settings: Settings) -> None:
    """Log the startup banner."""
    logger.info("===============================================")
    logger.info("SilverBullet MCP bridge starting...")
    for key, value in settings.describe().items():
        logger.info("  %s: %s", key, value)
    logger.info("===============================================")
