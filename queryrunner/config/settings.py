"""
Application settings for queryrunner.

Settings come from ``QUERY_RUNNER_*`` environment variables; command-line
flags override them.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field

OutputFormat = Literal["json", "table", "markdown", "borderless", "vertical"]

DEFAULT_CONFIG_PATH = "~/.config/query-runner/"


class AppSettings(BaseModel):
    """
    Application settings model.

    Used by the CLI and the HTTP service.
    """

    service_name: str = "query-runner"
    config_path: str = Field(DEFAULT_CONFIG_PATH, description="Config file or directory")
    log_level: str = Field("info", description="debug|info|notice|warn|error")
    output: OutputFormat = Field("json", description="Result output format")
    debug: bool = False


@lru_cache()
def get_settings() -> AppSettings:
    """
    Get application settings from environment.

    Uses lru_cache for singleton pattern.
    """
    return AppSettings(
        service_name=os.getenv("QUERY_RUNNER_SERVICE_NAME", "query-runner"),
        config_path=os.getenv("QUERY_RUNNER_CONFIG", DEFAULT_CONFIG_PATH),
        log_level=os.getenv("QUERY_RUNNER_LOG_LEVEL", "info"),
        output=os.getenv("QUERY_RUNNER_OUTPUT", "json"),
        debug=os.getenv("QUERY_RUNNER_DEBUG", "false").lower() == "true",
    )
