"""
Built-in runners.

Each adapter module exposes ``definition(client_factory=None)``;
default_registry collects all of them.

Usage:
    from queryrunner.runners import default_registry

    registry = default_registry()
    registry.type_names   # ["cloudwatch_logs_insights", "redshift_data"]
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..registry import RunnerRegistry
from . import cloudwatch_logs_insights, redshift_data

if TYPE_CHECKING:
    from .aws import ClientFactory


def default_registry(client_factory: ClientFactory | None = None) -> RunnerRegistry:
    """Registry with every built-in runner type."""
    return RunnerRegistry(
        [
            cloudwatch_logs_insights.definition(client_factory),
            redshift_data.definition(client_factory),
        ]
    )


__all__ = ["cloudwatch_logs_insights", "default_registry", "redshift_data"]
