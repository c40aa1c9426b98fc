"""
Dependency Injection for the queryrunner HTTP service.

The resolved configuration lives on ``app.state.resolution``; it is set by
the lifespan handler, or injected up front by create_app (tests).
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request

from queryrunner.config.settings import AppSettings, get_settings
from queryrunner.resolver import Resolution, load
from queryrunner.runners import default_registry

logger = logging.getLogger(__name__)


def load_resolution(settings: AppSettings) -> Resolution:
    """
    Load and resolve the configured document.

    Raises:
        ConfigurationError: If the document has error diagnostics
    """
    logger.info(f"Loading query configuration from {settings.config_path}")
    resolution = load(settings.config_path, default_registry())
    for diag in resolution.diagnostics.warnings():
        logger.warning(f"[config] {diag}")
    return resolution.raise_for_errors()


def get_resolution(request: Request) -> Resolution:
    resolution = getattr(request.app.state, "resolution", None)
    if resolution is None:
        raise HTTPException(status_code=503, detail="configuration is not loaded")
    return resolution


def get_app_settings(request: Request) -> AppSettings:
    return getattr(request.app.state, "settings", None) or get_settings()


__all__ = ["get_app_settings", "get_resolution", "load_resolution"]
