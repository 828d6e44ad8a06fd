"""Utility functions for pushdeploy."""

from pushdeploy.utils.logging import configure_logging, get_logger

__all__ = [
    "configure_logging",
    "get_logger",
]
