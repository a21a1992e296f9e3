"""Shared modules for tenant-harness."""

from .logging import bind_environment, clear_environment, configure_logging, get_logger

__all__ = ["bind_environment", "clear_environment", "configure_logging", "get_logger"]
