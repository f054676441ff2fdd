"""
Utilities Module
================

Logging helpers shared across the agent.
"""

from vio.utils.logger import LogContext, get_logger, setup_logging

__all__ = [
    "LogContext",
    "get_logger",
    "setup_logging",
]
