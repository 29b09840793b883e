"""Core utilities: clock, configuration and logging.

Configuration is imported from ``quotagate.core.config`` directly so that
importing the clock or logging helpers never reads the environment.
"""

from quotagate.core.clock import Clock, ManualClock, SystemClock
from quotagate.core.logging import get_logger, setup_logging

__all__ = [
    "Clock",
    "ManualClock",
    "SystemClock",
    "get_logger",
    "setup_logging",
]
