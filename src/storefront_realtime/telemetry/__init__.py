"""Telemetry module for logging and metrics."""

from storefront_realtime.telemetry.logger import ConnectionLogContext, get_logger, setup_logging

__all__ = ["get_logger", "setup_logging", "ConnectionLogContext"]
