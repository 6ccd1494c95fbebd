"""Utility functions."""

from scheduling_core.utils.logging import (
    get_logger,
    get_request_id,
    log_error,
    log_request,
    set_request_id,
    setup_logging,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "set_request_id",
    "get_request_id",
    "log_request",
    "log_error",
]
