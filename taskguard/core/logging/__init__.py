"""
Logging Module

structlog-based structured logging with request-id correlation and redaction.
"""

from taskguard.core.logging.logger import (
    clear_request_id,
    get_logger,
    get_request_id,
    hash_identifier,
    log_stage,
    set_request_id,
    setup_logging,
)

__all__ = [
    "clear_request_id",
    "get_logger",
    "get_request_id",
    "hash_identifier",
    "log_stage",
    "set_request_id",
    "setup_logging",
]
