"""Core module exports."""

from reposeek.core.errors import (
    ConfigError,
    CreditError,
    ErrorCode,
    InternalError,
    RepositoryError,
    ReposeekError,
    RequestValidationError,
    StoreError,
    UpstreamError,
)
from reposeek.core.logging import (
    clear_request_id,
    configure_logging,
    get_request_id,
    set_request_id,
)

__all__ = [
    # Errors
    "ConfigError",
    "CreditError",
    "ErrorCode",
    "InternalError",
    "RepositoryError",
    "ReposeekError",
    "RequestValidationError",
    "StoreError",
    "UpstreamError",
    # Logging
    "clear_request_id",
    "configure_logging",
    "get_request_id",
    "set_request_id",
]
