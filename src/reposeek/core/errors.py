"""Reposeek error types with typed error codes.

Error code ranges:
- 1xxx: Request validation
- 2xxx: Config
- 3xxx: Repository / authorization
- 4xxx: Credits
- 5xxx: Store
- 6xxx: Upstream (code host, indexing collaborator)
- 9xxx: Internal
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Validation (1xxx)
    REQUEST_INVALID = 1001
    REQUEST_CONFLICT = 1002

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002
    CONFIG_MISSING_REQUIRED = 2003
    CONFIG_FILE_NOT_FOUND = 2004

    # Repository (3xxx)
    REPOSITORY_INVALID = 3001
    AUTHORIZATION_REQUIRED = 3002

    # Credits (4xxx)
    INSUFFICIENT_CREDITS = 4001
    USER_NOT_FOUND = 4002

    # Store (5xxx)
    TRANSACTION_FAILED = 5001
    RECORD_NOT_FOUND = 5002

    # Upstream (6xxx)
    EXTERNAL_FETCH_FAILED = 6001
    INDEXING_FAILED = 6002

    # Internal (9xxx)
    INTERNAL_ERROR = 9001
    INTERNAL_TIMEOUT = 9002
    INVALID_STATUS_TRANSITION = 9003


_HTTP_STATUS: dict[ErrorCode, int] = {
    ErrorCode.REQUEST_INVALID: 400,
    ErrorCode.REQUEST_CONFLICT: 409,
    ErrorCode.REPOSITORY_INVALID: 400,
    ErrorCode.AUTHORIZATION_REQUIRED: 401,
    ErrorCode.INSUFFICIENT_CREDITS: 400,
    ErrorCode.USER_NOT_FOUND: 404,
    ErrorCode.RECORD_NOT_FOUND: 404,
    ErrorCode.EXTERNAL_FETCH_FAILED: 502,
    ErrorCode.INDEXING_FAILED: 502,
}


@dataclass(eq=False)
class ReposeekError(Exception):
    """Base error with structured context for HTTP responses."""

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'INSUFFICIENT_CREDITS')."""
        return self.code.name

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS.get(self.code, 500)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON responses."""
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class RequestValidationError(ReposeekError):
    """Malformed request payload."""

    @classmethod
    def from_errors(cls, errors: list[dict[str, Any]]) -> "RequestValidationError":
        return cls(
            code=ErrorCode.REQUEST_INVALID,
            message="Request validation failed",
            details={"errors": errors},
        )

    @classmethod
    def conflict(cls, request_id: str, status: str) -> "RequestValidationError":
        return cls(
            code=ErrorCode.REQUEST_CONFLICT,
            message=f"Request {request_id} is already {status}",
            details={"request_id": request_id, "status": status},
        )


class ConfigError(ReposeekError):
    """Configuration-related errors."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )

    @classmethod
    def file_not_found(cls, path: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_FILE_NOT_FOUND,
            message=f"Config file not found: {path}",
            details={"path": path},
        )


class RepositoryError(ReposeekError):
    """Repository is unreachable, malformed, or needs a credential."""

    @classmethod
    def invalid(cls, repository_url: str, reason: str) -> "RepositoryError":
        return cls(
            code=ErrorCode.REPOSITORY_INVALID,
            message=reason,
            details={"repository_url": repository_url},
        )

    @classmethod
    def authorization_required(cls, repository_url: str, reason: str) -> "RepositoryError":
        return cls(
            code=ErrorCode.AUTHORIZATION_REQUIRED,
            message=reason,
            details={"repository_url": repository_url},
        )


class CreditError(ReposeekError):
    """Credit ledger errors."""

    @classmethod
    def insufficient(cls, user_id: str, balance: int, required: int) -> "CreditError":
        return cls(
            code=ErrorCode.INSUFFICIENT_CREDITS,
            message="Not enough credits to create this project",
            details={"user_id": user_id, "balance": balance, "required": required},
        )

    @classmethod
    def user_not_found(cls, user_id: str) -> "CreditError":
        return cls(
            code=ErrorCode.USER_NOT_FOUND,
            message=f"User not found: {user_id}",
            details={"user_id": user_id},
        )


class StoreError(ReposeekError):
    """Persistent store errors."""

    @classmethod
    def transaction_failed(cls, operation: str, reason: str) -> "StoreError":
        return cls(
            code=ErrorCode.TRANSACTION_FAILED,
            message=f"Transaction failed during {operation}: {reason}",
            details={"operation": operation, "reason": reason},
        )

    @classmethod
    def not_found(cls, kind: str, record_id: str) -> "StoreError":
        return cls(
            code=ErrorCode.RECORD_NOT_FOUND,
            message=f"{kind} not found: {record_id}",
            details={"kind": kind, "id": record_id},
        )


class UpstreamError(ReposeekError):
    """Failures of external collaborators. Recoverable at commit granularity."""

    @classmethod
    def fetch_failed(
        cls, resource: str, reason: str, status_code: int | None = None
    ) -> "UpstreamError":
        return cls(
            code=ErrorCode.EXTERNAL_FETCH_FAILED,
            message=f"Failed to fetch {resource}: {reason}",
            retryable=True,
            details={"resource": resource, "status_code": status_code},
        )

    @classmethod
    def indexing_failed(cls, project_id: str, reason: str) -> "UpstreamError":
        return cls(
            code=ErrorCode.INDEXING_FAILED,
            message=f"Indexing error: {reason}",
            retryable=True,
            details={"project_id": project_id},
        )


class InternalError(ReposeekError):
    """Internal/unexpected errors."""

    @classmethod
    def unexpected(cls, reason: str, **details: Any) -> "InternalError":
        return cls(
            code=ErrorCode.INTERNAL_ERROR,
            message=f"Internal error: {reason}",
            details=details,
        )

    @classmethod
    def invalid_transition(cls, request_id: str, current: str, target: str) -> "InternalError":
        return cls(
            code=ErrorCode.INVALID_STATUS_TRANSITION,
            message=f"Illegal status transition {current} -> {target}",
            details={"request_id": request_id, "current": current, "target": target},
        )
