"""
Domain error taxonomy and partial-result types shared by the sync services.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    INVALID_NAME = "InvalidName"
    NAME_CONFLICT = "NameConflict"
    QUOTA_EXCEEDED = "QuotaExceeded"
    AUTH_EXPIRED = "AuthExpired"
    PERMISSION_DENIED = "PermissionDenied"
    NOT_FOUND = "NotFound"
    RATE_LIMITED = "RateLimited"
    TEMPLATE_PARTIAL_FAILURE = "TemplatePartialFailure"
    MISSING_PARAMETER = "MissingParameter"
    DUPLICATE_MAPPING = "DuplicateMapping"
    UNKNOWN = "Unknown"


# Default user-facing messages per kind
USER_MESSAGES: Dict[ErrorKind, str] = {
    ErrorKind.INVALID_NAME: "Invalid folder name or path. Use letters, numbers, hyphens and underscores.",
    ErrorKind.NAME_CONFLICT: "An item with this name already exists in the destination folder.",
    ErrorKind.QUOTA_EXCEEDED: "Remote storage quota exceeded. Free up space or contact the administrator.",
    ErrorKind.AUTH_EXPIRED: "Remote storage authentication expired. Reconnect the storage account.",
    ErrorKind.PERMISSION_DENIED: "Insufficient permissions on the remote storage.",
    ErrorKind.NOT_FOUND: "The remote file or folder was not found. It may have been moved or deleted.",
    ErrorKind.RATE_LIMITED: "Remote storage rate limit exceeded. Wait a moment and try again.",
    ErrorKind.TEMPLATE_PARTIAL_FAILURE: "Project folder created but some template subfolders are missing.",
    ErrorKind.MISSING_PARAMETER: "A required parameter is missing or invalid.",
    ErrorKind.DUPLICATE_MAPPING: "A remote folder mapping already exists for this project.",
    ErrorKind.UNKNOWN: "Unexpected error while talking to the remote storage.",
}


class DomainError(Exception):
    """
    Classified error surfaced by the sync engine.
    Raw transport errors are converted into this at the service boundary
    (see services.error_classifier.classify).
    """

    def __init__(
        self,
        kind: ErrorKind,
        user_message: Optional[str] = None,
        http_status: Optional[int] = None,
        vendor_code: Optional[str] = None,
        detail: Optional[str] = None,
    ):
        self.kind = kind
        self.user_message = user_message or USER_MESSAGES[kind]
        self.http_status = http_status
        self.vendor_code = vendor_code
        self.detail = detail
        super().__init__(self.user_message)

    @property
    def retryable(self) -> bool:
        if self.kind == ErrorKind.RATE_LIMITED:
            return True
        return self.kind == ErrorKind.UNKNOWN and bool(self.http_status) and self.http_status >= 500

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "kind": self.kind.value,
            "message": self.user_message,
            "http_status": self.http_status,
            "vendor_code": self.vendor_code,
        }
        if self.detail:
            payload["detail"] = self.detail
        return payload

    def __repr__(self) -> str:
        return f"DomainError({self.kind.value}, status={self.http_status}, vendor_code={self.vendor_code!r})"


@dataclass
class FailureRecord:
    item: str
    kind: ErrorKind
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"item": self.item, "kind": self.kind.value, "message": self.message}


@dataclass
class PartialResult(Generic[T]):
    """Outcome of a multi-step operation where single steps may fail."""

    succeeded: List[T] = field(default_factory=list)
    failed: List[FailureRecord] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def add_failure(self, item: str, error: DomainError) -> None:
        self.failed.append(FailureRecord(item=item, kind=error.kind, message=error.user_message))
