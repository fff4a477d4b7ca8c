"""
Structured JSON logging for remote sync operations.
Provides consistent logging format with required fields:
- service, action, status, project_code, remote_item_id
- error_kind, error_message (in case of failure)
- Masks bearer tokens that end up in messages
"""

import logging
import json
import re
from datetime import datetime
from typing import Optional

_BEARER_PATTERN = re.compile(r'(Bearer\s+)[A-Za-z0-9\-._~+/]+=*', re.IGNORECASE)
_TOKEN_PARAM_PATTERN = re.compile(r'((?:access_token|token)=)[^&\s"]+', re.IGNORECASE)


def mask_tokens_in_text(text: Optional[str]) -> Optional[str]:
    """
    Replace credentials that leak into error messages.
    Example: "Authorization: Bearer ya29.abc" -> "Authorization: Bearer ***"
    """
    if not text:
        return text
    text = _BEARER_PATTERN.sub(r'\1***', text)
    return _TOKEN_PARAM_PATTERN.sub(r'\1***', text)


class StructuredLogger:
    """
    Structured logger for remote sync operations.
    Outputs JSON-formatted logs with consistent fields.
    """

    def __init__(self, service: str = "remote_sync", logger_name: str = "projectsync.remote_sync"):
        self.service = service
        self.logger = logging.getLogger(logger_name)

    def _log(
        self,
        level: int,
        action: str,
        status: str,
        message: str,
        project_code: Optional[str] = None,
        remote_item_id: Optional[str] = None,
        error_kind: Optional[str] = None,
        error_message: Optional[str] = None,
        **extra_fields
    ):
        log_data = {
            "timestamp": datetime.now().astimezone().isoformat(),
            "service": self.service,
            "action": action,
            "status": status,
            "message": mask_tokens_in_text(message),
        }

        if project_code:
            log_data["project_code"] = project_code
        if remote_item_id:
            log_data["remote_item_id"] = remote_item_id
        if error_kind:
            log_data["error_kind"] = error_kind
        if error_message:
            log_data["error_message"] = mask_tokens_in_text(error_message)

        for key, value in extra_fields.items():
            log_data[key] = mask_tokens_in_text(value) if isinstance(value, str) else value

        self.logger.log(level, json.dumps(log_data, default=str))

    def info(
        self,
        action: str,
        status: str = "success",
        message: str = "",
        project_code: Optional[str] = None,
        remote_item_id: Optional[str] = None,
        **extra_fields
    ):
        """
        Log informational message.

        Args:
            action: The operation being performed (e.g., "provision", "scan", "reconcile")
            status: Status of the operation (default: "success")
            message: Human-readable message
            project_code: Project code the operation belongs to
            remote_item_id: Remote store item id
            **extra_fields: Additional fields to include in the log
        """
        self._log(
            logging.INFO,
            action=action,
            status=status,
            message=message,
            project_code=project_code,
            remote_item_id=remote_item_id,
            **extra_fields
        )

    def warning(
        self,
        action: str,
        status: str = "warning",
        message: str = "",
        project_code: Optional[str] = None,
        remote_item_id: Optional[str] = None,
        **extra_fields
    ):
        """Log warning message."""
        self._log(
            logging.WARNING,
            action=action,
            status=status,
            message=message,
            project_code=project_code,
            remote_item_id=remote_item_id,
            **extra_fields
        )

    def error(
        self,
        action: str,
        message: str,
        error: Optional[Exception] = None,
        project_code: Optional[str] = None,
        remote_item_id: Optional[str] = None,
        **extra_fields
    ):
        """
        Log error message.

        DomainError instances contribute their kind; other exceptions their
        class name.
        """
        error_kind = None
        error_message = None

        if error is not None:
            kind = getattr(error, "kind", None)
            error_kind = getattr(kind, "value", None) or type(error).__name__
            error_message = getattr(error, "detail", None) or str(error)

        self._log(
            logging.ERROR,
            action=action,
            status="error",
            message=message,
            project_code=project_code,
            remote_item_id=remote_item_id,
            error_kind=error_kind,
            error_message=error_message,
            **extra_fields
        )


sync_logger = StructuredLogger(service="remote_sync")
