"""
Naming grammar of the remote store, checked locally before any network call.
"""

from dataclasses import dataclass
from typing import Optional

from services.errors import DomainError, ErrorKind

MAX_NAME_LENGTH = 256
MAX_PATH_LENGTH = 400

INVALID_CHARS = ['\\', '/', ':', '*', '?', '"', '<', '>', '|']

RESERVED_NAMES = {
    'CON', 'PRN', 'AUX', 'NUL',
    *[f'COM{i}' for i in range(1, 10)],
    *[f'LPT{i}' for i in range(1, 10)],
}


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    reason: Optional[str] = None
    segment: Optional[str] = None

    def __bool__(self) -> bool:
        return self.valid


def validate_name(name: str) -> ValidationResult:
    """
    Validate a single file or folder name.
    Rules are applied in order and the first violation is reported.
    """
    if not isinstance(name, str) or not name.strip():
        return ValidationResult(False, "Name cannot be empty or contain only whitespace")

    if len(name) > MAX_NAME_LENGTH:
        return ValidationResult(False, f"Name cannot exceed {MAX_NAME_LENGTH} characters")

    for char in INVALID_CHARS:
        if char in name:
            return ValidationResult(False, f'Name cannot contain "{char}" character')

    if name.upper() in RESERVED_NAMES:
        return ValidationResult(False, f'"{name}" is a reserved name and cannot be used')

    if name.endswith('.') or name.endswith(' '):
        return ValidationResult(False, "Name cannot end with a period or space")

    if name.startswith('.'):
        return ValidationResult(False, "Name cannot start with a period")

    return ValidationResult(True)


def validate_path(path: str) -> ValidationResult:
    """
    Validate a slash separated path. Empty segments are ignored, so
    "/A//B/" is checked as A and B.
    """
    if not isinstance(path, str) or not path:
        return ValidationResult(False, "Path is required")

    if len(path) > MAX_PATH_LENGTH:
        return ValidationResult(False, f"Path cannot exceed {MAX_PATH_LENGTH} characters")

    for segment in (s for s in path.split('/') if s):
        result = validate_name(segment)
        if not result.valid:
            return ValidationResult(
                False,
                f'Invalid path segment "{segment}": {result.reason}',
                segment=segment,
            )

    return ValidationResult(True)


def ensure_valid_name(name: str) -> str:
    result = validate_name(name)
    if not result.valid:
        raise DomainError(ErrorKind.INVALID_NAME, user_message=result.reason)
    return name


def ensure_valid_path(path: str) -> str:
    result = validate_path(path)
    if not result.valid:
        raise DomainError(ErrorKind.INVALID_NAME, user_message=result.reason)
    return path


def normalize_path(path: str) -> str:
    """Collapse duplicate slashes and drop a trailing slash: '//A//B/' -> '/A/B'."""
    segments = [s for s in (path or '').split('/') if s]
    return '/' + '/'.join(segments)


def join_path(parent: str, name: str) -> str:
    parent = normalize_path(parent)
    return f"/{name}" if parent == '/' else f"{parent}/{name}"
