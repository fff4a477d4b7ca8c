"""
Turns raw remote-store failures into DomainError.

A failure can come from googleapiclient (HttpError: status on e.resp, body in
e.content), from the facade itself (RemoteStoreError), or from anything that
exposes a status and a body. The body may be bytes, a chunked stream, a string
or an already decoded object, so it is normalized to text first and then
parsed once. Kinds are derived from the structured vendor code and the HTTP
status; message text is only carried along as detail.
"""

import codecs
import json
import logging
from typing import Any, Dict, Optional, Tuple

from google.auth.exceptions import RefreshError

from services.errors import DomainError, ErrorKind
from utils.prometheus import REMOTE_ERRORS

logger = logging.getLogger("projectsync.error_classifier")

# Vendor error codes (lower-cased) of both Microsoft Graph and Google Drive.
VENDOR_CODE_KINDS: Dict[str, ErrorKind] = {
    # name conflicts
    "namealreadyexists": ErrorKind.NAME_CONFLICT,
    "conflictingitemname": ErrorKind.NAME_CONFLICT,
    "nameconflict": ErrorKind.NAME_CONFLICT,
    "conflict": ErrorKind.NAME_CONFLICT,
    # quota
    "quotalimitreached": ErrorKind.QUOTA_EXCEEDED,
    "quotaexceeded": ErrorKind.QUOTA_EXCEEDED,
    "insufficientstorage": ErrorKind.QUOTA_EXCEEDED,
    "storagequotaexceeded": ErrorKind.QUOTA_EXCEEDED,
    "teamdrivefilelimitexceeded": ErrorKind.QUOTA_EXCEEDED,
    # throttling (Drive reports some of these as 403)
    "activitylimitreached": ErrorKind.RATE_LIMITED,
    "throttledrequest": ErrorKind.RATE_LIMITED,
    "toomanyrequests": ErrorKind.RATE_LIMITED,
    "ratelimitexceeded": ErrorKind.RATE_LIMITED,
    "userratelimitexceeded": ErrorKind.RATE_LIMITED,
    # authentication
    "unauthenticated": ErrorKind.AUTH_EXPIRED,
    "invalidauthenticationtoken": ErrorKind.AUTH_EXPIRED,
    "autherror": ErrorKind.AUTH_EXPIRED,
    "invalid_grant": ErrorKind.AUTH_EXPIRED,
    "invalidcredentials": ErrorKind.AUTH_EXPIRED,
    # permissions
    "accessdenied": ErrorKind.PERMISSION_DENIED,
    "forbidden": ErrorKind.PERMISSION_DENIED,
    "insufficientfilepermissions": ErrorKind.PERMISSION_DENIED,
    "permission_denied": ErrorKind.PERMISSION_DENIED,
    # not found
    "itemnotfound": ErrorKind.NOT_FOUND,
    "notfound": ErrorKind.NOT_FOUND,
    "filenotfound": ErrorKind.NOT_FOUND,
    # bad names
    "invalidrequest": ErrorKind.INVALID_NAME,
    "badrequest": ErrorKind.INVALID_NAME,
    "invalidname": ErrorKind.INVALID_NAME,
    "invalid": ErrorKind.INVALID_NAME,
}

STATUS_KINDS: Dict[int, ErrorKind] = {
    400: ErrorKind.INVALID_NAME,
    401: ErrorKind.AUTH_EXPIRED,
    403: ErrorKind.PERMISSION_DENIED,
    404: ErrorKind.NOT_FOUND,
    409: ErrorKind.NAME_CONFLICT,
    410: ErrorKind.NOT_FOUND,
    429: ErrorKind.RATE_LIMITED,
    507: ErrorKind.QUOTA_EXCEEDED,
}


def read_error_body(body: Any) -> str:
    """Normalize an error body of any transport shape to text."""
    if body is None:
        return ""
    if isinstance(body, str):
        return body
    if isinstance(body, (bytes, bytearray)):
        return bytes(body).decode("utf-8", errors="replace")
    if isinstance(body, dict) or (
        isinstance(body, list) and not any(isinstance(c, (bytes, bytearray)) for c in body)
    ):
        return json.dumps(body)
    if hasattr(body, "read"):
        return read_error_body(body.read())

    # Streamed payload: decode chunk by chunk so multi-byte characters split
    # across chunk boundaries survive.
    try:
        chunks = iter(body)
    except TypeError:
        return str(body)

    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    parts = []
    for chunk in chunks:
        if isinstance(chunk, str):
            parts.append(chunk)
        else:
            parts.append(decoder.decode(bytes(chunk)))
    parts.append(decoder.decode(b"", final=True))
    return "".join(parts)


def _extract_status(raw_error: Any) -> Optional[int]:
    resp = getattr(raw_error, "resp", None)
    for candidate in (
        getattr(resp, "status", None),
        getattr(raw_error, "status", None),
        getattr(raw_error, "status_code", None),
        getattr(raw_error, "statusCode", None),
    ):
        if candidate is None:
            continue
        try:
            return int(candidate)
        except (TypeError, ValueError):
            continue
    return None


def _extract_body(raw_error: Any) -> Any:
    for attr in ("body", "content"):
        value = getattr(raw_error, attr, None)
        if value is not None:
            return value
    return None


def parse_error_body(text: str) -> Tuple[Optional[str], Optional[str]]:
    """
    Returns (vendor_code, message) from a {"error": {"code", "message"}} body.
    Google bodies carry a numeric code; the reason of the first nested error
    (or the status string) is used as vendor code instead.
    """
    if not text:
        return None, None
    try:
        parsed = json.loads(text)
    except (ValueError, TypeError):
        return None, None

    if not isinstance(parsed, dict):
        return None, None

    error = parsed.get("error")
    if isinstance(error, str):
        # OAuth style: {"error": "invalid_grant", "error_description": "..."}
        return error, parsed.get("error_description")
    if not isinstance(error, dict):
        return None, None

    message = error.get("message")
    code = error.get("code")
    if isinstance(code, str) and code:
        return code, message

    nested = error.get("errors")
    if isinstance(nested, list) and nested and isinstance(nested[0], dict):
        reason = nested[0].get("reason")
        if reason:
            return reason, message or nested[0].get("message")

    status = error.get("status")
    if isinstance(status, str) and status:
        return status, message

    return None, message


def kind_for(status: Optional[int], vendor_code: Optional[str]) -> ErrorKind:
    if vendor_code:
        kind = VENDOR_CODE_KINDS.get(vendor_code.lower())
        if kind:
            return kind
    if status in STATUS_KINDS:
        return STATUS_KINDS[status]
    return ErrorKind.UNKNOWN


def describe(raw_error: Any) -> DomainError:
    """
    Map a raw failure to a DomainError without recording it.
    Used where a failure is only inspected, e.g. to decide on a retry.
    """
    if isinstance(raw_error, DomainError):
        return raw_error

    # RetryExhausted wraps the failure of the last attempt
    last_error = getattr(raw_error, "last_error", None)
    if isinstance(last_error, Exception):
        return describe(last_error)

    if isinstance(raw_error, RefreshError):
        return DomainError(ErrorKind.AUTH_EXPIRED, http_status=401, detail=str(raw_error))

    status = _extract_status(raw_error)
    body_text = read_error_body(_extract_body(raw_error))
    vendor_code, vendor_message = parse_error_body(body_text)

    if vendor_code is None:
        explicit_code = getattr(raw_error, "code", None)
        if isinstance(explicit_code, str) and explicit_code:
            vendor_code = explicit_code

    detail = vendor_message or body_text or str(raw_error) or type(raw_error).__name__
    return DomainError(kind_for(status, vendor_code), http_status=status, vendor_code=vendor_code, detail=detail)


def classify(raw_error: Any) -> DomainError:
    """
    Single boundary between transport errors and the domain taxonomy.
    Each raw failure is counted once in remote_errors_total; errors that are
    already classified pass through unrecorded.
    """
    if isinstance(raw_error, DomainError):
        return raw_error

    error = describe(raw_error)
    REMOTE_ERRORS.labels(kind=error.kind.value).inc()
    logger.info(
        "Classified remote error",
        extra={"kind": error.kind.value, "http_status": error.http_status, "vendor_code": error.vendor_code},
    )
    return error
