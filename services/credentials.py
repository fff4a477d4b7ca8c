import json
import logging
from typing import List, Optional

import google.auth.transport.requests
from google.oauth2 import service_account

from config import config
from services.errors import DomainError, ErrorKind

logger = logging.getLogger("projectsync.credentials")

DRIVE_SCOPES = ['https://www.googleapis.com/auth/drive']


class CredentialProvider:
    """
    Source of bearer tokens for the remote store.
    Implementations may cache a token internally, but callers must ask for
    current_token() right before every logical operation and never keep it.
    """

    def is_valid(self) -> bool:
        raise NotImplementedError

    def refresh(self) -> None:
        raise NotImplementedError

    def current_token(self) -> str:
        if not self.is_valid():
            self.refresh()
        return self._token()

    def _token(self) -> str:
        raise NotImplementedError


class ServiceAccountCredentialProvider(CredentialProvider):
    """
    Service Account credentials for Google Drive.
    Supports Domain-Wide Delegation (impersonation) if GOOGLE_IMPERSONATE_EMAIL is set.
    """

    def __init__(self, scopes: Optional[List[str]] = None, service_account_json: Optional[str] = None):
        self.scopes = scopes or DRIVE_SCOPES
        self.service_account_json = service_account_json or config.GOOGLE_SERVICE_ACCOUNT_JSON
        self.creds = None
        self._load()

    def _load(self):
        if not self.service_account_json:
            logger.warning("GOOGLE_SERVICE_ACCOUNT_JSON not set. Remote store calls will fail.")
            return

        # Accept either the JSON document itself or a path to it
        if self.service_account_json.strip().startswith("{"):
            info = json.loads(self.service_account_json)
            self.creds = service_account.Credentials.from_service_account_info(info, scopes=self.scopes)
        else:
            self.creds = service_account.Credentials.from_service_account_file(
                self.service_account_json, scopes=self.scopes
            )

        if config.GOOGLE_IMPERSONATE_EMAIL:
            logger.info("Impersonating workspace user", extra={"subject": config.GOOGLE_IMPERSONATE_EMAIL})
            self.creds = self.creds.with_subject(config.GOOGLE_IMPERSONATE_EMAIL)

    def _require_creds(self):
        if self.creds is None:
            raise DomainError(
                ErrorKind.AUTH_EXPIRED,
                user_message="Remote storage credentials are not configured.",
            )
        return self.creds

    def is_valid(self) -> bool:
        return self.creds is not None and self.creds.valid

    def refresh(self) -> None:
        creds = self._require_creds()
        creds.refresh(google.auth.transport.requests.Request())

    def _token(self) -> str:
        return self._require_creds().token


class StaticTokenProvider(CredentialProvider):
    """Fixed token, for the mock store and local tooling."""

    def __init__(self, token: str = "static-token"):
        self.token = token
        self.refresh_count = 0

    def is_valid(self) -> bool:
        return bool(self.token)

    def refresh(self) -> None:
        self.refresh_count += 1

    def _token(self) -> str:
        return self.token
