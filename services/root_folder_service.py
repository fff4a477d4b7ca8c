import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

import models
from config import config
from services.error_classifier import classify
from services.errors import DomainError, ErrorKind
from services.name_validator import ensure_valid_path, normalize_path

logger = logging.getLogger("projectsync.root_folder")

ROOT_FOLDER_CONFIG_KEY = "remote_root_folder"


class RootFolderService:
    """
    Singleton configuration of the remote folder all projects live under.
    Stored as JSON in system_config.
    """

    def __init__(self, db: Session):
        self.db = db

    def _record(self) -> Optional[models.SystemConfig]:
        return self.db.query(models.SystemConfig).filter_by(key=ROOT_FOLDER_CONFIG_KEY).first()

    def get(self) -> Optional[Dict[str, Any]]:
        record = self._record()
        if not record or not record.value:
            return None

        value = record.value
        folder_path = value.get("folderPath") or value.get("path") or ""
        return {
            "folderPath": folder_path,
            "folderId": value.get("folderId") or "",
            "folderName": value.get("folderName") or folder_path.rstrip("/").split("/")[-1] or "Root",
            "lastUpdated": value.get("lastUpdated"),
        }

    def set(self, folder_path: str, folder_id: Optional[str] = None, store: Any = None) -> Dict[str, Any]:
        """
        Save the root folder after checking it exists remotely.
        Raises DomainError (InvalidName, NotFound, ...) when it does not.
        """
        if not folder_path or not folder_path.strip():
            raise DomainError(ErrorKind.MISSING_PARAMETER, user_message="Folder path is required.")
        folder_path = normalize_path(folder_path)
        ensure_valid_path(folder_path)

        if store is not None:
            try:
                store.get_item(folder_id or folder_path)
            except Exception as e:
                raise classify(e) from e

        value = {
            "folderPath": folder_path,
            "folderId": folder_id or None,
            "folderName": folder_path.rstrip("/").split("/")[-1] or "Root",
            "lastUpdated": datetime.now(timezone.utc).isoformat(),
        }

        record = self._record()
        if record is None:
            record = models.SystemConfig(key=ROOT_FOLDER_CONFIG_KEY, value=value)
            self.db.add(record)
        else:
            record.value = value
        self.db.commit()

        logger.info("Root folder configured", extra={"folder_path": folder_path, "folder_id": folder_id})
        return value

    def resolve_root_path(self) -> str:
        """Configured root path, or the legacy default when none is saved."""
        current = self.get()
        if current and current["folderPath"]:
            return current["folderPath"]
        return config.LEGACY_ROOT_FOLDER_PATH
