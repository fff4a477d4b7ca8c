import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

import models

logger = logging.getLogger("projectsync.file_index")

_UPDATABLE_FIELDS = (
    "name", "path", "size", "mime_type", "last_modified", "project_code",
    "parent_folder_id", "is_folder", "web_url", "download_url",
)


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    try:
        # Drive timestamps end in "Z"
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


class FileIndexService:
    """Local index of remote files, keyed by the remote item id."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, drive_item_id: str) -> Optional[models.RemoteFileRecord]:
        return self.db.query(models.RemoteFileRecord).filter_by(drive_item_id=drive_item_id).first()

    def list(
        self,
        project_code: Optional[str] = None,
        parent_folder_id: Optional[str] = None,
        include_folders: bool = True,
        limit: int = 500,
        offset: int = 0,
    ) -> List[models.RemoteFileRecord]:
        query = self.db.query(models.RemoteFileRecord)
        if project_code:
            query = query.filter(models.RemoteFileRecord.project_code == project_code)
        if parent_folder_id:
            query = query.filter(models.RemoteFileRecord.parent_folder_id == parent_folder_id)
        if not include_folders:
            query = query.filter(models.RemoteFileRecord.is_folder.is_(False))
        return query.order_by(models.RemoteFileRecord.path).offset(offset).limit(limit).all()

    def create_or_update(self, data: Dict[str, Any], commit: bool = True) -> models.RemoteFileRecord:
        """
        Insert a record, or overwrite the existing one with the same
        drive_item_id. Links are always overwritten since they expire.
        """
        drive_item_id = data["drive_item_id"]
        values = {key: data.get(key) for key in _UPDATABLE_FIELDS if key in data}
        if "last_modified" in values:
            values["last_modified"] = _parse_timestamp(values["last_modified"])
        if values.get("size") is not None:
            values["size"] = max(int(values["size"]), 0)

        record = self.get(drive_item_id)
        if record is None:
            record = models.RemoteFileRecord(drive_item_id=drive_item_id, **values)
            self.db.add(record)
        else:
            for key, value in values.items():
                setattr(record, key, value)
            record.updated_at = datetime.now()

        if commit:
            self.db.commit()
            self.db.refresh(record)
        return record

    def update(self, drive_item_id: str, **changes) -> Optional[models.RemoteFileRecord]:
        record = self.get(drive_item_id)
        if record is None:
            return None
        for key, value in changes.items():
            if key in _UPDATABLE_FIELDS:
                setattr(record, key, value)
        record.updated_at = datetime.now()
        self.db.commit()
        self.db.refresh(record)
        return record

    def delete(self, drive_item_id: str) -> bool:
        record = self.get(drive_item_id)
        if record is None:
            return False
        self.db.delete(record)
        self.db.commit()
        return True

    def delete_for_project(self, project_code: str) -> int:
        deleted = (
            self.db.query(models.RemoteFileRecord)
            .filter(models.RemoteFileRecord.project_code == project_code)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        logger.info("File index cleared for project", extra={"project_code": project_code, "deleted": deleted})
        return deleted
