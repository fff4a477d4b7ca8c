"""
Rename and move of remote files.

Rename in place patches the name only. A move resolves its destination
(by id or by path, creating missing folders along a path) and applies the
new parent and name in a single patch. When a new name is given for a move,
clashes in the destination are resolved with numeric suffixes:
report.pdf -> report_1.pdf -> report_2.pdf.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from config import config
from services.error_classifier import classify
from services.errors import DomainError, ErrorKind
from services.name_validator import (
    ensure_valid_name,
    ensure_valid_path,
    join_path,
    normalize_path,
)
from services.remote_store import is_folder, is_path
from utils.structured_logging import sync_logger

logger = logging.getLogger("projectsync.move_resolver")

MAX_SUFFIX_ATTEMPTS = 100


def with_suffix(name: str, counter: int) -> str:
    """Insert _N before the extension. Leading dots don't count as one."""
    dot = name.rfind('.')
    if dot > 0:
        return f"{name[:dot]}_{counter}{name[dot:]}"
    return f"{name}_{counter}"


@dataclass
class MoveResult:
    file_id: str
    name: str
    path: str
    parent_folder_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file_id": self.file_id,
            "name": self.name,
            "path": self.path,
            "parent_folder_id": self.parent_folder_id,
        }


@dataclass
class BulkRenameItemResult:
    file_id: Optional[str]
    original: str
    renamed: Optional[str]
    success: bool
    parent_folder_id: Optional[str] = None
    error: Optional[DomainError] = None

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "file_id": self.file_id,
            "original": self.original,
            "renamed": self.renamed,
            "success": self.success,
        }
        if self.error is not None:
            payload["error"] = self.error.user_message
            payload["kind"] = self.error.kind.value
        return payload


@dataclass
class BulkRenameReport:
    results: List[BulkRenameItemResult] = field(default_factory=list)

    @property
    def summary(self) -> Dict[str, int]:
        succeeded = sum(1 for r in self.results if r.success)
        return {"total": len(self.results), "succeeded": succeeded, "failed": len(self.results) - succeeded}


class MoveResolver:
    def __init__(self, store: Any, sleep: Callable[[float], None] = time.sleep):
        self.store = store
        self.sleep = sleep

    def _call(self, func, *args, **kwargs):
        try:
            return func(*args, **kwargs)
        except Exception as e:
            raise classify(e) from e

    def _path_of(self, item_id: str, fallback: str) -> str:
        try:
            return self.store.get_path(item_id)
        except Exception as e:
            logger.warning("Could not resolve remote path", extra={"item_id": item_id, "error": str(e)})
            return fallback

    def move_or_rename(
        self,
        file_id: str,
        target: Optional[str] = None,
        new_name: Optional[str] = None,
    ) -> MoveResult:
        if not file_id:
            raise DomainError(ErrorKind.MISSING_PARAMETER, user_message="file_id is required.")
        if new_name is not None:
            ensure_valid_name(new_name)
        if target and is_path(target):
            target = normalize_path(target)
            ensure_valid_path(target)

        source = self._call(self.store.get_item, file_id)

        if not target:
            return self._rename_in_place(source, new_name)
        return self._move(source, target, new_name)

    def _rename_in_place(self, source: Dict[str, Any], new_name: Optional[str]) -> MoveResult:
        if not new_name:
            raise DomainError(
                ErrorKind.MISSING_PARAMETER,
                user_message="A new name is required to rename a file in place.",
            )

        updated = self._call(self.store.patch_item, source["id"], name=new_name)
        parents = updated.get("parents") or source.get("parents") or []
        parent_id = parents[0] if parents else config.DRIVE_ROOT_FOLDER_ID
        parent_path = self._path_of(parent_id, "/")

        sync_logger.info(
            action="rename",
            message=f"Renamed {source['name']} to {updated['name']}",
            remote_item_id=source["id"],
        )
        return MoveResult(
            file_id=source["id"],
            name=updated["name"],
            path=join_path(parent_path, updated["name"]),
            parent_folder_id=parent_id,
        )

    def _move(self, source: Dict[str, Any], target: str, new_name: Optional[str]) -> MoveResult:
        target_id, target_path = self._resolve_target(target)

        patch_name = None
        if new_name:
            patch_name = self.resolve_name_conflict(target_id, new_name, exclude_id=source["id"])

        moved = self._call(self.store.patch_item, source["id"], name=patch_name, parent_id=target_id)

        sync_logger.info(
            action="move",
            message=f"Moved {source['name']} to {join_path(target_path, moved['name'])}",
            remote_item_id=source["id"],
            target_folder_id=target_id,
        )
        return MoveResult(
            file_id=source["id"],
            name=moved["name"],
            path=join_path(target_path, moved["name"]),
            parent_folder_id=target_id,
        )

    def _resolve_target(self, target: str) -> Tuple[str, str]:
        if is_path(target):
            try:
                folder = self.store.get_item(target)
            except Exception as e:
                error = classify(e)
                if error.kind != ErrorKind.NOT_FOUND:
                    raise error from e
                return self.ensure_folder_path(target)
            target_path = target
        else:
            folder = self._call(self.store.get_item, target)
            target_path = self._path_of(folder["id"], f"/{folder['name']}")

        if not is_folder(folder):
            raise DomainError(ErrorKind.MISSING_PARAMETER, user_message="The destination is not a folder.")
        return folder["id"], target_path

    def ensure_folder_path(self, path: str) -> Tuple[str, str]:
        """
        Walk path from the store root, creating missing folders.
        A folder that appears concurrently is reused.
        """
        path = normalize_path(path)
        ensure_valid_path(path)

        current = self._call(self.store.get_item, "/")
        current_path = "/"
        for segment in [s for s in path.split("/") if s]:
            current_path = join_path(current_path, segment)
            try:
                existing = self.store.get_item(current_path)
            except Exception as e:
                error = classify(e)
                if error.kind != ErrorKind.NOT_FOUND:
                    raise error from e
                existing = None

            if existing is not None:
                if not is_folder(existing):
                    raise DomainError(
                        ErrorKind.MISSING_PARAMETER,
                        user_message=f"{current_path} is not a folder.",
                    )
                current = existing
                continue

            try:
                current = self.store.create_folder(current["id"], segment)
                sync_logger.info(action="ensure_folder", message=f"Created folder {current_path}", remote_item_id=current["id"])
            except Exception as e:
                error = classify(e)
                if error.kind != ErrorKind.NAME_CONFLICT:
                    raise error from e
                current = self._call(self.store.get_item, current_path)

        return current["id"], path

    def resolve_name_conflict(self, folder_id: str, desired_name: str, exclude_id: Optional[str] = None) -> str:
        """
        First free name among desired_name, desired_name_1 ... desired_name_100.
        If the destination cannot be listed the desired name is used as is.
        """
        try:
            children = self.store.list_children(folder_id, use_cache=False)
        except Exception as e:
            sync_logger.warning(
                action="resolve_name",
                message="Could not list destination, using desired name",
                remote_item_id=folder_id,
                error_kind=classify(e).kind.value,
            )
            return desired_name

        taken = {c["name"] for c in children if c.get("id") != exclude_id}
        if desired_name not in taken:
            return desired_name

        for counter in range(1, MAX_SUFFIX_ATTEMPTS + 1):
            candidate = with_suffix(desired_name, counter)
            if candidate not in taken:
                logger.info("Resolved name conflict", extra={"desired": desired_name, "resolved": candidate})
                return candidate

        raise DomainError(
            ErrorKind.NAME_CONFLICT,
            detail=f"No free name for {desired_name} after {MAX_SUFFIX_ATTEMPTS} attempts",
        )

    def bulk_rename(self, operations: List[Dict[str, Any]]) -> BulkRenameReport:
        """
        Rename up to BULK_MAX_OPERATIONS files in place, one at a time with a
        short pause between remote calls. A failing item does not stop the batch.
        """
        if not operations:
            raise DomainError(ErrorKind.MISSING_PARAMETER, user_message="Operations list is required.")
        if len(operations) > config.BULK_MAX_OPERATIONS:
            raise DomainError(
                ErrorKind.MISSING_PARAMETER,
                user_message=f"Too many operations. Maximum {config.BULK_MAX_OPERATIONS} files per request.",
            )

        report = BulkRenameReport()
        delay = config.BULK_OPERATION_DELAY_MS / 1000.0

        for index, operation in enumerate(operations):
            if index > 0 and delay > 0:
                self.sleep(delay)
            report.results.append(self._rename_one(operation))

        sync_logger.info(action="bulk_rename", message="Bulk rename finished", **report.summary)
        return report

    def _rename_one(self, operation: Dict[str, Any]) -> BulkRenameItemResult:
        file_id = operation.get("file_id")
        new_name = operation.get("new_name")
        original = operation.get("original_name") or (f"file_{file_id[:8]}" if file_id else "Unknown")

        try:
            if not file_id or not new_name:
                raise DomainError(
                    ErrorKind.MISSING_PARAMETER,
                    user_message="Missing required fields: file_id or new_name.",
                )
            ensure_valid_name(new_name)
            updated = self._call(self.store.patch_item, file_id, name=new_name)
        except DomainError as error:
            sync_logger.error(action="bulk_rename", message=f"Rename of {original} failed", error=error, remote_item_id=file_id)
            return BulkRenameItemResult(file_id, original, new_name, success=False, error=error)

        parents = updated.get("parents") or []
        return BulkRenameItemResult(
            file_id,
            original,
            updated.get("name", new_name),
            success=True,
            parent_folder_id=parents[0] if parents else None,
        )
