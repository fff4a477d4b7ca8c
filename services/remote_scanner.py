"""
Recursive enumeration of remote folders and indexing of what was found.

A scan walks level by level from a folder given by path or id. A folder that
cannot be listed is recorded as a failure and its branch is skipped; only an
inaccessible starting folder leaves the scan empty.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from services.error_classifier import classify
from services.errors import PartialResult
from services.file_index_service import FileIndexService
from services.name_validator import join_path, normalize_path
from services.remote_store import FOLDER_MIME_TYPE, is_folder, is_path
from utils.prometheus import SCAN_ITEMS_TOTAL
from utils.structured_logging import sync_logger

logger = logging.getLogger("projectsync.remote_scanner")

DEFAULT_MAX_DEPTH = 3
MAX_SCAN_DEPTH = 10


@dataclass
class ScannedItem:
    id: str
    name: str
    path: str
    parent_path: str
    parent_folder_id: Optional[str]
    is_folder: bool
    size: int = 0
    mime_type: Optional[str] = None
    last_modified: Optional[str] = None
    web_url: Optional[str] = None
    download_url: Optional[str] = None

    @classmethod
    def from_remote(cls, item: Dict[str, Any], parent_path: str, parent_folder_id: str) -> "ScannedItem":
        parents = item.get("parents") or []
        return cls(
            id=item["id"],
            name=item["name"],
            path=join_path(parent_path, item["name"]),
            parent_path=parent_path,
            parent_folder_id=parents[0] if parents else parent_folder_id,
            is_folder=is_folder(item),
            size=int(item.get("size") or 0),
            mime_type=item.get("mimeType"),
            last_modified=item.get("modifiedTime"),
            web_url=item.get("webViewLink"),
            download_url=item.get("webContentLink"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ScanReport(PartialResult[ScannedItem]):
    root_path: Optional[str] = None
    root_listed: bool = False


def clamp_depth(max_depth: Optional[int]) -> int:
    if max_depth is None:
        return DEFAULT_MAX_DEPTH
    return max(0, min(int(max_depth), MAX_SCAN_DEPTH))


class RemoteScanner:
    """
    Breadth-first enumeration of a remote folder tree.
    The starting folder is depth 0; subfolders are entered while their
    parent's depth is below max_depth.
    """

    def __init__(self, store: Any):
        self.store = store

    def scan(
        self,
        root: str,
        include_subfolders: bool = True,
        max_depth: int = DEFAULT_MAX_DEPTH,
        include_folders: bool = False,
    ) -> List[ScannedItem]:
        return self.scan_with_report(root, include_subfolders, max_depth, include_folders).succeeded

    def scan_with_report(
        self,
        root: str,
        include_subfolders: bool = True,
        max_depth: int = DEFAULT_MAX_DEPTH,
        include_folders: bool = False,
    ) -> ScanReport:
        depth_limit = clamp_depth(max_depth)
        report = ScanReport()

        if is_path(root):
            root_path = normalize_path(root)
            root_key = root_path
        else:
            root_key = root
            try:
                root_path = self.store.get_path(root)
            except Exception as e:
                self._record_failure(report, root, e, fatal=True)
                return report

        report.root_path = root_path
        level: List[Tuple[str, str]] = [(root_key, root_path)]
        depth = 0

        while level:
            next_level: List[Tuple[str, str]] = []
            for folder_key, folder_path in level:
                try:
                    children = self.store.list_children(folder_key)
                except Exception as e:
                    # Root failure yields an empty scan, subfolder failures drop the branch
                    self._record_failure(report, folder_path, e, fatal=depth == 0)
                    continue

                if depth == 0:
                    report.root_listed = True

                for child in children:
                    item = ScannedItem.from_remote(child, folder_path, folder_key)
                    if item.is_folder:
                        if include_folders:
                            report.succeeded.append(item)
                        if include_subfolders and depth < depth_limit:
                            next_level.append((item.id, item.path))
                    else:
                        report.succeeded.append(item)

            level = next_level
            depth += 1

        SCAN_ITEMS_TOTAL.inc(len(report.succeeded))
        sync_logger.info(
            action="scan",
            status="success" if report.ok else "partial",
            message=f"Scanned {root_path}",
            items=len(report.succeeded),
            failed_folders=len(report.failed),
            max_depth=depth_limit,
        )
        return report

    def _record_failure(self, report: PartialResult, folder: str, raw_error: Exception, fatal: bool):
        error = classify(raw_error)
        report.add_failure(folder, error)
        if fatal:
            sync_logger.error(action="scan", message=f"Cannot access scan root {folder}", error=error)
        else:
            sync_logger.warning(
                action="scan",
                message=f"Skipping subfolder {folder}",
                error_kind=error.kind.value,
            )


def index_items(file_index: FileIndexService, items: List[ScannedItem], project_code: Optional[str] = None) -> List[Any]:
    """
    Create-or-update a file index record per scanned item.
    A record that fails to persist is skipped.
    """
    indexed = []
    for item in items:
        try:
            record = file_index.create_or_update({
                "drive_item_id": item.id,
                "name": item.name,
                "path": item.path,
                "size": item.size,
                "mime_type": item.mime_type or (FOLDER_MIME_TYPE if item.is_folder else "application/octet-stream"),
                "last_modified": item.last_modified,
                "project_code": project_code,
                "parent_folder_id": item.parent_folder_id,
                "is_folder": item.is_folder,
                "web_url": item.web_url,
                "download_url": item.download_url,
            })
            indexed.append(record)
        except SQLAlchemyError as e:
            file_index.db.rollback()
            logger.error("Failed to index remote item", extra={"drive_item_id": item.id, "error": str(e)})
    return indexed
