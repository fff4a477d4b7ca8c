"""
Caller-facing surface of the sync engine.

Each public method is one logical operation: it acquires a fresh remote
store, runs the engine components, keeps the local mapping and file index in
step with the remote changes, and only ever raises DomainError.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

import models
from services.error_classifier import classify
from services.errors import DomainError, ErrorKind
from services.file_index_service import FileIndexService
from services.mapping_registry import MappingRegistry
from services.move_resolver import BulkRenameReport, MoveResolver, MoveResult
from services.name_validator import ensure_valid_name, ensure_valid_path, join_path, normalize_path
from services.reconciliation_service import ReconcileOutcome, ReconciliationService
from services.remote_scanner import RemoteScanner, ScannedItem, index_items
from services.remote_store import get_remote_store, is_folder, is_path
from services.root_folder_service import RootFolderService
from services.template_provisioner import ProvisionResult, TemplateProvisioner
from utils.prometheus import REMOTE_OPERATION_SECONDS
from utils.structured_logging import sync_logger

logger = logging.getLogger("projectsync.project_sync")

SCAN_DEPTH_WITH_SUBFOLDERS = 5
SCAN_DEPTH_FLAT = 1

MIN_SEARCH_LENGTH = 2
MAX_SEARCH_LENGTH = 255
MAX_FILE_ID_LENGTH = 200

TEXT_MIME_MARKERS = ("json", "xml")


def is_text_mime_type(mime_type: str) -> bool:
    return mime_type.startswith("text/") or any(marker in mime_type for marker in TEXT_MIME_MARKERS)


def _parent_path(path: Optional[str]) -> str:
    if not path or "/" not in path.strip("/"):
        return "/"
    return "/" + path.strip("/").rsplit("/", 1)[0]


class ProjectSyncService:
    def __init__(self, db: Session, store_factory: Callable[[], Any] = get_remote_store):
        self.db = db
        self.store_factory = store_factory
        self.mappings = MappingRegistry(db)
        self.file_index = FileIndexService(db)
        self.root_folder = RootFolderService(db)

    def _store(self):
        try:
            return self.store_factory()
        except Exception as e:
            raise classify(e) from e

    def _project(self, project_code: str) -> Optional[models.Project]:
        return self.db.query(models.Project).filter_by(code=project_code).first()

    # --- provisioning ---

    def provision_project(
        self,
        project_code: str,
        template: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Dict[str, Any]:
        if not project_code:
            raise DomainError(ErrorKind.MISSING_PARAMETER, user_message="project_code is required.")

        project = self._project(project_code)
        if project is not None:
            template = template or project.template
            description = description if description is not None else project.object
        if not template:
            raise DomainError(ErrorKind.MISSING_PARAMETER, user_message="template is required.")

        if self.mappings.get(project_code):
            raise DomainError(
                ErrorKind.DUPLICATE_MAPPING,
                detail=f"Project {project_code} already has a remote folder",
            )

        root_path = self.root_folder.resolve_root_path()
        with REMOTE_OPERATION_SECONDS.labels(operation="provision_project").time():
            result: ProvisionResult = TemplateProvisioner(self._store()).provision(
                root_path, project_code, template, description
            )

        mapping = self.mappings.create(project_code, result.folder.id, result.folder.path, result.folder.name)
        payload = result.to_dict()
        payload["mapping"] = mapping
        return payload

    # --- scanning ---

    def scan_project(
        self,
        project_code: Optional[str] = None,
        folder_path: Optional[str] = None,
        include_subfolders: bool = True,
        include_folders: bool = False,
    ) -> Dict[str, Any]:
        """
        Scan a folder and index what it holds. A project's folder is addressed
        by its remote id; the stored path is only used while the id is unknown,
        and is refreshed when the folder turns out to have moved.
        """
        mapping = None
        if folder_path:
            folder_path = normalize_path(folder_path)
            ensure_valid_path(folder_path)
            target = folder_path
        elif project_code:
            mapping = self.mappings.get(project_code)
            if not mapping:
                raise DomainError(
                    ErrorKind.NOT_FOUND,
                    user_message=f"No remote folder mapping found for project {project_code}.",
                )
            target = mapping.remote_folder_id or mapping.remote_folder_path
        else:
            raise DomainError(
                ErrorKind.MISSING_PARAMETER,
                user_message="Either folder_path or project_code must be provided.",
            )

        max_depth = SCAN_DEPTH_WITH_SUBFOLDERS if include_subfolders else SCAN_DEPTH_FLAT
        with REMOTE_OPERATION_SECONDS.labels(operation="scan_project").time():
            report = RemoteScanner(self._store()).scan_with_report(
                target,
                include_subfolders=include_subfolders,
                max_depth=max_depth,
                include_folders=include_folders,
            )

        scanned_path = report.root_path or target
        if mapping is not None and report.root_listed and scanned_path != mapping.remote_folder_path:
            logger.info(
                "Mapped folder moved remotely",
                extra={"project_code": project_code, "old_path": mapping.remote_folder_path, "new_path": scanned_path},
            )
            self.mappings.update_path(project_code, scanned_path, scanned_path.rsplit("/", 1)[-1])

        indexed = index_items(self.file_index, report.succeeded, project_code)
        return {
            "path": scanned_path,
            "scanned": len(report.succeeded),
            "indexed": len(indexed),
            "files": [item.to_dict() for item in report.succeeded],
            "failed": [f.to_dict() for f in report.failed],
        }

    # --- move / rename ---

    def move_or_rename_file(
        self,
        file_id: str,
        target: Optional[str] = None,
        new_name: Optional[str] = None,
    ) -> MoveResult:
        with REMOTE_OPERATION_SECONDS.labels(operation="move_or_rename").time():
            result = MoveResolver(self._store()).move_or_rename(file_id, target, new_name)

        self.file_index.update(
            file_id,
            name=result.name,
            path=result.path,
            parent_folder_id=result.parent_folder_id,
        )
        return result

    def bulk_rename(self, operations: List[Dict[str, Any]]) -> BulkRenameReport:
        with REMOTE_OPERATION_SECONDS.labels(operation="bulk_rename").time():
            report = MoveResolver(self._store()).bulk_rename(operations)

        for item in report.results:
            if not item.success:
                continue
            record = self.file_index.get(item.file_id)
            if record is None:
                continue
            changes = {"name": item.renamed, "path": join_path(_parent_path(record.path), item.renamed)}
            if item.parent_folder_id:
                changes["parent_folder_id"] = item.parent_folder_id
            self.file_index.update(item.file_id, **changes)
        return report

    def upload_file(
        self,
        data: bytes,
        name: str,
        mime_type: str,
        project_code: Optional[str] = None,
        folder: Optional[str] = None,
    ) -> models.RemoteFileRecord:
        """Upload into a project's folder (or an explicit folder), avoiding name clashes."""
        ensure_valid_name(name)
        if folder is None:
            if not project_code:
                raise DomainError(
                    ErrorKind.MISSING_PARAMETER,
                    user_message="Either folder or project_code must be provided.",
                )
            mapping = self.mappings.get(project_code)
            if not mapping or not mapping.remote_folder_id:
                raise DomainError(
                    ErrorKind.NOT_FOUND,
                    user_message=f"No remote folder mapping found for project {project_code}.",
                )
            folder = mapping.remote_folder_id

        store = self._store()
        resolver = MoveResolver(store)
        try:
            parent = store.get_item(folder)
            final_name = resolver.resolve_name_conflict(parent["id"], name)
            created = store.put_content(parent["id"], final_name, data, mime_type)
            parent_path = store.get_path(parent["id"])
        except Exception as e:
            raise classify(e) from e

        sync_logger.info(
            action="upload",
            message=f"Uploaded {final_name}",
            project_code=project_code,
            remote_item_id=created["id"],
        )
        return self.file_index.create_or_update({
            "drive_item_id": created["id"],
            "name": created["name"],
            "path": join_path(parent_path, created["name"]),
            "size": int(created.get("size") or len(data)),
            "mime_type": created.get("mimeType", mime_type),
            "last_modified": created.get("modifiedTime"),
            "project_code": project_code,
            "parent_folder_id": parent["id"],
            "is_folder": False,
            "web_url": created.get("webViewLink"),
            "download_url": created.get("webContentLink"),
        })

    # --- reconciliation ---

    def reconcile_orphans(self) -> List[ReconcileOutcome]:
        projects = self.db.query(models.Project).order_by(models.Project.id).all()
        service = ReconciliationService(
            self.mappings,
            self.store_factory,
            self.root_folder.resolve_root_path(),
        )
        with REMOTE_OPERATION_SECONDS.labels(operation="reconcile").time():
            return service.reconcile(projects)

    # --- browsing ---

    def browse(self, path_or_id: str = "/") -> Dict[str, Any]:
        """List one folder, subfolders first."""
        path_or_id = path_or_id or "/"
        if is_path(path_or_id):
            path_or_id = normalize_path(path_or_id)
            ensure_valid_path(path_or_id)

        store = self._store()
        try:
            with REMOTE_OPERATION_SECONDS.labels(operation="browse").time():
                folder = store.get_item(path_or_id)
                if not is_folder(folder):
                    raise DomainError(ErrorKind.MISSING_PARAMETER, user_message="The remote item is not a folder.")
                folder_path = path_or_id if is_path(path_or_id) else store.get_path(folder["id"])
                children = store.list_children(folder["id"])
        except Exception as e:
            raise classify(e) from e

        items = [ScannedItem.from_remote(child, folder_path, folder["id"]) for child in children]
        items.sort(key=lambda item: (not item.is_folder, item.name.casefold()))
        return {
            "folder": {"id": folder["id"], "name": folder["name"], "path": folder_path},
            "items": [item.to_dict() for item in items],
        }

    def search_files(self, query: str) -> List[Dict[str, Any]]:
        """Name search across the store. Results carry their remote path."""
        query = (query or "").strip()
        if len(query) < MIN_SEARCH_LENGTH:
            raise DomainError(
                ErrorKind.MISSING_PARAMETER,
                user_message=f"Search query must be at least {MIN_SEARCH_LENGTH} characters.",
            )
        if len(query) > MAX_SEARCH_LENGTH:
            raise DomainError(
                ErrorKind.MISSING_PARAMETER,
                user_message=f"Search query too long (max {MAX_SEARCH_LENGTH} characters).",
            )

        store = self._store()
        try:
            with REMOTE_OPERATION_SECONDS.labels(operation="search").time():
                found = store.search(query)
        except Exception as e:
            raise classify(e) from e

        parent_paths: Dict[str, Optional[str]] = {}
        results = []
        for item in found:
            parents = item.get("parents") or []
            parent_id = parents[0] if parents else None
            if parent_id not in parent_paths:
                parent_paths[parent_id] = self._parent_path_of(store, parent_id)
            parent_path = parent_paths[parent_id]
            if parent_path is None:
                continue
            results.append(ScannedItem.from_remote(item, parent_path, parent_id).to_dict())
        return results

    def _parent_path_of(self, store: Any, parent_id: Optional[str]) -> Optional[str]:
        if parent_id is None:
            return "/"
        try:
            return store.get_path(parent_id)
        except Exception as e:
            error = classify(e)
            logger.warning(
                "Skipping search result with unresolvable parent",
                extra={"parent_id": parent_id, "kind": error.kind.value},
            )
            return None

    def _file_item(self, store: Any, file_id: str) -> Dict[str, Any]:
        if not file_id:
            raise DomainError(ErrorKind.MISSING_PARAMETER, user_message="file_id is required.")
        if len(file_id) > MAX_FILE_ID_LENGTH:
            raise DomainError(ErrorKind.MISSING_PARAMETER, user_message="file_id is too long.")
        item = store.get_item(file_id)
        if is_folder(item):
            raise DomainError(ErrorKind.MISSING_PARAMETER, user_message="The remote item is a folder.")
        return item

    def download_file(self, file_id: str) -> Tuple[Dict[str, Any], bytes]:
        """Metadata and raw bytes of a remote file."""
        store = self._store()
        try:
            with REMOTE_OPERATION_SECONDS.labels(operation="download").time():
                item = self._file_item(store, file_id)
                data = store.get_content(item["id"])
        except Exception as e:
            raise classify(e) from e

        sync_logger.info(action="download", message=f"Downloaded {item['name']}", remote_item_id=item["id"], size=len(data))
        return item, data

    def read_text_content(self, file_id: str) -> Optional[Dict[str, Any]]:
        """
        Text of a remote file, or None when its type is not textual
        (anything but text/*, JSON or XML).
        """
        store = self._store()
        try:
            item = self._file_item(store, file_id)
            mime_type = item.get("mimeType") or ""
            if not is_text_mime_type(mime_type):
                return None
            data = store.get_content(item["id"])
        except Exception as e:
            raise classify(e) from e

        return {
            "file_id": item["id"],
            "name": item["name"],
            "mime_type": mime_type,
            "content": data.decode("utf-8", errors="replace"),
        }

    # --- root folder ---

    def get_root_folder(self) -> Optional[Dict[str, Any]]:
        return self.root_folder.get()

    def set_root_folder(self, folder_path: str, folder_id: Optional[str] = None) -> Dict[str, Any]:
        return self.root_folder.set(folder_path, folder_id, store=self._store())

    def validate_folder(self, path_or_id: str) -> bool:
        """True when path_or_id names an existing, non-trashed folder."""
        if not path_or_id:
            raise DomainError(ErrorKind.MISSING_PARAMETER, user_message="A folder path or id is required.")
        try:
            item = self._store().get_item(path_or_id)
        except Exception as e:
            error = classify(e)
            if error.kind == ErrorKind.NOT_FOUND:
                return False
            raise error from e
        return is_folder(item) and not item.get("trashed")

    def test_connection(self) -> bool:
        return self._store().test_connection()

    # --- mappings ---

    def list_mappings(self) -> List[models.ProjectFolderMapping]:
        return self.mappings.get_all()

    def get_mapping(self, project_code: str) -> models.ProjectFolderMapping:
        mapping = self.mappings.get(project_code)
        if not mapping:
            raise DomainError(ErrorKind.NOT_FOUND, user_message=f"No mapping for project {project_code}.")
        return mapping

    def create_mapping(self, project_code: str, remote_folder_id: str) -> models.ProjectFolderMapping:
        """Map a project to an existing remote folder."""
        if not remote_folder_id:
            raise DomainError(ErrorKind.MISSING_PARAMETER, user_message="remote_folder_id is required.")
        if self.mappings.get(project_code):
            raise DomainError(ErrorKind.DUPLICATE_MAPPING, detail=f"Project {project_code} is already mapped")

        store = self._store()
        try:
            folder = store.get_item(remote_folder_id)
            path = store.get_path(folder["id"])
        except Exception as e:
            raise classify(e) from e
        if not is_folder(folder):
            raise DomainError(ErrorKind.MISSING_PARAMETER, user_message="The remote item is not a folder.")

        return self.mappings.create(project_code, folder["id"], path, folder["name"])

    def check_mapping(self, project_code: str) -> Dict[str, Any]:
        """
        Compare a mapping with the remote state. A folder that was renamed or
        moved updates the stored path; a missing or trashed one is reported stale.
        """
        mapping = self.get_mapping(project_code)
        store = self._store()
        if not self.mappings.validate_mapping(mapping, store):
            return {"project_code": project_code, "valid": False, "path_updated": False, "mapping": mapping}

        try:
            folder = store.get_item(mapping.remote_folder_id)
            current_path = store.get_path(mapping.remote_folder_id)
        except Exception as e:
            raise classify(e) from e

        path_updated = current_path != mapping.remote_folder_path
        if path_updated:
            logger.info(
                "Mapped folder moved remotely",
                extra={"project_code": project_code, "old_path": mapping.remote_folder_path, "new_path": current_path},
            )
            mapping = self.mappings.update_path(project_code, current_path, folder["name"])
        return {"project_code": project_code, "valid": True, "path_updated": path_updated, "mapping": mapping}

    def delete_project_mapping(self, project_code: str, clear_index: bool = False) -> bool:
        """Drop a mapping ahead of deleting the project record. Remote data is untouched."""
        deleted = self.mappings.delete(project_code)
        if clear_index:
            self.file_index.delete_for_project(project_code)
        return deleted

    # --- file index ---

    def list_files(
        self,
        project_code: Optional[str] = None,
        parent_folder_id: Optional[str] = None,
        include_folders: bool = True,
        limit: int = 500,
        offset: int = 0,
    ) -> List[models.RemoteFileRecord]:
        return self.file_index.list(project_code, parent_folder_id, include_folders, limit, offset)

    def delete_file_record(self, drive_item_id: str) -> bool:
        return self.file_index.delete(drive_item_id)
