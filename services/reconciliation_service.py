import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional

from services.error_classifier import classify
from services.errors import ErrorKind
from services.mapping_registry import MappingRegistry
from services.name_validator import join_path, normalize_path
from services.remote_store import is_folder
from services.template_provisioner import TemplateProvisioner, compose_folder_name
from utils.prometheus import RECONCILE_PROJECTS_TOTAL
from utils.structured_logging import sync_logger

logger = logging.getLogger("projectsync.reconciliation")

MAPPED_EXISTING = "mapped_existing"
CREATED_NEW = "created_new"
ERROR = "error"


@dataclass
class ReconcileOutcome:
    project_code: str
    status: str
    message: str
    folder_id: Optional[str] = None
    error_kind: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "project_code": self.project_code,
            "status": self.status,
            "message": self.message,
            "folder_id": self.folder_id,
            "error_kind": self.error_kind,
        }


class ReconciliationService:
    """
    Gives every unmapped project a remote folder, one project at a time.
    An existing folder is adopted; otherwise the project is provisioned.
    Failures are reported per project and never stop the run.
    """

    def __init__(self, registry: MappingRegistry, store_factory: Callable[[], Any], root_path: str):
        self.registry = registry
        self.store_factory = store_factory
        self.root_path = normalize_path(root_path)

    def reconcile(self, all_projects: Iterable[Any]) -> List[ReconcileOutcome]:
        orphans = self.registry.find_orphan_projects(all_projects)
        sync_logger.info(
            action="reconcile",
            status="started",
            message=f"Reconciling {len(orphans)} unmapped projects under {self.root_path}",
        )

        outcomes = []
        for project in orphans:
            try:
                outcome = self._reconcile_one(project)
            except Exception as e:
                error = classify(e)
                sync_logger.error(
                    action="reconcile",
                    message=f"Reconciliation failed for {project.code}",
                    error=error,
                    project_code=project.code,
                )
                outcome = ReconcileOutcome(
                    project_code=project.code,
                    status=ERROR,
                    message=error.user_message,
                    error_kind=error.kind.value,
                )
            RECONCILE_PROJECTS_TOTAL.labels(status=outcome.status).inc()
            outcomes.append(outcome)

        return outcomes

    def _find_existing(self, store: Any, project: Any) -> Optional[Dict[str, Any]]:
        candidates = [join_path(self.root_path, project.code)]
        composed = compose_folder_name(project.code, getattr(project, "object", None))
        composed_path = join_path(self.root_path, composed)
        if composed_path not in candidates:
            candidates.append(composed_path)

        for path in candidates:
            try:
                item = store.get_item(path)
            except Exception as e:
                error = classify(e)
                if error.kind == ErrorKind.NOT_FOUND:
                    continue
                raise error from e
            if is_folder(item) and not item.get("trashed"):
                return dict(item, path=path)
        return None

    def _reconcile_one(self, project: Any) -> ReconcileOutcome:
        store = self.store_factory()

        existing = self._find_existing(store, project)
        if existing:
            self.registry.create(project.code, existing["id"], existing["path"], existing["name"])
            sync_logger.info(
                action="reconcile",
                status=MAPPED_EXISTING,
                message=f"Mapped existing folder {existing['path']}",
                project_code=project.code,
                remote_item_id=existing["id"],
            )
            return ReconcileOutcome(
                project_code=project.code,
                status=MAPPED_EXISTING,
                message=f"Mapped existing folder {existing['path']}",
                folder_id=existing["id"],
            )

        result = TemplateProvisioner(store).provision(
            self.root_path,
            project.code,
            getattr(project, "template", None) or "LUNGO",
            getattr(project, "object", None),
        )
        folder = result.folder
        self.registry.create(project.code, folder.id, folder.path, folder.name)

        message = f"Created folder {folder.path}"
        warning = result.warning
        if warning is not None:
            message = f"{message} ({warning.user_message})"
        return ReconcileOutcome(
            project_code=project.code,
            status=CREATED_NEW,
            message=message,
            folder_id=folder.id,
        )
