"""
Creates a project folder and its template subfolders on the remote store.

The project folder itself must be created: a name conflict or any other
failure there is fatal. Subfolders are created one by one and failures are
collected, so a project with a partially built tree still gets its mapping.
"""

import logging
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from services.error_classifier import classify
from services.errors import DomainError, ErrorKind, PartialResult
from services.name_validator import (
    ensure_valid_name,
    ensure_valid_path,
    join_path,
    normalize_path,
)
from utils.prometheus import PROVISION_TOTAL
from utils.structured_logging import sync_logger

logger = logging.getLogger("projectsync.template_provisioner")

MAX_FOLDER_NAME_LENGTH = 255


@dataclass(frozen=True)
class TemplateDefinition:
    name: str
    alias: str
    folders: Tuple[str, ...]


LUNGO = TemplateDefinition(
    name="LUNGO",
    alias="long",
    folders=(
        "1_CONSEGNA",
        "2_PERMIT",
        "3_PROGETTO",
        "4_MATERIALE_RICEVUTO",
        "5_CANTIERE",
        "6_VERBALI_NOTIFICHE_COMUNICAZIONI",
        "7_SOPRALLUOGHI",
        "8_VARIANTI",
        "9_PARCELLA",
        "10_INCARICO",
    ),
)

BREVE = TemplateDefinition(
    name="BREVE",
    alias="short",
    folders=(
        "CONSEGNA",
        "ELABORAZIONI",
        "MATERIALE_RICEVUTO",
        "SOPRALLUOGHI",
    ),
)

TEMPLATES: Dict[str, TemplateDefinition] = {t.name: t for t in (LUNGO, BREVE)}


def get_template(identifier: Optional[str]) -> TemplateDefinition:
    """Look up a template by name or alias, case-insensitively."""
    key = (identifier or "").strip().lower()
    for template in TEMPLATES.values():
        if key in (template.name.lower(), template.alias.lower()):
            return template
    raise DomainError(
        ErrorKind.MISSING_PARAMETER,
        user_message=f"Unknown template '{identifier}'. Use LUNGO or BREVE.",
    )


def sanitize_project_code(project_code: str) -> str:
    return re.sub(r"[^A-Za-z0-9_-]", "", project_code or "")


def sanitize_description(description: Optional[str]) -> str:
    """
    ASCII-only, underscore separated version of a description:
    "Ponte sul Po" -> "Ponte_sul_Po", "Città nuova" -> "Citta_nuova".
    """
    if not description or not description.strip():
        return ""
    text = unicodedata.normalize("NFKD", description.strip())
    text = text.encode("ascii", "ignore").decode("ascii")
    text = re.sub(r"\s+", "_", text)
    text = re.sub(r"[^A-Za-z0-9_-]", "", text)
    text = re.sub(r"_+", "_", text)
    return text.strip("_")


def compose_folder_name(project_code: str, description: Optional[str] = None) -> str:
    """
    CODE or CODE_DESCRIPTION, at most 255 characters. The description is
    truncated first so the code prefix always survives.
    """
    code = sanitize_project_code(project_code)
    if not code:
        raise DomainError(
            ErrorKind.INVALID_NAME,
            user_message="Project code contains no valid characters. Use letters, numbers, hyphens and underscores.",
        )
    code = code[:MAX_FOLDER_NAME_LENGTH]

    suffix = sanitize_description(description)
    if not suffix:
        return code

    available = MAX_FOLDER_NAME_LENGTH - len(code) - 1
    suffix = suffix[:max(0, available)].rstrip("_")
    return f"{code}_{suffix}" if suffix else code


@dataclass
class ProvisionedFolder:
    id: str
    name: str
    path: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "path": self.path}


@dataclass
class ProvisionResult:
    folder: ProvisionedFolder
    template: str
    subfolders: PartialResult = field(default_factory=PartialResult)

    @property
    def warning(self) -> Optional[DomainError]:
        if self.subfolders.ok:
            return None
        failed = ", ".join(f.item for f in self.subfolders.failed)
        return DomainError(ErrorKind.TEMPLATE_PARTIAL_FAILURE, detail=f"Missing subfolders: {failed}")

    def to_dict(self) -> Dict[str, Any]:
        warning = self.warning
        return {
            "folder": self.folder.to_dict(),
            "template": self.template,
            "subfolders_created": [s.to_dict() for s in self.subfolders.succeeded],
            "subfolders_failed": [f.to_dict() for f in self.subfolders.failed],
            "warning": warning.to_dict() if warning else None,
        }


class TemplateProvisioner:
    def __init__(self, store: Any):
        self.store = store

    def provision(
        self,
        root_path: str,
        project_code: str,
        template: str,
        description: Optional[str] = None,
    ) -> ProvisionResult:
        definition = get_template(template)
        folder_name = compose_folder_name(project_code, description)

        root_path = normalize_path(root_path)
        ensure_valid_path(root_path)
        ensure_valid_name(folder_name)
        project_path = join_path(root_path, folder_name)

        try:
            created = self.store.create_folder(root_path, folder_name)
        except Exception as e:
            error = classify(e)
            PROVISION_TOTAL.labels(outcome="failed").inc()
            sync_logger.error(
                action="provision",
                message=f"Failed to create project folder {project_path}",
                error=error,
                project_code=project_code,
            )
            raise error from e

        folder = ProvisionedFolder(id=created["id"], name=created.get("name", folder_name), path=project_path)
        result = ProvisionResult(folder=folder, template=definition.name)

        for subfolder_name in definition.folders:
            try:
                sub = self.store.create_folder(folder.id, subfolder_name)
                result.subfolders.succeeded.append(
                    ProvisionedFolder(id=sub["id"], name=subfolder_name, path=join_path(project_path, subfolder_name))
                )
            except Exception as e:
                error = classify(e)
                result.subfolders.add_failure(subfolder_name, error)
                sync_logger.warning(
                    action="provision_subfolder",
                    message=f"Failed to create template subfolder {subfolder_name}",
                    project_code=project_code,
                    remote_item_id=folder.id,
                    error_kind=error.kind.value,
                )

        outcome = "created" if result.subfolders.ok else "partial"
        PROVISION_TOTAL.labels(outcome=outcome).inc()
        sync_logger.info(
            action="provision",
            status=outcome,
            message=f"Provisioned {project_path} with {definition.name} template",
            project_code=project_code,
            remote_item_id=folder.id,
            subfolders_created=len(result.subfolders.succeeded),
            subfolders_failed=len(result.subfolders.failed),
        )
        return result
