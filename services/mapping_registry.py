import logging
from typing import Any, Iterable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

import models
from services.error_classifier import classify
from services.errors import DomainError, ErrorKind

logger = logging.getLogger("projectsync.mapping_registry")


class MappingRegistry:
    """
    Persisted project code <-> remote folder mappings.
    At most one mapping per project code; a remote folder id maps to at most
    one project once it is known.
    """

    def __init__(self, db: Session):
        self.db = db

    def get(self, project_code: str) -> Optional[models.ProjectFolderMapping]:
        return self.db.query(models.ProjectFolderMapping).filter_by(project_code=project_code).first()

    def get_all(self) -> List[models.ProjectFolderMapping]:
        return (
            self.db.query(models.ProjectFolderMapping)
            .order_by(models.ProjectFolderMapping.project_code)
            .all()
        )

    def find_by_folder_id(self, remote_folder_id: str) -> Optional[models.ProjectFolderMapping]:
        if not remote_folder_id:
            return None
        return self.db.query(models.ProjectFolderMapping).filter_by(remote_folder_id=remote_folder_id).first()

    def create(
        self,
        project_code: str,
        remote_folder_id: Optional[str],
        remote_folder_path: str,
        remote_folder_name: str,
    ) -> models.ProjectFolderMapping:
        if not project_code:
            raise DomainError(ErrorKind.MISSING_PARAMETER, user_message="project_code is required.")

        if self.get(project_code):
            raise DomainError(
                ErrorKind.DUPLICATE_MAPPING,
                detail=f"Project {project_code} is already mapped",
            )

        owner = self.find_by_folder_id(remote_folder_id)
        if owner is not None:
            raise DomainError(
                ErrorKind.DUPLICATE_MAPPING,
                user_message=f"Remote folder is already mapped to project {owner.project_code}.",
                detail=f"Folder {remote_folder_id} belongs to {owner.project_code}",
            )

        mapping = models.ProjectFolderMapping(
            project_code=project_code,
            # Empty ids are stored as NULL so unresolved rows don't collide
            remote_folder_id=remote_folder_id or None,
            remote_folder_path=remote_folder_path,
            remote_folder_name=remote_folder_name,
        )

        try:
            self.db.add(mapping)
            self.db.commit()
            self.db.refresh(mapping)
        except IntegrityError:
            # Concurrent writer, or the folder already belongs to another project
            self.db.rollback()
            logger.warning(
                "Mapping insert rejected by unique constraint",
                extra={"project_code": project_code, "remote_folder_id": remote_folder_id},
            )
            raise DomainError(
                ErrorKind.DUPLICATE_MAPPING,
                detail=f"Mapping for {project_code} or folder {remote_folder_id} already exists",
            )

        logger.info(
            "Mapping created",
            extra={"project_code": project_code, "remote_folder_id": mapping.remote_folder_id},
        )
        return mapping

    def delete(self, project_code: str) -> bool:
        mapping = self.get(project_code)
        if not mapping:
            return False
        self.db.delete(mapping)
        self.db.commit()
        logger.info("Mapping deleted", extra={"project_code": project_code})
        return True

    def update_path(
        self,
        project_code: str,
        remote_folder_path: str,
        remote_folder_name: Optional[str] = None,
    ) -> models.ProjectFolderMapping:
        """Record a new location for a mapped folder (renamed or moved remotely)."""
        mapping = self.get(project_code)
        if not mapping:
            raise DomainError(ErrorKind.NOT_FOUND, detail=f"No mapping for project {project_code}")

        mapping.remote_folder_path = remote_folder_path
        if remote_folder_name:
            mapping.remote_folder_name = remote_folder_name
        self.db.commit()
        self.db.refresh(mapping)
        return mapping

    def find_orphan_projects(self, all_projects: Iterable[Any]) -> List[Any]:
        """Projects without a mapping, in input order."""
        mapped_codes = {
            code for (code,) in self.db.query(models.ProjectFolderMapping.project_code).all()
        }
        return [project for project in all_projects if project.code not in mapped_codes]

    def validate_mapping(self, mapping: models.ProjectFolderMapping, store: Any) -> bool:
        """
        Checks that the mapped folder still exists remotely and is not trashed.
        Only a NotFound answer marks the mapping stale; other failures propagate.
        """
        if not mapping.remote_folder_id:
            return False
        try:
            folder = store.get_item(mapping.remote_folder_id)
        except Exception as e:
            error = classify(e)
            if error.kind == ErrorKind.NOT_FOUND:
                logger.info(
                    "Mapped folder no longer exists",
                    extra={"project_code": mapping.project_code, "remote_folder_id": mapping.remote_folder_id},
                )
                return False
            raise error from e

        if folder.get('trashed'):
            logger.info(
                "Mapped folder is trashed",
                extra={"project_code": mapping.project_code, "remote_folder_id": mapping.remote_folder_id},
            )
            return False
        return True
