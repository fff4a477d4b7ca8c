from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text, JSON
from sqlalchemy.sql import func
from database import Base


class Project(Base):
    """
    Read-only view of the local project registry.
    The sync engine reads code, template and object (description); the
    bookkeeping application owns the rest of the row.
    """
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String, unique=True, index=True, nullable=False)
    client = Column(String, nullable=True)
    city = Column(String, nullable=True)
    object = Column(Text, nullable=True)  # Project description, used in the folder name
    year = Column(Integer, nullable=True)
    template = Column(String, nullable=False, default="LUNGO")  # 'LUNGO' or 'BREVE'
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class ProjectFolderMapping(Base):
    """
    Persisted association project code <-> remote folder.
    remote_folder_id is authoritative once known; remote_folder_path may go
    stale if the folder is moved or renamed outside this service.
    """
    __tablename__ = "project_folder_mappings"

    id = Column(Integer, primary_key=True, index=True)
    project_code = Column(String, unique=True, index=True, nullable=False)
    # NULL while unresolved, so several pending rows don't collide on the unique index
    remote_folder_id = Column(String, unique=True, index=True, nullable=True)
    remote_folder_path = Column(String, nullable=False)
    remote_folder_name = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class RemoteFileRecord(Base):
    __tablename__ = "remote_file_index"

    id = Column(Integer, primary_key=True, index=True)
    drive_item_id = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False)
    path = Column(String, nullable=False)
    size = Column(Integer, default=0)
    mime_type = Column(String, nullable=True)
    last_modified = Column(DateTime(timezone=True), nullable=True)
    project_code = Column(String, index=True, nullable=True)
    parent_folder_id = Column(String, index=True, nullable=True)
    is_folder = Column(Boolean, default=False)
    # Ephemeral links, refreshed on every scan
    web_url = Column(String, nullable=True)
    download_url = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class SystemConfig(Base):
    """Keyed JSON configuration records (e.g. the remote root folder)."""
    __tablename__ = "system_config"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String, unique=True, index=True, nullable=False)
    value = Column(JSON, nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
