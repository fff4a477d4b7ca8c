from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class RootFolderRequest(BaseModel):
    folderPath: str = Field(..., min_length=1)
    folderId: Optional[str] = None


class RootFolderConfig(BaseModel):
    folderPath: str
    folderId: Optional[str] = None
    folderName: str
    lastUpdated: Optional[str] = None


class RootFolderResponse(BaseModel):
    configured: bool
    config: Optional[RootFolderConfig] = None


class ProvisionRequest(BaseModel):
    project_code: str = Field(..., min_length=1)
    template: Optional[str] = None
    description: Optional[str] = None


class MappingCreateRequest(BaseModel):
    project_code: str = Field(..., min_length=1)
    remote_folder_id: str = Field(..., min_length=1)


class FolderMapping(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    project_code: str
    remote_folder_id: Optional[str] = None
    remote_folder_path: str
    remote_folder_name: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProvisionedFolderOut(BaseModel):
    id: str
    name: str
    path: str


class FailureOut(BaseModel):
    item: str
    kind: str
    message: str


class ProvisionResponse(BaseModel):
    success: bool = True
    folder: ProvisionedFolderOut
    template: str
    mapping: FolderMapping
    subfolders_created: List[ProvisionedFolderOut] = []
    subfolders_failed: List[FailureOut] = []
    warning: Optional[Dict[str, Any]] = None


class ScanRequest(BaseModel):
    project_code: Optional[str] = None
    folder_path: Optional[str] = None
    include_subfolders: bool = True
    include_folders: bool = False


class ScannedItemOut(BaseModel):
    id: str
    name: str
    path: str
    parent_path: str
    parent_folder_id: Optional[str] = None
    is_folder: bool
    size: int = 0
    mime_type: Optional[str] = None
    last_modified: Optional[str] = None
    web_url: Optional[str] = None
    download_url: Optional[str] = None


class ScanResponse(BaseModel):
    success: bool = True
    path: str
    scanned: int
    indexed: int
    files: List[ScannedItemOut]
    failed: List[FailureOut] = []


class MoveRequest(BaseModel):
    file_id: str = Field(..., min_length=1)
    target: Optional[str] = None
    new_name: Optional[str] = None


class MoveResponse(BaseModel):
    success: bool = True
    file_id: str
    name: str
    path: str
    parent_folder_id: str


class BulkRenameOperation(BaseModel):
    file_id: Optional[str] = None
    new_name: Optional[str] = None
    original_name: Optional[str] = None


class BulkRenameRequest(BaseModel):
    operations: List[BulkRenameOperation]


class BulkRenameItemOut(BaseModel):
    file_id: Optional[str] = None
    original: str
    renamed: Optional[str] = None
    success: bool
    error: Optional[str] = None
    kind: Optional[str] = None


class BulkRenameResponse(BaseModel):
    results: List[BulkRenameItemOut]
    summary: Dict[str, int]


class ReconcileOutcomeOut(BaseModel):
    project_code: str
    status: str
    message: str
    folder_id: Optional[str] = None
    error_kind: Optional[str] = None


class ReconcileResponse(BaseModel):
    processed: int
    outcomes: List[ReconcileOutcomeOut]


class MappingCheckResponse(BaseModel):
    project_code: str
    valid: bool
    path_updated: bool
    mapping: FolderMapping


class ValidateFolderRequest(BaseModel):
    folder: str = Field(..., min_length=1)


class RemoteFile(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    drive_item_id: str
    name: str
    path: str
    size: Optional[int] = 0
    mime_type: Optional[str] = None
    last_modified: Optional[datetime] = None
    project_code: Optional[str] = None
    parent_folder_id: Optional[str] = None
    is_folder: bool = False
    web_url: Optional[str] = None
    download_url: Optional[str] = None
    updated_at: Optional[datetime] = None


class BrowseResponse(BaseModel):
    folder: ProvisionedFolderOut
    items: List[ScannedItemOut]


class SearchResponse(BaseModel):
    query: str
    count: int
    items: List[ScannedItemOut]


class FileContentResponse(BaseModel):
    file_id: str
    name: str
    mime_type: str
    content: str
