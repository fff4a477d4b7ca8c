from typing import List, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Response, UploadFile
from sqlalchemy.orm import Session

from database import get_db
from services.errors import DomainError, ErrorKind
from services.project_sync_service import ProjectSyncService
from schemas.remote_sync import (
    BrowseResponse,
    BulkRenameRequest,
    BulkRenameResponse,
    FileContentResponse,
    FolderMapping,
    MappingCheckResponse,
    MappingCreateRequest,
    MoveRequest,
    MoveResponse,
    ProvisionRequest,
    ProvisionResponse,
    ReconcileResponse,
    RemoteFile,
    RootFolderRequest,
    RootFolderResponse,
    ScanRequest,
    ScanResponse,
    SearchResponse,
    ValidateFolderRequest,
)

router = APIRouter(tags=["remote-sync"])


def get_sync_service(db: Session = Depends(get_db)) -> ProjectSyncService:
    return ProjectSyncService(db)


# --- root folder ---

@router.get("/root-folder", response_model=RootFolderResponse)
def get_root_folder(service: ProjectSyncService = Depends(get_sync_service)):
    current = service.get_root_folder()
    if not current:
        return {"configured": False}
    return {"configured": True, "config": current}


@router.post("/root-folder", response_model=RootFolderResponse)
def set_root_folder(
    request: RootFolderRequest,
    service: ProjectSyncService = Depends(get_sync_service),
):
    saved = service.set_root_folder(request.folderPath, request.folderId)
    return {"configured": True, "config": saved}


@router.post("/folders/validate")
def validate_folder(
    request: ValidateFolderRequest,
    service: ProjectSyncService = Depends(get_sync_service),
):
    return {"folder": request.folder, "valid": service.validate_folder(request.folder)}


@router.get("/connection")
def test_connection(service: ProjectSyncService = Depends(get_sync_service)):
    return {"connected": service.test_connection()}


# --- browsing ---

@router.get("/browse", response_model=BrowseResponse)
def browse(
    path: str = Query("/", max_length=500),
    service: ProjectSyncService = Depends(get_sync_service),
):
    """List a folder by path (or id), subfolders first."""
    return service.browse(path)


@router.get("/search", response_model=SearchResponse)
def search_files(q: str = Query(...), service: ProjectSyncService = Depends(get_sync_service)):
    items = service.search_files(q)
    return {"query": q.strip(), "count": len(items), "items": items}


@router.get("/files/{file_id}/download")
def download_file(file_id: str, service: ProjectSyncService = Depends(get_sync_service)):
    item, data = service.download_file(file_id)
    return Response(
        content=data,
        media_type=item.get("mimeType") or "application/octet-stream",
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(item['name'])}"},
    )


@router.get("/files/{file_id}/content", response_model=FileContentResponse)
def get_file_content(file_id: str, service: ProjectSyncService = Depends(get_sync_service)):
    content = service.read_text_content(file_id)
    if content is None:
        raise HTTPException(status_code=422, detail="File content not available (binary or unsupported type)")
    return content


# --- provisioning & reconciliation ---

@router.post("/projects/provision", response_model=ProvisionResponse)
def provision_project(
    request: ProvisionRequest,
    response: Response,
    service: ProjectSyncService = Depends(get_sync_service),
):
    """
    Create the project folder and its template subfolders.
    Answers 207 when the folder exists but some subfolders could not be created.
    """
    result = service.provision_project(request.project_code, request.template, request.description)
    if result["warning"]:
        response.status_code = 207
    result["mapping"] = FolderMapping.model_validate(result["mapping"])
    return result


@router.post("/reconcile", response_model=ReconcileResponse)
def reconcile_orphans(service: ProjectSyncService = Depends(get_sync_service)):
    outcomes = service.reconcile_orphans()
    return {"processed": len(outcomes), "outcomes": [o.to_dict() for o in outcomes]}


# --- mappings ---

@router.get("/mappings", response_model=List[FolderMapping])
def list_mappings(service: ProjectSyncService = Depends(get_sync_service)):
    return service.list_mappings()


@router.post("/mappings", response_model=FolderMapping, status_code=201)
def create_mapping(
    request: MappingCreateRequest,
    service: ProjectSyncService = Depends(get_sync_service),
):
    return service.create_mapping(request.project_code, request.remote_folder_id)


@router.get("/mappings/{project_code}", response_model=FolderMapping)
def get_mapping(project_code: str, service: ProjectSyncService = Depends(get_sync_service)):
    return service.get_mapping(project_code)


@router.get("/mappings/{project_code}/check", response_model=MappingCheckResponse)
def check_mapping(project_code: str, service: ProjectSyncService = Depends(get_sync_service)):
    result = service.check_mapping(project_code)
    result["mapping"] = FolderMapping.model_validate(result["mapping"])
    return result


@router.delete("/mappings/{project_code}")
def delete_mapping(
    project_code: str,
    clear_index: bool = Query(False),
    service: ProjectSyncService = Depends(get_sync_service),
):
    if not service.delete_project_mapping(project_code, clear_index=clear_index):
        raise DomainError(ErrorKind.NOT_FOUND, user_message=f"No mapping for project {project_code}.")
    return {"success": True, "project_code": project_code}


# --- files ---

@router.post("/scan", response_model=ScanResponse)
def scan_files(request: ScanRequest, service: ProjectSyncService = Depends(get_sync_service)):
    return service.scan_project(
        project_code=request.project_code,
        folder_path=request.folder_path,
        include_subfolders=request.include_subfolders,
        include_folders=request.include_folders,
    )


@router.get("/files", response_model=List[RemoteFile])
def list_files(
    project_code: Optional[str] = None,
    parent_folder_id: Optional[str] = None,
    include_folders: bool = True,
    limit: int = Query(500, ge=1, le=5000),
    offset: int = Query(0, ge=0),
    service: ProjectSyncService = Depends(get_sync_service),
):
    return service.list_files(project_code, parent_folder_id, include_folders, limit, offset)


@router.delete("/files/{drive_item_id}")
def delete_file_record(drive_item_id: str, service: ProjectSyncService = Depends(get_sync_service)):
    if not service.delete_file_record(drive_item_id):
        raise DomainError(ErrorKind.NOT_FOUND, user_message=f"File {drive_item_id} is not indexed.")
    return {"success": True, "drive_item_id": drive_item_id}


@router.post("/files/move", response_model=MoveResponse)
def move_or_rename_file(request: MoveRequest, service: ProjectSyncService = Depends(get_sync_service)):
    result = service.move_or_rename_file(request.file_id, request.target, request.new_name)
    return result.to_dict()


@router.post("/files/bulk-rename", response_model=BulkRenameResponse)
def bulk_rename(request: BulkRenameRequest, service: ProjectSyncService = Depends(get_sync_service)):
    report = service.bulk_rename([op.model_dump() for op in request.operations])
    return {"results": [r.to_dict() for r in report.results], "summary": report.summary}


@router.post("/files/upload", response_model=RemoteFile, status_code=201)
def upload_file(
    file: UploadFile = File(...),
    project_code: Optional[str] = Form(None),
    folder: Optional[str] = Form(None),
    service: ProjectSyncService = Depends(get_sync_service),
):
    content = file.file.read()
    return service.upload_file(
        content,
        file.filename,
        file.content_type or "application/octet-stream",
        project_code=project_code,
        folder=folder,
    )
