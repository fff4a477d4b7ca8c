import pytest

from services.errors import DomainError, ErrorKind
from services.project_sync_service import ProjectSyncService, _parent_path


@pytest.fixture
def service(db_session, mock_store):
    return ProjectSyncService(db_session, store_factory=lambda: mock_store)


@pytest.mark.parametrize(
    "path,expected",
    [("/a/b/c.pdf", "/a/b"), ("/c.pdf", "/"), ("", "/"), (None, "/"), ("/a/", "/")],
)
def test_parent_path(path, expected):
    assert _parent_path(path) == expected


def test_provision_uses_project_defaults(service, projects_root, make_project):
    make_project("24ABCXYZ01", "BREVE", "Ponte sul Po")

    payload = service.provision_project("24ABCXYZ01")

    assert payload["folder"]["path"] == "/G2_Progetti/24ABCXYZ01_Ponte_sul_Po"
    assert payload["template"] == "BREVE"
    assert len(payload["subfolders_created"]) == 4
    assert payload["warning"] is None
    assert payload["mapping"].remote_folder_id == payload["folder"]["id"]


def test_provision_twice_is_a_duplicate_mapping(service, projects_root, mock_store):
    service.provision_project("24DUP00001", template="BREVE")
    before = mock_store.list_children("/G2_Progetti")

    with pytest.raises(DomainError) as exc_info:
        service.provision_project("24DUP00001", template="BREVE", description="Another")
    assert exc_info.value.kind == ErrorKind.DUPLICATE_MAPPING
    assert mock_store.list_children("/G2_Progetti") == before


def test_provision_unknown_project_needs_template(service):
    with pytest.raises(DomainError) as exc_info:
        service.provision_project("24NEW00001")
    assert exc_info.value.kind == ErrorKind.MISSING_PARAMETER


def test_provision_under_configured_root(service, mock_store):
    mock_store.create_folder("/", "Commesse")
    service.set_root_folder("/Commesse")

    payload = service.provision_project("24ROOT0001", template="short")

    assert payload["folder"]["path"] == "/Commesse/24ROOT0001"


def test_scan_project_indexes_files(service, mock_store, projects_root):
    payload = service.provision_project("24SCAN0001", template="BREVE")
    mock_store.put_content("/G2_Progetti/24SCAN0001/CONSEGNA", "tavola.pdf", b"123", "application/pdf")

    result = service.scan_project(project_code="24SCAN0001")

    assert result["path"] == payload["folder"]["path"]
    assert result["scanned"] == 1
    assert result["indexed"] == 1
    assert result["failed"] == []
    record = service.list_files(project_code="24SCAN0001")[0]
    assert record.path == "/G2_Progetti/24SCAN0001/CONSEGNA/tavola.pdf"


def test_scan_follows_a_renamed_project_folder(service, mock_store, projects_root):
    payload = service.provision_project("24REN00001", template="BREVE")
    mock_store.put_content(payload["folder"]["id"], "a.pdf", b"123", "application/pdf")
    mock_store.patch_item(payload["folder"]["id"], name="24REN00001_Rinominata")

    result = service.scan_project(project_code="24REN00001", include_subfolders=False)

    assert result["scanned"] == 1
    assert result["failed"] == []
    assert result["path"] == "/G2_Progetti/24REN00001_Rinominata"
    assert result["files"][0]["path"] == "/G2_Progetti/24REN00001_Rinominata/a.pdf"
    mapping = service.get_mapping("24REN00001")
    assert mapping.remote_folder_path == "/G2_Progetti/24REN00001_Rinominata"
    assert mapping.remote_folder_name == "24REN00001_Rinominata"


def test_scan_requires_target(service):
    with pytest.raises(DomainError) as exc_info:
        service.scan_project()
    assert exc_info.value.kind == ErrorKind.MISSING_PARAMETER

    with pytest.raises(DomainError) as exc_info:
        service.scan_project(project_code="24NOPE0001")
    assert exc_info.value.kind == ErrorKind.NOT_FOUND


def test_move_updates_index(service, mock_store, projects_root):
    service.provision_project("24MOVE0001", template="BREVE")
    file = mock_store.put_content("/G2_Progetti/24MOVE0001/CONSEGNA", "a.pdf", b"1", "application/pdf")
    service.scan_project(project_code="24MOVE0001")

    result = service.move_or_rename_file(file["id"], "/G2_Progetti/24MOVE0001/SOPRALLUOGHI", "foto.pdf")

    record = service.file_index.get(file["id"])
    assert record.path == result.path == "/G2_Progetti/24MOVE0001/SOPRALLUOGHI/foto.pdf"
    assert record.parent_folder_id == result.parent_folder_id


def test_bulk_rename_updates_index(service, mock_store, projects_root):
    service.provision_project("24BULK0001", template="BREVE")
    file = mock_store.put_content("/G2_Progetti/24BULK0001/CONSEGNA", "a.pdf", b"1", "application/pdf")
    service.scan_project(project_code="24BULK0001")

    report = service.bulk_rename([{"file_id": file["id"], "new_name": "b.pdf"}])

    assert report.summary["succeeded"] == 1
    record = service.file_index.get(file["id"])
    assert record.name == "b.pdf"
    assert record.path == "/G2_Progetti/24BULK0001/CONSEGNA/b.pdf"


def test_upload_avoids_name_clash(service, mock_store, projects_root):
    service.provision_project("24UPL00001", template="BREVE")

    first = service.upload_file(b"one", "offerta.pdf", "application/pdf", project_code="24UPL00001")
    second = service.upload_file(b"two", "offerta.pdf", "application/pdf", project_code="24UPL00001")

    assert first.name == "offerta.pdf"
    assert second.name == "offerta_1.pdf"
    assert second.path == "/G2_Progetti/24UPL00001/offerta_1.pdf"
    assert second.size == 3
    assert mock_store.get_content(second.drive_item_id) == b"two"


def test_upload_requires_destination(service):
    with pytest.raises(DomainError) as exc_info:
        service.upload_file(b"x", "a.pdf", "application/pdf")
    assert exc_info.value.kind == ErrorKind.MISSING_PARAMETER

    with pytest.raises(DomainError) as exc_info:
        service.upload_file(b"x", "a.pdf", "application/pdf", project_code="24NOPE0001")
    assert exc_info.value.kind == ErrorKind.NOT_FOUND


def test_reconcile_orphans(service, mock_store, projects_root, make_project):
    make_project("24ORF00001", "BREVE")
    make_project("24ORF00002", "LUNGO")
    service.provision_project("24ORF00002")

    outcomes = service.reconcile_orphans()

    assert [o.project_code for o in outcomes] == ["24ORF00001"]
    assert service.get_mapping("24ORF00001").remote_folder_path == "/G2_Progetti/24ORF00001"


def test_validate_folder(service, mock_store, projects_root):
    file = mock_store.put_content("/G2_Progetti", "a.txt", b"x", "text/plain")

    assert service.validate_folder("/G2_Progetti") is True
    assert service.validate_folder(projects_root["id"]) is True
    assert service.validate_folder("/Nope") is False
    assert service.validate_folder(file["id"]) is False
    with pytest.raises(DomainError):
        service.validate_folder("")


def test_create_mapping_for_existing_folder(service, mock_store, projects_root):
    folder = mock_store.create_folder(projects_root["id"], "24EXT00001_vecchio")

    mapping = service.create_mapping("24EXT00001", folder["id"])

    assert mapping.remote_folder_path == "/G2_Progetti/24EXT00001_vecchio"
    assert mapping.remote_folder_name == "24EXT00001_vecchio"

    with pytest.raises(DomainError) as exc_info:
        service.create_mapping("24EXT00001", folder["id"])
    assert exc_info.value.kind == ErrorKind.DUPLICATE_MAPPING


def test_check_mapping_follows_remote_moves(service, mock_store, projects_root):
    service.provision_project("24CHK00001", template="BREVE")
    archive = mock_store.create_folder("/", "Archivio")
    mapping = service.get_mapping("24CHK00001")
    mock_store.patch_item(mapping.remote_folder_id, name="24CHK00001_chiuso", parent_id=archive["id"])

    result = service.check_mapping("24CHK00001")

    assert result["valid"] is True
    assert result["path_updated"] is True
    assert result["mapping"].remote_folder_path == "/Archivio/24CHK00001_chiuso"

    mock_store.trash_item(mapping.remote_folder_id)
    assert service.check_mapping("24CHK00001")["valid"] is False


def test_delete_project_mapping(service, mock_store, projects_root):
    service.provision_project("24DEL00001", template="BREVE")
    mock_store.put_content("/G2_Progetti/24DEL00001", "a.pdf", b"1", "application/pdf")
    service.scan_project(project_code="24DEL00001")

    assert service.delete_project_mapping("24DEL00001", clear_index=True) is True
    assert service.list_files(project_code="24DEL00001") == []
    assert service.delete_project_mapping("24DEL00001") is False
    # The remote folder is left in place
    assert mock_store.get_item("/G2_Progetti/24DEL00001")["name"] == "24DEL00001"


def test_browse_lists_folders_first(service, mock_store, projects_root):
    mock_store.put_content("/G2_Progetti", "zeta.txt", b"z", "text/plain")
    mock_store.put_content("/G2_Progetti", "Alfa.pdf", b"a", "application/pdf")
    mock_store.create_folder(projects_root["id"], "Archivio")

    listing = service.browse("/G2_Progetti/")

    assert listing["folder"] == {"id": projects_root["id"], "name": "G2_Progetti", "path": "/G2_Progetti"}
    assert [item["name"] for item in listing["items"]] == ["Archivio", "Alfa.pdf", "zeta.txt"]
    assert listing["items"][0]["is_folder"] is True
    assert listing["items"][1]["path"] == "/G2_Progetti/Alfa.pdf"


def test_browse_by_id_and_errors(service, mock_store, projects_root):
    file = mock_store.put_content("/G2_Progetti", "a.pdf", b"a", "application/pdf")

    assert service.browse(projects_root["id"])["folder"]["path"] == "/G2_Progetti"
    assert service.browse()["folder"]["path"] == "/"

    with pytest.raises(DomainError) as exc_info:
        service.browse("/Nope")
    assert exc_info.value.kind == ErrorKind.NOT_FOUND

    with pytest.raises(DomainError) as exc_info:
        service.browse(file["id"])
    assert exc_info.value.kind == ErrorKind.MISSING_PARAMETER

    with pytest.raises(DomainError) as exc_info:
        service.browse("/bad|name")
    assert exc_info.value.kind == ErrorKind.INVALID_NAME


def test_search_files(service, mock_store, projects_root):
    mock_store.put_content("/G2_Progetti", "Relazione_tecnica.pdf", b"r", "application/pdf")
    mock_store.put_content("/", "relazione.txt", b"r", "text/plain")
    mock_store.put_content("/G2_Progetti", "tavola.dwg", b"t", "application/acad")

    results = service.search_files("  relazione ")

    assert sorted(r["path"] for r in results) == ["/G2_Progetti/Relazione_tecnica.pdf", "/relazione.txt"]


@pytest.mark.parametrize("query", ["", " a ", "x" * 256])
def test_search_query_bounds(service, query):
    with pytest.raises(DomainError) as exc_info:
        service.search_files(query)
    assert exc_info.value.kind == ErrorKind.MISSING_PARAMETER


def test_download_file(service, mock_store, projects_root):
    file = mock_store.put_content("/G2_Progetti", "a.pdf", b"%PDF-1.4", "application/pdf")

    item, data = service.download_file(file["id"])

    assert item["name"] == "a.pdf"
    assert data == b"%PDF-1.4"

    with pytest.raises(DomainError) as exc_info:
        service.download_file("missing-id")
    assert exc_info.value.kind == ErrorKind.NOT_FOUND

    with pytest.raises(DomainError) as exc_info:
        service.download_file(projects_root["id"])
    assert exc_info.value.kind == ErrorKind.MISSING_PARAMETER

    with pytest.raises(DomainError) as exc_info:
        service.download_file("x" * 201)
    assert exc_info.value.kind == ErrorKind.MISSING_PARAMETER


def test_read_text_content(service, mock_store, projects_root):
    note = mock_store.put_content("/G2_Progetti", "note.txt", "città".encode("utf-8"), "text/plain")
    data = mock_store.put_content("/G2_Progetti", "data.json", b'{"a": 1}', "application/json")
    pdf = mock_store.put_content("/G2_Progetti", "a.pdf", b"%PDF", "application/pdf")

    assert service.read_text_content(note["id"])["content"] == "città"
    assert service.read_text_content(data["id"])["mime_type"] == "application/json"
    assert service.read_text_content(pdf["id"]) is None
