import pytest

from services.mapping_registry import MappingRegistry
from services.reconciliation_service import (
    CREATED_NEW,
    ERROR,
    MAPPED_EXISTING,
    ReconciliationService,
)
from services.remote_store import RemoteStoreError


class FailingProjectStore:
    """Denies access to anything under one project's folder."""

    def __init__(self, store, failing_code):
        self.store = store
        self.failing_code = failing_code

    def __getattr__(self, name):
        return getattr(self.store, name)

    def get_item(self, path_or_id):
        if self.failing_code in path_or_id:
            raise RemoteStoreError(403, "accessDenied", "Access denied")
        return self.store.get_item(path_or_id)


@pytest.fixture
def registry(db_session):
    return MappingRegistry(db_session)


def _service(registry, store, root="/G2_Progetti"):
    return ReconciliationService(registry, lambda: store, root)


def test_orphans_are_provisioned_in_order(registry, mock_store, projects_root, make_project):
    projects = [
        make_project("24REC00001", "BREVE", "Ponte sul Po"),
        make_project("24REC00002", "LUNGO"),
        make_project("24REC00003", "BREVE"),
    ]

    outcomes = _service(registry, mock_store).reconcile(projects)

    assert [o.project_code for o in outcomes] == ["24REC00001", "24REC00002", "24REC00003"]
    assert all(o.status == CREATED_NEW for o in outcomes)
    mapping = registry.get("24REC00001")
    assert mapping.remote_folder_path == "/G2_Progetti/24REC00001_Ponte_sul_Po"
    assert mapping.remote_folder_id == outcomes[0].folder_id
    assert len(mock_store.list_children("/G2_Progetti/24REC00002")) == 10


def test_one_failure_does_not_stop_the_run(registry, mock_store, projects_root, make_project):
    projects = [make_project("24REC00001"), make_project("24REC00002"), make_project("24REC00003")]
    store = FailingProjectStore(mock_store, "24REC00002")

    outcomes = _service(registry, store).reconcile(projects)

    assert [o.project_code for o in outcomes] == ["24REC00001", "24REC00002", "24REC00003"]
    assert [o.status for o in outcomes] == [CREATED_NEW, ERROR, CREATED_NEW]
    assert outcomes[1].error_kind == "PermissionDenied"
    assert outcomes[1].folder_id is None
    assert registry.get("24REC00002") is None
    assert registry.get("24REC00003") is not None


def test_existing_folder_is_adopted(registry, mock_store, projects_root, make_project):
    existing = mock_store.create_folder(projects_root["id"], "24REC00001")
    project = make_project("24REC00001")

    outcomes = _service(registry, mock_store).reconcile([project])

    assert outcomes[0].status == MAPPED_EXISTING
    assert outcomes[0].folder_id == existing["id"]
    # Nothing was created inside the adopted folder
    assert mock_store.list_children(existing["id"]) == []


def test_existing_folder_with_description_is_adopted(registry, mock_store, projects_root, make_project):
    existing = mock_store.create_folder(projects_root["id"], "24REC00001_Ponte_sul_Po")
    project = make_project("24REC00001", "BREVE", "Ponte sul Po")

    outcomes = _service(registry, mock_store).reconcile([project])

    assert outcomes[0].status == MAPPED_EXISTING
    assert registry.get("24REC00001").remote_folder_id == existing["id"]


def test_mapped_projects_are_skipped(registry, mock_store, projects_root, make_project):
    mapped = make_project("24REC00001")
    registry.create("24REC00001", "folder-x", "/G2_Progetti/24REC00001", "24REC00001")
    orphan = make_project("24REC00002")

    outcomes = _service(registry, mock_store).reconcile([mapped, orphan])

    assert [o.project_code for o in outcomes] == ["24REC00002"]


def test_missing_root_reports_every_project(registry, mock_store, make_project):
    projects = [make_project("24REC00001"), make_project("24REC00002")]

    outcomes = _service(registry, mock_store, root="/Missing").reconcile(projects)

    assert [o.status for o in outcomes] == [ERROR, ERROR]
    assert {o.error_kind for o in outcomes} == {"NotFound"}
    assert registry.get_all() == []


def test_reconcile_with_no_projects(registry, mock_store):
    assert _service(registry, mock_store).reconcile([]) == []


def test_folder_owned_by_another_project_is_reported(registry, mock_store, projects_root, make_project):
    folder = mock_store.create_folder(projects_root["id"], "24REC00001")
    registry.create("24OTHER001", folder["id"], "/G2_Progetti/24REC00001", "24REC00001")
    projects = [make_project("24REC00001", "BREVE")]

    outcomes = _service(registry, mock_store).reconcile(projects)

    assert outcomes[0].status == ERROR
    assert outcomes[0].error_kind == "DuplicateMapping"
    assert outcomes[0].message == "Remote folder is already mapped to project 24OTHER001."
    assert registry.get("24REC00001") is None
