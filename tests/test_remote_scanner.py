import pytest

from services.errors import ErrorKind
from services.file_index_service import FileIndexService
from services.remote_scanner import RemoteScanner, clamp_depth, index_items
from services.remote_store import RemoteStoreError


class BrokenFolderStore:
    """Delegates to a store but fails listing of the given folder ids."""

    def __init__(self, store, broken_ids, error=None):
        self.store = store
        self.broken_ids = set(broken_ids)
        self.error = error or RemoteStoreError(403, "accessDenied", "Access denied")

    def list_children(self, path_or_id, use_cache=True):
        if path_or_id in self.broken_ids:
            raise self.error
        return self.store.list_children(path_or_id)

    def get_path(self, item_id):
        return self.store.get_path(item_id)


@pytest.fixture
def project_tree(mock_store, projects_root):
    """
    /G2_Progetti/24SCAN0001/
        a.pdf
        1_CONSEGNA/
            b.dwg
            sub/
                c.txt
    """
    project = mock_store.create_folder(projects_root["id"], "24SCAN0001")
    mock_store.put_content(project["id"], "a.pdf", b"aaaa", "application/pdf")
    consegna = mock_store.create_folder(project["id"], "1_CONSEGNA")
    mock_store.put_content(consegna["id"], "b.dwg", b"bb", "image/vnd.dwg")
    sub = mock_store.create_folder(consegna["id"], "sub")
    mock_store.put_content(sub["id"], "c.txt", b"c", "text/plain")
    return {"project": project, "consegna": consegna, "sub": sub}


@pytest.mark.parametrize("value,expected", [(None, 3), (-2, 0), (0, 0), (5, 5), (10, 10), (100, 10)])
def test_clamp_depth(value, expected):
    assert clamp_depth(value) == expected


def test_scan_whole_tree(mock_store, project_tree):
    items = RemoteScanner(mock_store).scan("/G2_Progetti/24SCAN0001")

    paths = sorted(item.path for item in items)
    assert paths == [
        "/G2_Progetti/24SCAN0001/1_CONSEGNA/b.dwg",
        "/G2_Progetti/24SCAN0001/1_CONSEGNA/sub/c.txt",
        "/G2_Progetti/24SCAN0001/a.pdf",
    ]
    a_pdf = next(item for item in items if item.name == "a.pdf")
    assert a_pdf.size == 4
    assert a_pdf.parent_path == "/G2_Progetti/24SCAN0001"
    assert a_pdf.parent_folder_id == project_tree["project"]["id"]
    assert not a_pdf.is_folder


def test_scan_without_subfolders(mock_store, project_tree):
    items = RemoteScanner(mock_store).scan("/G2_Progetti/24SCAN0001", include_subfolders=False)
    assert [item.name for item in items] == ["a.pdf"]


def test_scan_depth_limit(mock_store, project_tree):
    items = RemoteScanner(mock_store).scan("/G2_Progetti/24SCAN0001", max_depth=1)
    assert sorted(item.name for item in items) == ["a.pdf", "b.dwg"]

    items = RemoteScanner(mock_store).scan("/G2_Progetti/24SCAN0001", max_depth=0)
    assert [item.name for item in items] == ["a.pdf"]


def test_scan_depth_above_limit_behaves_like_limit(mock_store, project_tree):
    scanner = RemoteScanner(mock_store)
    deep = {item.id for item in scanner.scan("/G2_Progetti/24SCAN0001", max_depth=100)}
    capped = {item.id for item in scanner.scan("/G2_Progetti/24SCAN0001", max_depth=10)}
    assert deep == capped


def test_scan_include_folders(mock_store, project_tree):
    items = RemoteScanner(mock_store).scan("/G2_Progetti/24SCAN0001", include_folders=True)
    folders = sorted(item.name for item in items if item.is_folder)
    assert folders == ["1_CONSEGNA", "sub"]


def test_scan_by_folder_id(mock_store, project_tree):
    items = RemoteScanner(mock_store).scan(project_tree["consegna"]["id"])
    assert sorted(item.path for item in items) == [
        "/G2_Progetti/24SCAN0001/1_CONSEGNA/b.dwg",
        "/G2_Progetti/24SCAN0001/1_CONSEGNA/sub/c.txt",
    ]


def test_failing_subfolder_is_skipped(mock_store, project_tree):
    store = BrokenFolderStore(mock_store, [project_tree["consegna"]["id"]])

    report = RemoteScanner(store).scan_with_report("/G2_Progetti/24SCAN0001")

    assert [item.name for item in report.succeeded] == ["a.pdf"]
    assert len(report.failed) == 1
    assert report.failed[0].item == "/G2_Progetti/24SCAN0001/1_CONSEGNA"
    assert report.failed[0].kind == ErrorKind.PERMISSION_DENIED


def test_inaccessible_root_yields_empty_result(mock_store, projects_root):
    report = RemoteScanner(mock_store).scan_with_report("/G2_Progetti/does-not-exist")

    assert report.succeeded == []
    assert report.failed[0].kind == ErrorKind.NOT_FOUND
    assert RemoteScanner(mock_store).scan("/G2_Progetti/does-not-exist") == []


def test_unknown_root_id_yields_empty_result(mock_store):
    report = RemoteScanner(mock_store).scan_with_report("no-such-id")
    assert report.succeeded == []
    assert report.failed[0].item == "no-such-id"


def test_index_items(mock_store, project_tree, db_session):
    file_index = FileIndexService(db_session)
    items = RemoteScanner(mock_store).scan("/G2_Progetti/24SCAN0001")

    records = index_items(file_index, items, project_code="24SCAN0001")

    assert len(records) == 3
    stored = file_index.list(project_code="24SCAN0001")
    assert [r.path for r in stored] == sorted(item.path for item in items)
    assert all(r.last_modified is not None for r in stored)

    # A second scan updates in place
    index_items(file_index, items, project_code="24SCAN0001")
    assert len(file_index.list()) == 3
