from datetime import datetime

from services.file_index_service import FileIndexService


def _record(drive_item_id, **overrides):
    data = {
        "drive_item_id": drive_item_id,
        "name": f"{drive_item_id}.pdf",
        "path": f"/G2_Progetti/24IDX00001/{drive_item_id}.pdf",
        "size": 10,
        "mime_type": "application/pdf",
        "last_modified": "2024-05-01T10:00:00.000Z",
        "project_code": "24IDX00001",
        "parent_folder_id": "folder-1",
        "is_folder": False,
        "web_url": f"https://drive.example/{drive_item_id}",
    }
    data.update(overrides)
    return data


def test_create_or_update_inserts_then_overwrites(db_session):
    index = FileIndexService(db_session)

    created = index.create_or_update(_record("a"))
    assert created.size == 10
    assert isinstance(created.last_modified, datetime)
    assert created.last_modified.year == 2024

    updated = index.create_or_update(_record("a", name="renamed.pdf", size=-5, web_url="https://drive.example/new"))
    assert updated.id == created.id
    assert updated.name == "renamed.pdf"
    assert updated.size == 0
    assert updated.web_url == "https://drive.example/new"


def test_unparseable_timestamp_is_dropped(db_session):
    record = FileIndexService(db_session).create_or_update(_record("a", last_modified="yesterday"))
    assert record.last_modified is None


def test_list_filters(db_session):
    index = FileIndexService(db_session)
    index.create_or_update(_record("b"))
    index.create_or_update(_record("a"))
    index.create_or_update(_record("dir", is_folder=True, mime_type="application/vnd.google-apps.folder"))
    index.create_or_update(_record("other", project_code="24IDX00002", parent_folder_id="folder-2"))

    assert [r.drive_item_id for r in index.list(project_code="24IDX00001")] == ["a", "b", "dir"]
    assert [r.drive_item_id for r in index.list(project_code="24IDX00001", include_folders=False)] == ["a", "b"]
    assert [r.drive_item_id for r in index.list(parent_folder_id="folder-2")] == ["other"]
    assert len(index.list(limit=2)) == 2
    assert len(index.list(offset=3)) == 1


def test_update_and_delete(db_session):
    index = FileIndexService(db_session)
    index.create_or_update(_record("a"))

    updated = index.update("a", name="b.pdf", path="/x/b.pdf", drive_item_id="ignored")
    assert updated.name == "b.pdf"
    assert updated.drive_item_id == "a"
    assert index.update("missing", name="x") is None

    assert index.delete("a") is True
    assert index.delete("a") is False


def test_delete_for_project(db_session):
    index = FileIndexService(db_session)
    index.create_or_update(_record("a"))
    index.create_or_update(_record("b"))
    index.create_or_update(_record("c", project_code="24IDX00002"))

    assert index.delete_for_project("24IDX00001") == 2
    assert [r.drive_item_id for r in index.list()] == ["c"]
