import base64
import datetime
import json
import os
import uuid
from typing import Any, Dict, List, Optional

from config import config
from services.remote_store import (
    FOLDER_MIME_TYPE,
    RemoteStoreError,
    is_folder,
    is_path,
    name_conflict,
    not_found,
)

ROOT_ID = "root"
MAX_PARENT_DEPTH = 32


def _now() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


def _empty_db() -> Dict[str, Any]:
    return {
        "items": {
            ROOT_ID: {
                "id": ROOT_ID,
                "name": "My Drive",
                "mimeType": FOLDER_MIME_TYPE,
                "parents": [],
                "trashed": False,
            }
        },
        "content": {},
    }


class MockRemoteStore:
    """
    JSON-file backed remote store for local development and tests
    (USE_MOCK_DRIVE=true). Reloads the file on every call so several
    instances see each other's writes.
    """

    def __init__(self, db_file: Optional[str] = None):
        self.db_file = db_file or config.MOCK_DRIVE_DB_FILE
        self._load_db()

    def _load_db(self):
        if os.path.exists(self.db_file):
            with open(self.db_file, "r") as f:
                try:
                    self.db = json.load(f)
                except json.JSONDecodeError:
                    self.db = _empty_db()
        else:
            self.db = _empty_db()
            self._save_db()

        self.db.setdefault("items", _empty_db()["items"])
        self.db.setdefault("content", {})

    def _save_db(self):
        with open(self.db_file, "w") as f:
            json.dump(self.db, f, indent=2)

    def _children(self, folder_id: str) -> List[Dict[str, Any]]:
        return [
            item for item in self.db["items"].values()
            if folder_id in item.get("parents", []) and not item.get("trashed")
        ]

    def _lookup(self, path_or_id: str) -> Dict[str, Any]:
        if not is_path(path_or_id):
            item = self.db["items"].get(path_or_id)
            if item is None:
                raise not_found(path_or_id)
            return item

        current = self.db["items"][ROOT_ID]
        for segment in [s for s in path_or_id.split("/") if s]:
            match = next((c for c in self._children(current["id"]) if c["name"] == segment), None)
            if match is None:
                raise not_found(path_or_id)
            current = match
        return current

    def _require_folder(self, path_or_id: str) -> Dict[str, Any]:
        folder = self._lookup(path_or_id)
        if not is_folder(folder):
            raise RemoteStoreError(400, "invalidRequest", f"Not a folder: {path_or_id}")
        return folder

    def _ensure_free(self, parent_id: str, name: str, exclude_id: Optional[str] = None):
        for child in self._children(parent_id):
            if child["name"] == name and child["id"] != exclude_id:
                raise name_conflict(name, parent_id)

    # --- reads ---

    def get_item(self, path_or_id: str) -> Dict[str, Any]:
        self._load_db()
        return dict(self._lookup(path_or_id))

    def list_children(self, path_or_id: str, use_cache: bool = True) -> List[Dict[str, Any]]:
        self._load_db()
        folder = self._require_folder(path_or_id)
        return [dict(item) for item in self._children(folder["id"])]

    def get_path(self, item_id: str) -> str:
        self._load_db()
        names: List[str] = []
        current = self._lookup(item_id)
        for _ in range(MAX_PARENT_DEPTH):
            if current["id"] == ROOT_ID:
                break
            names.insert(0, current["name"])
            parents = current.get("parents", [])
            if not parents:
                break
            current = self._lookup(parents[0])
        return "/" + "/".join(names)

    def get_content(self, item_id: str) -> bytes:
        self._load_db()
        self._lookup(item_id)
        encoded = self.db["content"].get(item_id, "")
        return base64.b64decode(encoded)

    def search(self, query: str) -> List[Dict[str, Any]]:
        self._load_db()
        needle = query.lower()
        return [
            dict(item) for item in self.db["items"].values()
            if item["id"] != ROOT_ID and not item.get("trashed") and needle in item["name"].lower()
        ]

    def test_connection(self) -> bool:
        self._load_db()
        return True

    # --- writes ---

    def create_folder(self, parent_path_or_id: str, name: str) -> Dict[str, Any]:
        self._load_db()
        parent = self._require_folder(parent_path_or_id)
        self._ensure_free(parent["id"], name)

        folder_id = str(uuid.uuid4())
        folder = {
            "id": folder_id,
            "name": name,
            "mimeType": FOLDER_MIME_TYPE,
            "parents": [parent["id"]],
            "createdTime": _now(),
            "modifiedTime": _now(),
            "trashed": False,
            "webViewLink": f"https://mock-drive.google.com/folders/{folder_id}",
        }
        self.db["items"][folder_id] = folder
        self._save_db()
        return dict(folder)

    def patch_item(self, item_id: str, name: Optional[str] = None, parent_id: Optional[str] = None) -> Dict[str, Any]:
        self._load_db()
        item = self._lookup(item_id)

        destination_id = item["parents"][0] if item.get("parents") else ROOT_ID
        if parent_id is not None:
            destination_id = self._require_folder(parent_id)["id"]

        self._ensure_free(destination_id, name if name is not None else item["name"], exclude_id=item["id"])

        if name is not None:
            item["name"] = name
        if parent_id is not None:
            item["parents"] = [destination_id]
        item["modifiedTime"] = _now()
        self._save_db()
        return dict(item)

    def put_content(self, parent_path_or_id: str, name: str, data: bytes, mime_type: str) -> Dict[str, Any]:
        self._load_db()
        parent = self._require_folder(parent_path_or_id)
        self._ensure_free(parent["id"], name)

        file_id = str(uuid.uuid4())
        file_meta = {
            "id": file_id,
            "name": name,
            "mimeType": mime_type,
            "parents": [parent["id"]],
            "size": str(len(data)),
            "createdTime": _now(),
            "modifiedTime": _now(),
            "trashed": False,
            "webViewLink": f"https://mock-drive.google.com/file/d/{file_id}/view",
            "webContentLink": f"https://mock-drive.google.com/uc?id={file_id}&export=download",
        }
        self.db["items"][file_id] = file_meta
        self.db["content"][file_id] = base64.b64encode(data).decode("ascii")
        self._save_db()
        return dict(file_meta)

    def trash_item(self, item_id: str) -> None:
        """Mark an item as trashed. Used to simulate remote deletions."""
        self._load_db()
        self._lookup(item_id)["trashed"] = True
        self._save_db()
