"""
Remote store facade.

Every backend exposes the same narrow set of calls:

    list_children(path_or_id, use_cache=True) -> list of items
    get_item(path_or_id) -> item
    get_path(item_id) -> "/A/B/name"
    create_folder(parent_path_or_id, name) -> item
    patch_item(item_id, name=None, parent_id=None) -> item
    get_content(item_id) -> bytes
    put_content(parent_path_or_id, name, data, mime_type) -> item
    search(query) -> list of items
    test_connection() -> bool

A string starting with "/" is a path relative to the store root, anything
else is an item id. Items are dicts shaped like Drive v3 file resources
(id, name, mimeType, parents, size, modifiedTime, webViewLink,
webContentLink, trashed).

Backends hold no state between logical operations: obtain a fresh one from
get_remote_store() for each operation, since the access token behind it
expires.
"""

import json
from typing import Any, Dict, Optional

from config import config

FOLDER_MIME_TYPE = 'application/vnd.google-apps.folder'


class RemoteStoreError(Exception):
    """
    Transport-level failure raised by a backend, shaped like a vendor error
    response (status + JSON body). Never leaves the service layer: it is
    always passed through services.error_classifier.classify first.
    """

    def __init__(self, status: int, code: str, message: str, body: Any = None):
        self.status = status
        self.code = code
        self.message = message
        self.body = body if body is not None else json.dumps({"error": {"code": code, "message": message}})
        super().__init__(f"{message} (Status: {status})")


def is_path(path_or_id: str) -> bool:
    return isinstance(path_or_id, str) and path_or_id.startswith('/')


def is_folder(item: Dict[str, Any]) -> bool:
    return item.get('mimeType') == FOLDER_MIME_TYPE


def not_found(what: str) -> RemoteStoreError:
    return RemoteStoreError(404, "itemNotFound", f"Item not found: {what}")


def name_conflict(name: str, parent: str) -> RemoteStoreError:
    return RemoteStoreError(
        409, "nameAlreadyExists", f"An item named '{name}' already exists in {parent}"
    )


def get_remote_store(credential_provider: Optional[Any] = None):
    """
    Factory for the remote store backend. Call it once per logical operation.
    """
    if config.USE_MOCK_DRIVE:
        from services.remote_store_mock import MockRemoteStore
        return MockRemoteStore()

    from services.credentials import ServiceAccountCredentialProvider
    from services.remote_store_google import GoogleDriveRemoteStore
    provider = credential_provider or ServiceAccountCredentialProvider()
    return GoogleDriveRemoteStore(provider)
