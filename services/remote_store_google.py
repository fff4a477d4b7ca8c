import io
import logging
from typing import Any, Dict, List, Optional

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.http import MediaIoBaseUpload

from cache import cache_service, children_cache_key
from config import config
from services.remote_store import (
    FOLDER_MIME_TYPE,
    is_path,
    name_conflict,
    not_found,
)
from utils.prometheus import REMOTE_OPERATION_SECONDS
from utils.retry import exponential_backoff_retry

logger = logging.getLogger("projectsync.remote_store.google")

ITEM_FIELDS = (
    'id, name, mimeType, parents, size, modifiedTime, createdTime, '
    'webViewLink, webContentLink, trashed'
)
MAX_PARENT_DEPTH = 32


def _quote(value: str) -> str:
    """Escape a literal for the Drive query language."""
    return value.replace('\\', '\\\\').replace("'", "\\'")


class GoogleDriveRemoteStore:
    """
    Drive v3 backend of the remote store facade.
    Paths are resolved relative to DRIVE_ROOT_FOLDER_ID by walking name queries.
    """

    def __init__(self, credential_provider, root_folder_id: Optional[str] = None):
        self.root_folder_id = root_folder_id or config.DRIVE_ROOT_FOLDER_ID
        creds = Credentials(token=credential_provider.current_token())
        self.service = build('drive', 'v3', credentials=creds, cache_discovery=False)
        self._root_real_id: Optional[str] = None

    def _execute(self, operation: str, request_factory):
        """
        Executes a request with exponential backoff for transient errors
        (rate limits, 5xx, dropped connections).
        """
        @exponential_backoff_retry(
            max_retries=config.REMOTE_MAX_RETRIES,
            initial_delay=config.REMOTE_RETRY_INITIAL_DELAY,
        )
        def _api_call():
            return request_factory().execute()

        with REMOTE_OPERATION_SECONDS.labels(operation=operation).time():
            return _api_call()

    # --- resolution ---

    def _root_id(self) -> str:
        # "root" is an alias; parents lists carry the real id
        if self._root_real_id is None:
            root = self._execute(
                'get_item',
                lambda: self.service.files().get(
                    fileId=self.root_folder_id, fields='id', supportsAllDrives=True
                ),
            )
            self._root_real_id = root['id']
        return self._root_real_id

    def _find_child(self, parent_id: str, name: str, exclude_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        query = f"name = '{_quote(name)}' and '{parent_id}' in parents and trashed = false"
        result = self._execute(
            'list_children',
            lambda: self.service.files().list(
                q=query,
                pageSize=10,
                fields=f"files({ITEM_FIELDS})",
                supportsAllDrives=True,
                includeItemsFromAllDrives=True,
            ),
        )
        for child in result.get('files', []):
            if child.get('id') != exclude_id:
                return child
        return None

    def _resolve(self, path_or_id: str) -> Dict[str, Any]:
        if not is_path(path_or_id):
            return self.get_item(path_or_id)

        current = self.get_item(self.root_folder_id)
        for segment in [s for s in path_or_id.split('/') if s]:
            child = self._find_child(current['id'], segment)
            if child is None:
                raise not_found(path_or_id)
            current = child
        return current

    def _resolve_id(self, path_or_id: str) -> str:
        if not is_path(path_or_id):
            return path_or_id
        return self._resolve(path_or_id)['id']

    # --- reads ---

    def get_item(self, path_or_id: str) -> Dict[str, Any]:
        if is_path(path_or_id):
            return self._resolve(path_or_id)

        return self._execute(
            'get_item',
            lambda: self.service.files().get(
                fileId=path_or_id, fields=ITEM_FIELDS, supportsAllDrives=True
            ),
        )

    def list_children(self, path_or_id: str, use_cache: bool = True) -> List[Dict[str, Any]]:
        folder_id = self._resolve_id(path_or_id)

        cache_key = children_cache_key(folder_id)
        if use_cache:
            cached_result = cache_service.get_from_cache(cache_key)
            if cached_result is not None:
                return cached_result

        query = f"'{folder_id}' in parents and trashed = false"
        items: List[Dict[str, Any]] = []
        page_token = None
        while True:
            token = page_token
            result = self._execute(
                'list_children',
                lambda: self.service.files().list(
                    q=query,
                    pageSize=100,
                    pageToken=token,
                    fields=f"nextPageToken, files({ITEM_FIELDS})",
                    supportsAllDrives=True,
                    includeItemsFromAllDrives=True,
                ),
            )
            items.extend(result.get('files', []))
            page_token = result.get('nextPageToken')
            if not page_token:
                break

        cache_service.set_in_cache(cache_key, items)
        return items

    def get_path(self, item_id: str) -> str:
        root_id = self._root_id()
        names: List[str] = []
        current_id = item_id

        for _ in range(MAX_PARENT_DEPTH):
            if current_id == root_id:
                break
            meta = self.get_item(current_id)
            names.insert(0, meta['name'])
            parents = meta.get('parents', [])
            if not parents:
                break
            current_id = parents[0]

        return '/' + '/'.join(names)

    def get_content(self, item_id: str) -> bytes:
        return self._execute(
            'get_content',
            lambda: self.service.files().get_media(fileId=item_id, supportsAllDrives=True),
        )

    def search(self, query: str) -> List[Dict[str, Any]]:
        q = f"name contains '{_quote(query)}' and trashed = false"
        items: List[Dict[str, Any]] = []
        page_token = None
        while True:
            token = page_token
            result = self._execute(
                'search',
                lambda: self.service.files().list(
                    q=q,
                    pageSize=100,
                    pageToken=token,
                    fields=f"nextPageToken, files({ITEM_FIELDS})",
                    supportsAllDrives=True,
                    includeItemsFromAllDrives=True,
                ),
            )
            items.extend(result.get('files', []))
            page_token = result.get('nextPageToken')
            if not page_token:
                break
        return items

    def test_connection(self) -> bool:
        try:
            self._execute('test_connection', lambda: self.service.about().get(fields='user'))
            return True
        except Exception as e:
            logger.warning("Remote store connection test failed", extra={"error": str(e)})
            return False

    # --- writes ---

    def create_folder(self, parent_path_or_id: str, name: str) -> Dict[str, Any]:
        parent_id = self._resolve_id(parent_path_or_id)

        # Drive accepts duplicate names, the facade does not
        if self._find_child(parent_id, name) is not None:
            raise name_conflict(name, parent_path_or_id)

        body = {'name': name, 'mimeType': FOLDER_MIME_TYPE, 'parents': [parent_id]}
        folder = self._execute(
            'create_folder',
            lambda: self.service.files().create(
                body=body, fields=ITEM_FIELDS, supportsAllDrives=True
            ),
        )
        cache_service.delete_key(children_cache_key(parent_id))
        return folder

    def patch_item(self, item_id: str, name: Optional[str] = None, parent_id: Optional[str] = None) -> Dict[str, Any]:
        current = self.get_item(item_id)
        current_parents: List[str] = current.get('parents', [])

        body: Dict[str, Any] = {}
        if name is not None:
            body['name'] = name

        add_parents = None
        remove_parents = None
        if parent_id is not None and parent_id not in current_parents:
            add_parents = parent_id
            remove_parents = ','.join(current_parents) or None

        if name is not None or add_parents is not None:
            destination = parent_id or (current_parents[0] if current_parents else self._root_id())
            final_name = name if name is not None else current['name']
            # Drive accepts duplicate names, the facade does not
            if self._find_child(destination, final_name, exclude_id=item_id) is not None:
                raise name_conflict(final_name, destination)

        item = self._execute(
            'patch_item',
            lambda: self.service.files().update(
                fileId=item_id,
                body=body,
                addParents=add_parents,
                removeParents=remove_parents,
                fields=ITEM_FIELDS,
                supportsAllDrives=True,
            ),
        )

        for parent in set(current_parents + item.get('parents', [])):
            cache_service.delete_key(children_cache_key(parent))
        return item

    def put_content(self, parent_path_or_id: str, name: str, data: bytes, mime_type: str) -> Dict[str, Any]:
        parent_id = self._resolve_id(parent_path_or_id)
        body = {'name': name, 'parents': [parent_id]}
        media = MediaIoBaseUpload(io.BytesIO(data), mimetype=mime_type, resumable=True)

        item = self._execute(
            'put_content',
            lambda: self.service.files().create(
                body=body, media_body=media, fields=ITEM_FIELDS, supportsAllDrives=True
            ),
        )
        cache_service.delete_key(children_cache_key(parent_id))
        return item
