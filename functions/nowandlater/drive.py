"""
Primary backend for Google Drive reads.

Folder listings are kept in a short-lived per-process cache, skipped when
the router says the resource was invalidated. 429 responses are retried
with exponential backoff, within the attempt deadline, before surfacing as
transient failures.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Callable, Hashable, List, Optional

import requests

from nowandlater.auth import Principal
from nowandlater.errors import PermanentBackendFailure, TransientBackendFailure
from nowandlater.router import AttemptContext
from nowandlater.shared.types import (
    FOLDER_MIME_TYPE,
    DriveFile,
    DriveListing,
    DriveQuery,
    DriveScope,
    PathSegment,
    ProjectFile,
    ProjectFilesQuery,
    decode,
)
from nowandlater.transport import (
    bearer_headers,
    decodes_response,
    json_object,
    list_member,
    send,
)

if TYPE_CHECKING:
    from nowandlater.sheets import SheetsBackend

logger = logging.getLogger(__name__)

DRIVE_FILES_URL = "https://www.googleapis.com/drive/v3/files"
FOLDER_URL_TEMPLATE = "https://drive.google.com/drive/folders/{id}"
DOWNLOAD_URL_TEMPLATE = "https://drive.google.com/uc?id={id}&export=download"

LISTING_FIELDS = (
    "nextPageToken,files(id,name,mimeType,size,modifiedTime,webViewLink,"
    "thumbnailLink,parents,shared,owners(displayName,emailAddress))"
)
PROJECT_FILE_FIELDS = (
    "files(id,name,mimeType,size,createdTime,modifiedTime,thumbnailLink,"
    "webViewLink,parents)"
)

MAX_PAGE_SIZE = 1000
MAX_RATE_LIMIT_ATTEMPTS = 3
LISTING_CACHE_TTL_SECONDS = 5 * 60
LISTING_CACHE_MAX_ENTRIES = 100
ROOT_FOLDER = "root"
ROOT_SEGMENT = PathSegment(id=ROOT_FOLDER, name="My Drive")

TYPE_FILTERS = {
    "document": "mimeType contains 'document'",
    "spreadsheet": "mimeType contains 'spreadsheet'",
    "presentation": "mimeType contains 'presentation'",
    "pdf": "mimeType='application/pdf'",
    "image": "mimeType contains 'image'",
    "video": "mimeType contains 'video'",
    "audio": "mimeType contains 'audio'",
    "folder": f"mimeType='{FOLDER_MIME_TYPE}'",
}

PREVIEWABLE_MIME_TYPES = {
    "application/pdf",
    "text/plain",
    "application/vnd.google-apps.document",
    "application/vnd.google-apps.spreadsheet",
    "application/vnd.google-apps.presentation",
}


def _quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


def build_drive_query(query: DriveQuery, now: Optional[datetime] = None) -> dict:
    """
    Builds `files.list` parameters for a folder listing, search or scope.

    Args:
        query: The listing request.
        now: Reference time for the `recent` scope.

    Returns:
        dict: Query-string parameters for the Drive v3 files endpoint.
    """
    scope = query.scope
    page_size = query.page_size
    if scope == DriveScope.RECENT:
        since = (now or datetime.now(timezone.utc)) - timedelta(days=query.days)
        q = f"modifiedTime > '{since.strftime('%Y-%m-%dT%H:%M:%S')}' and trashed=false"
        order = "modifiedTime desc"
        page_size = query.limit
    elif scope == DriveScope.SHARED:
        q = "sharedWithMe and trashed=false"
        order = "sharedWithMeTime desc"
        page_size = query.limit
    elif scope == DriveScope.TRASH:
        q = "trashed=true"
        order = "trashedTime desc"
        page_size = query.limit
    elif query.search:
        q = f"fullText contains '{_quote(query.search)}' and trashed=false"
        order = "relevance"
        page_size = query.limit
    else:
        q = f"'{_quote(query.folder_id or ROOT_FOLDER)}' in parents and trashed=false"
        order = query.order_by or "folder,name"

    if query.file_type in TYPE_FILTERS:
        q += f" and {TYPE_FILTERS[query.file_type]}"
    if query.mime_type:
        if query.mime_type.endswith("*"):
            q += f" and mimeType contains '{_quote(query.mime_type[:-1])}'"
        else:
            q += f" and mimeType='{_quote(query.mime_type)}'"

    params = {
        "q": q,
        "fields": LISTING_FIELDS,
        "pageSize": max(1, min(page_size or 100, MAX_PAGE_SIZE)),
        "orderBy": order,
        "supportsAllDrives": "true",
        "includeItemsFromAllDrives": "true",
    }
    if query.page_token:
        params["pageToken"] = query.page_token
    return params


def categorize_file(mime_type: Optional[str]) -> str:
    if not mime_type:
        return "unknown"
    if mime_type == FOLDER_MIME_TYPE:
        return "folder"
    for keyword in ("document", "spreadsheet", "presentation", "pdf"):
        if keyword in mime_type:
            return keyword
    for prefix in ("image", "video", "audio", "text"):
        if mime_type.startswith(f"{prefix}/"):
            return prefix
    return "file"


def project_file_type(mime_type: Optional[str]) -> str:
    if not mime_type:
        return "unknown"
    for keyword in (
        "spreadsheet", "document", "presentation", "pdf",
        "image", "video", "audio", "folder",
    ):
        if keyword in mime_type:
            return keyword
    return "file"


def is_google_workspace(mime_type: Optional[str]) -> bool:
    return bool(mime_type) and mime_type.startswith("application/vnd.google-apps.")


def can_preview(mime_type: Optional[str]) -> bool:
    if not mime_type:
        return False
    return (
        mime_type in PREVIEWABLE_MIME_TYPES
        or mime_type.startswith("image/")
        or mime_type.startswith("video/")
    )


def format_file_size(size: int) -> str:
    if size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB", "TB"]
    value = float(size)
    exponent = 0
    while value >= 1024 and exponent < len(units) - 1:
        value /= 1024
        exponent += 1
    text = f"{value:.1f}".rstrip("0").rstrip(".")
    return f"{text} {units[exponent]}"


def relative_time(timestamp: Optional[str], now: Optional[datetime] = None) -> str:
    if not timestamp or not isinstance(timestamp, str):
        return "Unknown"
    try:
        moment = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    except ValueError:
        return "Unknown"
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    elapsed = abs(((now or datetime.now(timezone.utc)) - moment).total_seconds())
    days = max(1, math.ceil(elapsed / 86400))
    if days == 1:
        return "Today"
    if days == 2:
        return "Yesterday"
    if days <= 7:
        return f"{days - 1} days ago"
    if days <= 30:
        return f"{math.ceil(days / 7)} weeks ago"
    if days <= 365:
        return f"{math.ceil(days / 30)} months ago"
    return f"{math.ceil(days / 365)} years ago"


def _size(raw: Any) -> Optional[int]:
    try:
        return int(raw) if raw not in (None, "") else None
    except (TypeError, ValueError):
        return None


def to_drive_file(item: dict, now: Optional[datetime] = None) -> DriveFile:
    """Decodes a Drive API file resource and adds the derived fields."""
    mime_type = str(item.get("mimeType") or "")
    size = _size(item.get("size"))
    return decode(
        DriveFile,
        {
            **item,
            "mimeType": mime_type,
            "size": size,
            "parents": item.get("parents") or [],
            "owners": item.get("owners") or [],
            "shared": bool(item.get("shared")),
            "isFolder": mime_type == FOLDER_MIME_TYPE,
            "fileCategory": categorize_file(mime_type),
            "isGoogleWorkspace": is_google_workspace(mime_type),
            "canPreview": can_preview(mime_type),
            "estimatedSize": format_file_size(size) if size is not None else None,
            "lastActivity": relative_time(item.get("modifiedTime"), now),
        },
    )


def to_project_file(item: dict) -> ProjectFile:
    mime_type = str(item.get("mimeType") or "")
    file_id = str(item.get("id") or "")
    return ProjectFile(
        id=file_id,
        name=item.get("name") or "",
        mime_type=mime_type,
        size=_size(item.get("size")) or 0,
        file_type=project_file_type(mime_type),
        url=item.get("webViewLink") or "",
        thumbnail_url=item.get("thumbnailLink"),
        download_url=DOWNLOAD_URL_TEMPLATE.format(id=file_id),
        is_folder=mime_type == FOLDER_MIME_TYPE,
        created_at=item.get("createdTime") or "",
        modified_at=item.get("modifiedTime") or "",
    )


class ListingCache:
    """
    Small in-memory TTL cache for folder listings.

    Per process and best effort. Entries are keyed per principal so one
    user's listing is never served to another. Never holds more than
    `max_entries`: expired entries go first, then the oldest writes.
    """

    def __init__(
        self,
        ttl_seconds: float = LISTING_CACHE_TTL_SECONDS,
        max_entries: int = LISTING_CACHE_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._store: dict[Hashable, tuple[float, DriveListing]] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Optional[DriveListing]:
        with self._lock:
            item = self._store.get(key)
            if item is None:
                return None
            expires, value = item
            if self._clock() >= expires:
                del self._store[key]
                return None
            return value

    def set(self, key: Hashable, value: DriveListing) -> None:
        with self._lock:
            # Re-inserting moves the key to the end of the insertion order.
            self._store.pop(key, None)
            self._store[key] = (self._clock() + self._ttl, value)
            if len(self._store) > self._max_entries:
                self._evict_expired()
            while len(self._store) > self._max_entries:
                oldest = next(iter(self._store))
                del self._store[oldest]

    def _evict_expired(self) -> None:
        now = self._clock()
        for key in [k for k, (expires, _) in self._store.items() if now >= expires]:
            del self._store[key]

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)


@dataclass
class DriveClient:
    """Drive v3 REST calls with rate-limit retries."""

    session: requests.Session = field(default_factory=requests.Session)
    parent_folder_id: Optional[str] = None
    sleep: Callable[[float], None] = time.sleep

    def _request(
        self,
        principal: Principal,
        context: AttemptContext,
        method: str,
        url: str,
        *,
        action: str,
        **kwargs: Any,
    ) -> Any:
        for attempt in range(MAX_RATE_LIMIT_ATTEMPTS):
            try:
                response = send(
                    self.session,
                    method,
                    url,
                    context=context,
                    action=action,
                    headers=bearer_headers(principal, context),
                    **kwargs,
                )
            except TransientBackendFailure as exc:
                if exc.upstream_status != 429 or attempt == MAX_RATE_LIMIT_ATTEMPTS - 1:
                    raise
                # Backoff counts against the attempt deadline like the requests do.
                delay = min(2 ** attempt, context.remaining())
                if delay <= 0:
                    raise
                logger.info("%s rate limited, retrying in %ss", action, delay)
                self.sleep(delay)
                continue
            return json_object(response, context=context, action=action)

    def list_files(
        self, principal: Principal, context: AttemptContext, params: dict
    ) -> dict:
        return self._request(
            principal, context, "GET", DRIVE_FILES_URL,
            action="Drive files.list", params=params,
        )

    def get_file(
        self, principal: Principal, context: AttemptContext, file_id: str, fields: str
    ) -> dict:
        return self._request(
            principal, context, "GET", f"{DRIVE_FILES_URL}/{file_id}",
            action="Drive files.get",
            params={"fields": fields, "supportsAllDrives": "true"},
        )

    def create_folder(
        self,
        principal: Principal,
        context: AttemptContext,
        name: str,
        parent_id: Optional[str] = None,
    ) -> DriveFile:
        metadata: dict = {"name": name.strip(), "mimeType": FOLDER_MIME_TYPE}
        parent_id = parent_id or self.parent_folder_id
        if parent_id:
            metadata["parents"] = [parent_id]
        body = self._request(
            principal, context, "POST", DRIVE_FILES_URL,
            action="Drive files.create",
            params={"fields": "id,name,mimeType,webViewLink,parents"},
            json=metadata,
        )
        folder = to_drive_file(body)
        if not folder.web_view_link:
            folder.web_view_link = FOLDER_URL_TEMPLATE.format(id=folder.id)
        logger.info("Created Drive folder %s", folder.id)
        return folder


def _files(body: dict, context: AttemptContext) -> List[DriveFile]:
    return [
        to_drive_file(item)
        for item in list_member(body, "files", context=context, action="Drive files.list")
    ]


class DriveBackend:
    """Primary executors for Drive reads and project file listings."""

    def __init__(
        self,
        client: DriveClient,
        sheets: Optional["SheetsBackend"] = None,
        cache: Optional[ListingCache] = None,
    ):
        self.client = client
        self.sheets = sheets
        self.cache = cache if cache is not None else ListingCache()

    @decodes_response
    def list_drive_files(
        self, principal: Principal, query: DriveQuery, context: AttemptContext
    ) -> DriveListing:
        folder_id = query.folder_id or ROOT_FOLDER
        cacheable = folder_id != ROOT_FOLDER and not query.search and not query.scope
        key = (
            principal.id, folder_id, query.page_token, query.page_size,
            query.order_by, query.file_type, query.mime_type,
        )
        if cacheable and not context.bypass_cache:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("Listing cache hit for folder %s", folder_id)
                return cached

        body = self.client.list_files(principal, context, build_drive_query(query))
        listing = DriveListing(
            files=_files(body, context),
            next_page_token=body.get("nextPageToken"),
            folder_id=folder_id,
        )
        if cacheable:
            self.cache.set(key, listing)
        return listing

    @decodes_response
    def search_drive_files(
        self, principal: Principal, query: DriveQuery, context: AttemptContext
    ) -> List[DriveFile]:
        if not query.search or len(query.search) < 3:
            raise PermanentBackendFailure(
                "Search query must be at least 3 characters",
                backend=context.backend.value,
            )
        return self._list(principal, query, context)

    @decodes_response
    def recent_drive_files(
        self, principal: Principal, query: DriveQuery, context: AttemptContext
    ) -> List[DriveFile]:
        return self._list(principal, replace(query, scope=DriveScope.RECENT.value), context)

    @decodes_response
    def shared_drive_files(
        self, principal: Principal, query: DriveQuery, context: AttemptContext
    ) -> List[DriveFile]:
        return self._list(principal, replace(query, scope=DriveScope.SHARED.value), context)

    @decodes_response
    def trash_drive_files(
        self, principal: Principal, query: DriveQuery, context: AttemptContext
    ) -> List[DriveFile]:
        return self._list(principal, replace(query, scope=DriveScope.TRASH.value), context)

    def _list(
        self, principal: Principal, query: DriveQuery, context: AttemptContext
    ) -> List[DriveFile]:
        body = self.client.list_files(principal, context, build_drive_query(query))
        return _files(body, context)

    @decodes_response
    def get_file_path(
        self, principal: Principal, file_id: str, context: AttemptContext
    ) -> List[PathSegment]:
        """
        Walks first parents up to the root.

        A file or parent Drive refuses to show (404/403) ends the walk with
        an "Unknown File" placeholder; transient failures propagate.
        """
        segments: List[PathSegment] = []
        visited = set()
        current: Optional[str] = file_id
        try:
            while current and current != ROOT_FOLDER and current not in visited:
                visited.add(current)
                item = self.client.get_file(principal, context, current, "name,parents")
                segments.insert(0, PathSegment(id=current, name=item.get("name") or ""))
                parents = list_member(
                    item, "parents", context=context, action="Drive files.get", item_type=str
                )
                current = parents[0] if parents else None
        except PermanentBackendFailure as exc:
            logger.warning("Path resolution for %s stopped: %s", file_id, exc)
            return [ROOT_SEGMENT, PathSegment(id=file_id, name="Unknown File")]
        return [ROOT_SEGMENT, *segments]

    @decodes_response
    def list_project_files(
        self, principal: Principal, query: ProjectFilesQuery, context: AttemptContext
    ) -> List[ProjectFile]:
        folder_id = query.folder_id
        if not folder_id and self.sheets is not None:
            folder_id = self.sheets.project_folder_id(principal, query.project_id, context)
        if not folder_id:
            logger.info("No Drive folder for project %s", query.project_id)
            return []

        body = self.client.list_files(
            principal,
            context,
            {
                "q": f"'{_quote(folder_id)}' in parents and trashed=false",
                "fields": PROJECT_FILE_FIELDS,
                "orderBy": "modifiedTime desc",
                "supportsAllDrives": "true",
                "includeItemsFromAllDrives": "true",
            },
        )
        files = [
            to_project_file(item)
            for item in list_member(body, "files", context=context, action="Drive files.list")
        ]
        logger.info("Listed %d files for project %s", len(files), query.project_id)
        return files
