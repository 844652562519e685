# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

from dataclasses import asdict, dataclass, field
from enum import StrEnum
from typing import Any, List, Optional, Type, TypeVar

from dacite import Config, from_dict

from nowandlater.shared.json_utils import convert_keys

T = TypeVar("T")

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"


class ProjectStatus(StrEnum):
    ACTIVE = "Active"
    PAUSED = "Paused"
    COMPLETED = "Completed"
    ARCHIVE = "Archive"


class DriveScope(StrEnum):
    FOLDER = "folder"
    RECENT = "recent"
    SHARED = "shared"
    TRASH = "trash"


@dataclass
class Area:
    id: str
    name: str
    description: str = ""
    drive_folder_id: str = ""
    drive_folder_url: str = ""
    created_at: str = ""


@dataclass
class Project:
    id: str
    name: str
    description: str = ""
    area_id: Optional[str] = None
    status: str = ProjectStatus.ACTIVE.value
    drive_folder_id: str = ""
    drive_folder_url: str = ""
    created_at: str = ""


@dataclass
class TaskAttachment:
    id: str
    name: str
    mime_type: str = ""
    size: int = 0
    url: str = ""
    thumbnail_url: Optional[str] = None
    drive_file_id: Optional[str] = None
    uploaded_at: str = ""


@dataclass
class Task:
    id: str
    title: str
    description: str = ""
    project_id: Optional[str] = None
    context: str = ""
    due_date: Optional[str] = None
    is_completed: bool = False
    sort_order: int = 0
    created_at: str = ""
    attachments: List[TaskAttachment] = field(default_factory=list)


@dataclass
class AppData:
    """Everything the UI needs on first paint."""

    areas: List[Area] = field(default_factory=list)
    projects: List[Project] = field(default_factory=list)
    tasks: List[Task] = field(default_factory=list)


@dataclass
class ProjectFile:
    id: str
    name: str
    mime_type: str = ""
    size: int = 0
    file_type: str = "file"
    url: str = ""
    thumbnail_url: Optional[str] = None
    download_url: Optional[str] = None
    is_folder: bool = False
    created_at: str = ""
    modified_at: str = ""


@dataclass
class DriveOwner:
    display_name: str = ""
    email_address: str = ""


@dataclass
class DriveFile:
    id: str
    name: str
    mime_type: str = ""
    size: Optional[int] = None
    modified_time: Optional[str] = None
    web_view_link: Optional[str] = None
    thumbnail_link: Optional[str] = None
    is_folder: bool = False
    parents: List[str] = field(default_factory=list)
    shared: bool = False
    owners: List[DriveOwner] = field(default_factory=list)
    file_category: str = "file"
    is_google_workspace: bool = False
    can_preview: bool = False
    estimated_size: Optional[str] = None
    last_activity: str = "Unknown"


@dataclass
class DriveListing:
    files: List[DriveFile] = field(default_factory=list)
    next_page_token: Optional[str] = None
    folder_id: Optional[str] = None


@dataclass
class PathSegment:
    id: str
    name: str


@dataclass
class TaskUpdate:
    task_id: str
    updated_fields: List[str] = field(default_factory=list)
    row_number: Optional[int] = None


@dataclass
class DeletedTask:
    task_id: str
    message: str = "Task deleted successfully"


@dataclass
class CacheInvalidation:
    invalidated_keys: List[str] = field(default_factory=list)
    timestamp: str = ""
    message: str = ""


@dataclass
class DeletedProject:
    project_id: str
    project_name: str = ""
    message: str = "Project deleted successfully"


@dataclass
class ProjectFolderSetup:
    project_id: str
    project_name: str = ""
    drive_folder_id: str = ""
    drive_folder_url: str = ""
    # False when the project already had a folder.
    created: bool = False
    message: str = ""


@dataclass
class FolderRepair:
    fixed: int = 0
    total: int = 0
    failed: List[str] = field(default_factory=list)
    message: str = ""


@dataclass
class MasterFolderSetting:
    """Per-user Drive folder that new project folders are created under."""

    folder_id: Optional[str] = None
    owner: str = ""
    message: str = ""


# Operation inputs. These are what the HTTP layer hands to the router and
# what both backends receive.


@dataclass
class TaskDraft:
    title: str
    description: str = ""
    project_id: Optional[str] = None
    context: str = ""
    due_date: Optional[str] = None
    attachments: List[TaskAttachment] = field(default_factory=list)


@dataclass
class TaskChanges:
    task_id: str
    title: Optional[str] = None
    description: Optional[str] = None
    project_id: Optional[str] = None
    context: Optional[str] = None
    due_date: Optional[str] = None
    is_completed: Optional[bool] = None

    def changed_fields(self) -> dict:
        return {
            key: value
            for key, value in asdict(self).items()
            if key != "task_id" and value is not None
        }


@dataclass
class TaskReorder:
    task_ids: List[str]


@dataclass
class ProjectDraft:
    name: str
    description: str = ""
    area_id: Optional[str] = None
    status: str = ProjectStatus.ACTIVE.value


@dataclass
class ProjectChanges:
    project_id: str
    name: Optional[str] = None
    description: Optional[str] = None
    area_id: Optional[str] = None
    status: Optional[str] = None

    def changed_fields(self) -> dict:
        return {
            key: value
            for key, value in asdict(self).items()
            if key != "project_id" and value is not None
        }


@dataclass
class AreaDraft:
    name: str
    description: str = ""


@dataclass
class ProjectFilesQuery:
    project_id: str
    folder_id: Optional[str] = None


@dataclass
class DriveQuery:
    folder_id: str = "root"
    search: Optional[str] = None
    scope: Optional[str] = None
    file_type: Optional[str] = None
    mime_type: Optional[str] = None
    days: int = 30
    limit: int = 100
    page_size: int = 100
    page_token: Optional[str] = None
    order_by: Optional[str] = None


def _to_int(value: Any) -> Any:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _to_bool(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def _to_str(value: Any) -> Any:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


# Spreadsheet cells and Apps Script payloads are loosely typed ("true", "3",
# 3, True); these hooks coerce them before dacite checks the field types.
DECODE_CONFIG = Config(type_hooks={int: _to_int, bool: _to_bool, str: _to_str})


def decode(data_class: Type[T], payload: dict) -> T:
    """Builds a dataclass from a camelCase JSON payload."""
    return from_dict(
        data_class=data_class,
        data=convert_keys(payload, "camel_to_snake"),
        config=DECODE_CONFIG,
    )


def decode_list(data_class: Type[T], payload: Optional[list]) -> List[T]:
    return [decode(data_class, item) for item in payload or []]


def encode(value: Any) -> Any:
    """Converts dataclasses (or lists of them) to camelCase JSON."""
    if isinstance(value, list):
        return [encode(item) for item in value]
    if hasattr(value, "__dataclass_fields__"):
        return convert_keys(asdict(value), "snake_to_camel")
    return value
