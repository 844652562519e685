"""
Primary backend for spreadsheet-held entities (areas, projects, tasks).

Talks to the Google Sheets v4 REST API with the caller's own access token.
Row layouts:

    Areas     A:F  id, name, description, driveFolderId, driveFolderUrl, createdAt
    Projects  A:H  id, name, description, areaId, status, driveFolderId,
                   driveFolderUrl, createdAt
    Tasks     A:J  id, title, description, projectId, context, dueDate,
                   isCompleted, sortOrder, createdAt, attachments (JSON)
    Settings  A:C  email, setting_key, setting_value

Row 1 of every tab is a header row.
"""

from __future__ import annotations

import json
import logging
import re
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, List, Optional

import requests
from dacite import DaciteError

from nowandlater.auth import Principal
from nowandlater.errors import (
    BackendFailure,
    ConfigurationError,
    PermanentBackendFailure,
)
from nowandlater.router import AttemptContext
from nowandlater.shared.types import (
    AppData,
    Area,
    AreaDraft,
    DeletedProject,
    DeletedTask,
    FolderRepair,
    MasterFolderSetting,
    Project,
    ProjectChanges,
    ProjectDraft,
    ProjectFolderSetup,
    Task,
    TaskAttachment,
    TaskChanges,
    TaskDraft,
    TaskReorder,
    TaskUpdate,
    decode,
    encode,
)
from nowandlater.transport import (
    bearer_headers,
    decodes_response,
    json_object,
    list_member,
    object_member,
    send,
    unexpected_shape,
)

if TYPE_CHECKING:
    from nowandlater.drive import DriveClient

logger = logging.getLogger(__name__)

SHEETS_API = "https://sheets.googleapis.com/v4/spreadsheets"

AREAS_TAB = "Areas"
PROJECTS_TAB = "Projects"
TASKS_TAB = "Tasks"
SETTINGS_TAB = "Settings"

AREAS_RANGE = f"{AREAS_TAB}!A:F"
PROJECTS_RANGE = f"{PROJECTS_TAB}!A:H"
TASKS_RANGE = f"{TASKS_TAB}!A:J"
SETTINGS_RANGE = f"{SETTINGS_TAB}!A:C"

AREA_COLUMNS = ["id", "name", "description", "driveFolderId", "driveFolderUrl", "createdAt"]
PROJECT_COLUMNS = [
    "id", "name", "description", "areaId", "status",
    "driveFolderId", "driveFolderUrl", "createdAt",
]
TASK_COLUMNS = [
    "id", "title", "description", "projectId", "context", "dueDate",
    "isCompleted", "sortOrder", "createdAt", "attachments",
]
SETTINGS_COLUMNS = ["email", "setting_key", "setting_value"]
MASTER_FOLDER_KEY = "master_folder_id"

# Column letter for each editable field.
TASK_FIELD_COLUMNS = {
    "title": "B",
    "description": "C",
    "project_id": "D",
    "context": "E",
    "due_date": "F",
    "is_completed": "G",
}
PROJECT_FIELD_COLUMNS = {
    "name": "B",
    "description": "C",
    "area_id": "D",
    "status": "E",
}
SORT_ORDER_COLUMN = "H"

_UPDATED_RANGE_ROW = re.compile(r"![A-Z]+(\d+)")


def new_id(prefix: str) -> str:
    return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _cell(row: list, index: int) -> str:
    if index >= len(row) or row[index] is None:
        return ""
    return row[index]


def _row_dict(row: list, columns: List[str]) -> dict:
    return {name: _cell(row, index) for index, name in enumerate(columns)}


def _optional(value: Any) -> Optional[str]:
    return value if value not in ("", None) else None


def parse_attachments(raw: Any) -> List[TaskAttachment]:
    """
    Attachments are stored as a JSON array in column J.

    Bad JSON yields no attachments, and an entry that does not decode is
    dropped on its own; neither fails the task it belongs to.
    """
    if not raw:
        return []
    try:
        items = json.loads(raw) if isinstance(raw, str) else raw
    except ValueError:
        logger.warning("Ignoring malformed attachments cell: %.60s", raw)
        return []
    if not isinstance(items, list):
        return []
    attachments = []
    for item in items:
        if not isinstance(item, dict):
            continue
        try:
            attachments.append(decode(TaskAttachment, item))
        except DaciteError as exc:
            logger.warning("Skipping malformed attachment %.60r: %s", item, exc)
    return attachments


def row_to_area(row: list) -> Optional[Area]:
    data = _row_dict(row, AREA_COLUMNS)
    if not data["id"]:
        return None
    return decode(Area, data)


def row_to_project(row: list) -> Optional[Project]:
    data = _row_dict(row, PROJECT_COLUMNS)
    if not data["id"]:
        return None
    data["areaId"] = _optional(data["areaId"])
    data["status"] = data["status"] or "Active"
    return decode(Project, data)


def row_to_task(row: list) -> Optional[Task]:
    data = _row_dict(row, TASK_COLUMNS)
    if not data["id"]:
        return None
    data["projectId"] = _optional(data["projectId"])
    data["dueDate"] = _optional(data["dueDate"])
    data["attachments"] = []
    task = decode(Task, data)
    task.attachments = parse_attachments(_cell(row, 9))
    return task


def task_to_row(task: Task) -> list:
    return [
        task.id,
        task.title,
        task.description,
        task.project_id or "",
        task.context,
        task.due_date or "",
        "true" if task.is_completed else "false",
        str(task.sort_order),
        task.created_at,
        json.dumps(encode(task.attachments)),
    ]


def project_to_row(project: Project) -> list:
    return [
        project.id,
        project.name,
        project.description,
        project.area_id or "",
        project.status,
        project.drive_folder_id,
        project.drive_folder_url,
        project.created_at,
    ]


def area_to_row(area: Area) -> list:
    return [
        area.id,
        area.name,
        area.description,
        area.drive_folder_id,
        area.drive_folder_url,
        area.created_at,
    ]


def _cell_value(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    return "" if value is None else value


def _data_rows(rows: list) -> list:
    """Drops the header row and pairs each row with its 1-based row number."""
    return [(index + 1, row) for index, row in enumerate(rows) if index > 0]


def _settings_owner(principal: Principal) -> str:
    return principal.email or principal.id


def _find_setting(rows: list, owner: str, key: str) -> Optional[tuple[int, list]]:
    for row_number, row in _data_rows(rows):
        if _cell(row, 0) == owner and _cell(row, 1) == key:
            return row_number, row
    return None


def _needs_folder(row: list) -> bool:
    url = _cell(row, 6)
    return not _cell(row, 5) or not (isinstance(url, str) and url.startswith("http"))


@dataclass
class SheetsClient:
    """Thin wrapper over the Sheets v4 values and batchUpdate endpoints."""

    spreadsheet_id: Optional[str]
    session: requests.Session = field(default_factory=requests.Session)

    def _url(self, suffix: str = "") -> str:
        if not self.spreadsheet_id:
            raise ConfigurationError("GOOGLE_SHEETS_ID is not configured")
        return f"{SHEETS_API}/{self.spreadsheet_id}{suffix}"

    def batch_get(
        self, principal: Principal, context: AttemptContext, ranges: List[str]
    ) -> List[list]:
        response = send(
            self.session,
            "GET",
            self._url("/values:batchGet"),
            context=context,
            action="Sheets batchGet",
            headers=bearer_headers(principal, context),
            params={"ranges": ranges},
        )
        action = "Sheets batchGet"
        body = json_object(response, context=context, action=action)
        value_ranges = list_member(body, "valueRanges", context=context, action=action)
        # Ranges come back in request order; empty tabs omit "values".
        return [
            list_member(value_ranges[i], "values", context=context, action=action, item_type=list)
            if i < len(value_ranges)
            else []
            for i in range(len(ranges))
        ]

    def get_values(
        self, principal: Principal, context: AttemptContext, range_: str
    ) -> list:
        action = f"Sheets get {range_}"
        response = send(
            self.session,
            "GET",
            self._url(f"/values/{range_}"),
            context=context,
            action=action,
            headers=bearer_headers(principal, context),
        )
        body = json_object(response, context=context, action=action)
        return list_member(body, "values", context=context, action=action, item_type=list)

    def append_row(
        self, principal: Principal, context: AttemptContext, range_: str, row: list
    ) -> Optional[int]:
        """Appends one row and returns its 1-based row number when known."""
        action = f"Sheets append {range_}"
        response = send(
            self.session,
            "POST",
            self._url(f"/values/{range_}:append"),
            context=context,
            action=action,
            headers=bearer_headers(principal, context),
            params={"valueInputOption": "RAW", "insertDataOption": "INSERT_ROWS"},
            json={"values": [row]},
        )
        body = json_object(response, context=context, action=action)
        updates = object_member(body, "updates", context=context, action=action)
        match = _UPDATED_RANGE_ROW.search(str(updates.get("updatedRange") or ""))
        return int(match.group(1)) if match else None

    def update_values(
        self, principal: Principal, context: AttemptContext, data: List[dict]
    ) -> None:
        send(
            self.session,
            "POST",
            self._url("/values:batchUpdate"),
            context=context,
            action="Sheets values batchUpdate",
            headers=bearer_headers(principal, context),
            json={"valueInputOption": "RAW", "data": data},
        )

    def add_sheet(self, principal: Principal, context: AttemptContext, title: str) -> None:
        send(
            self.session,
            "POST",
            self._url(":batchUpdate"),
            context=context,
            action=f"Sheets add {title} tab",
            headers=bearer_headers(principal, context),
            json={"requests": [{"addSheet": {"properties": {"title": title}}}]},
        )
        logger.info("Created sheet tab %s", title)

    def sheet_id(self, principal: Principal, context: AttemptContext, title: str) -> int:
        action = "Sheets metadata"
        response = send(
            self.session,
            "GET",
            self._url(),
            context=context,
            action=action,
            headers=bearer_headers(principal, context),
            params={"fields": "sheets.properties(sheetId,title)"},
        )
        body = json_object(response, context=context, action=action)
        for sheet in list_member(body, "sheets", context=context, action=action):
            properties = object_member(sheet, "properties", context=context, action=action)
            if properties.get("title") == title:
                sheet_id = properties.get("sheetId", 0)
                if not isinstance(sheet_id, int):
                    raise unexpected_shape(context, action, f"sheetId is {sheet_id!r}")
                return sheet_id
        raise PermanentBackendFailure(
            f"Sheet tab {title!r} not found",
            backend=context.backend.value,
            upstream_status=404,
        )

    def delete_row(
        self,
        principal: Principal,
        context: AttemptContext,
        title: str,
        row_number: int,
    ) -> None:
        sheet_id = self.sheet_id(principal, context, title)
        send(
            self.session,
            "POST",
            self._url(":batchUpdate"),
            context=context,
            action=f"Sheets delete {title} row {row_number}",
            headers=bearer_headers(principal, context),
            json={
                "requests": [
                    {
                        "deleteDimension": {
                            "range": {
                                "sheetId": sheet_id,
                                "dimension": "ROWS",
                                "startIndex": row_number - 1,
                                "endIndex": row_number,
                            }
                        }
                    }
                ]
            },
        )

    def find_row(
        self,
        principal: Principal,
        context: AttemptContext,
        range_: str,
        record_id: str,
    ) -> tuple[int, list]:
        """Returns `(row_number, row)` for the record whose column A matches."""
        for row_number, row in _data_rows(self.get_values(principal, context, range_)):
            if row and row[0] == record_id:
                return row_number, row
        raise PermanentBackendFailure(
            f"{range_.split('!')[0].rstrip('s')} {record_id} not found",
            backend=context.backend.value,
            upstream_status=404,
        )


class SheetsBackend:
    """
    Primary executors for spreadsheet operations.

    Each public method has the BackendExecutor signature
    `(principal, payload, context)` and is registered as-is with the router.
    """

    def __init__(self, client: SheetsClient, drive: Optional["DriveClient"] = None):
        self.client = client
        self.drive = drive

    # Reads

    @decodes_response
    def load_app_data(
        self, principal: Principal, payload: Any, context: AttemptContext
    ) -> AppData:
        areas_rows, projects_rows, tasks_rows = self.client.batch_get(
            principal, context, [AREAS_RANGE, PROJECTS_RANGE, TASKS_RANGE]
        )
        return AppData(
            areas=_decode_rows(areas_rows, row_to_area),
            projects=_decode_rows(projects_rows, row_to_project),
            tasks=_decode_rows(tasks_rows, row_to_task),
        )

    @decodes_response
    def list_tasks(
        self, principal: Principal, payload: Any, context: AttemptContext
    ) -> List[Task]:
        rows = self.client.get_values(principal, context, TASKS_RANGE)
        return _decode_rows(rows, row_to_task)

    # Task writes

    @decodes_response
    def create_task(
        self, principal: Principal, draft: TaskDraft, context: AttemptContext
    ) -> Task:
        task = Task(
            id=new_id("task"),
            title=draft.title,
            description=draft.description,
            project_id=draft.project_id,
            context=draft.context,
            due_date=draft.due_date,
            is_completed=False,
            sort_order=0,
            created_at=utc_now_iso(),
            attachments=list(draft.attachments),
        )
        self.client.append_row(principal, context, TASKS_RANGE, task_to_row(task))
        logger.info("Created task %s", task.id)
        return task

    @decodes_response
    def update_task(
        self, principal: Principal, changes: TaskChanges, context: AttemptContext
    ) -> TaskUpdate:
        fields = changes.changed_fields()
        if not fields:
            raise PermanentBackendFailure(
                "No fields to update", backend=context.backend.value
            )
        row_number, _ = self.client.find_row(principal, context, TASKS_RANGE, changes.task_id)
        self.client.update_values(
            principal,
            context,
            [
                {
                    "range": f"{TASKS_TAB}!{TASK_FIELD_COLUMNS[name]}{row_number}",
                    "values": [[_cell_value(value)]],
                }
                for name, value in fields.items()
            ],
        )
        return TaskUpdate(
            task_id=changes.task_id,
            updated_fields=sorted(fields),
            row_number=row_number,
        )

    @decodes_response
    def delete_task(
        self, principal: Principal, task_id: str, context: AttemptContext
    ) -> DeletedTask:
        row_number, _ = self.client.find_row(principal, context, TASKS_RANGE, task_id)
        self.client.delete_row(principal, context, TASKS_TAB, row_number)
        logger.info("Deleted task %s (row %d)", task_id, row_number)
        return DeletedTask(task_id=task_id)

    @decodes_response
    def reorder_tasks(
        self, principal: Principal, reorder: TaskReorder, context: AttemptContext
    ) -> TaskReorder:
        rows = self.client.get_values(principal, context, TASKS_RANGE)
        row_numbers = {row[0]: number for number, row in _data_rows(rows) if row}
        missing = [task_id for task_id in reorder.task_ids if task_id not in row_numbers]
        if missing:
            raise PermanentBackendFailure(
                f"Unknown task ids: {', '.join(missing)}",
                backend=context.backend.value,
                upstream_status=404,
            )
        self.client.update_values(
            principal,
            context,
            [
                {
                    "range": f"{TASKS_TAB}!{SORT_ORDER_COLUMN}{row_numbers[task_id]}",
                    "values": [[str(position)]],
                }
                for position, task_id in enumerate(reorder.task_ids)
            ],
        )
        return TaskReorder(task_ids=list(reorder.task_ids))

    # Project and area writes

    @decodes_response
    def create_project(
        self, principal: Principal, draft: ProjectDraft, context: AttemptContext
    ) -> Project:
        project = Project(
            id=new_id("proj"),
            name=draft.name,
            description=draft.description,
            area_id=draft.area_id,
            status=draft.status,
            created_at=utc_now_iso(),
        )
        row_number = self.client.append_row(
            principal, context, PROJECTS_RANGE, project_to_row(project)
        )
        logger.info("Created project %s", project.id)
        if self.drive is not None and row_number is not None:
            self._attach_project_folder(principal, context, project, row_number)
        return project

    def _attach_project_folder(
        self,
        principal: Principal,
        context: AttemptContext,
        project: Project,
        row_number: int,
    ) -> None:
        # The project row is already written. A folder that could not be
        # created is left for setup_project_folder / fix_project_folders.
        try:
            parent_id = self.master_folder_id(principal, context)
            folder_id, folder_url = self._create_project_folder(
                principal, context, project.name, row_number, parent_id
            )
        except BackendFailure as exc:
            logger.warning("Drive folder for project %s not created: %s", project.id, exc)
            return
        project.drive_folder_id = folder_id
        project.drive_folder_url = folder_url

    def _create_project_folder(
        self,
        principal: Principal,
        context: AttemptContext,
        name: str,
        row_number: int,
        parent_id: Optional[str],
    ) -> tuple[str, str]:
        """Creates a Drive folder and links it in Projects!F:G."""
        folder = self._require_drive().create_folder(principal, context, name, parent_id)
        folder_url = folder.web_view_link or ""
        self.client.update_values(
            principal,
            context,
            [
                {
                    "range": f"{PROJECTS_TAB}!F{row_number}:G{row_number}",
                    "values": [[folder.id, folder_url]],
                }
            ],
        )
        return folder.id, folder_url

    def _require_drive(self) -> "DriveClient":
        if self.drive is None:
            raise ConfigurationError("Drive folder creation is not configured")
        return self.drive

    @decodes_response
    def setup_project_folder(
        self, principal: Principal, project_id: str, context: AttemptContext
    ) -> ProjectFolderSetup:
        """Gives one project a Drive folder unless it already has one."""
        self._require_drive()
        row_number, row = self.client.find_row(principal, context, PROJECTS_RANGE, project_id)
        project = row_to_project(row)
        if project.drive_folder_id and project.drive_folder_url:
            return ProjectFolderSetup(
                project_id=project_id,
                project_name=project.name,
                drive_folder_id=project.drive_folder_id,
                drive_folder_url=project.drive_folder_url,
                message="Drive folder already configured",
            )
        folder_id, folder_url = self._create_project_folder(
            principal,
            context,
            project.name,
            row_number,
            self.master_folder_id(principal, context),
        )
        logger.info("Linked Drive folder %s to project %s", folder_id, project_id)
        return ProjectFolderSetup(
            project_id=project_id,
            project_name=project.name,
            drive_folder_id=folder_id,
            drive_folder_url=folder_url,
            created=True,
            message="Drive folder created and configured successfully",
        )

    @decodes_response
    def fix_project_folders(
        self, principal: Principal, payload: Any, context: AttemptContext
    ) -> FolderRepair:
        """
        Creates folders for every project missing a folder id or link.

        A project whose folder cannot be created is reported in `failed`
        and the others are still linked.
        """
        drive = self._require_drive()
        rows = self.client.get_values(principal, context, PROJECTS_RANGE)
        projects = [(number, row) for number, row in _data_rows(rows) if row and row[0]]
        broken = [(number, row) for number, row in projects if _needs_folder(row)]
        if not broken:
            return FolderRepair(
                total=len(projects), message="Fixed 0 projects with missing drive folders"
            )

        parent_id = self.master_folder_id(principal, context)
        updates = []
        failed = []
        for row_number, row in broken:
            project_id = row[0]
            try:
                folder = drive.create_folder(
                    principal, context, _cell(row, 1) or project_id, parent_id
                )
            except BackendFailure as exc:
                logger.warning("Drive folder for project %s not created: %s", project_id, exc)
                failed.append(project_id)
                continue
            updates.append(
                {
                    "range": f"{PROJECTS_TAB}!F{row_number}:G{row_number}",
                    "values": [[folder.id, folder.web_view_link or ""]],
                }
            )
        if updates:
            self.client.update_values(principal, context, updates)
        logger.info("Linked %d of %d broken project folders", len(updates), len(broken))
        return FolderRepair(
            fixed=len(updates),
            total=len(projects),
            failed=failed,
            message=f"Fixed {len(updates)} projects with missing drive folders",
        )

    @decodes_response
    def update_project(
        self, principal: Principal, changes: ProjectChanges, context: AttemptContext
    ) -> Project:
        fields = changes.changed_fields()
        if not fields:
            raise PermanentBackendFailure(
                "No fields to update", backend=context.backend.value
            )
        row_number, row = self.client.find_row(
            principal, context, PROJECTS_RANGE, changes.project_id
        )
        self.client.update_values(
            principal,
            context,
            [
                {
                    "range": f"{PROJECTS_TAB}!{PROJECT_FIELD_COLUMNS[name]}{row_number}",
                    "values": [[_cell_value(value)]],
                }
                for name, value in fields.items()
            ],
        )
        project = row_to_project(row)
        for name, value in fields.items():
            setattr(project, name, value)
        return project

    @decodes_response
    def delete_project(
        self, principal: Principal, project_id: str, context: AttemptContext
    ) -> DeletedProject:
        row_number, row = self.client.find_row(principal, context, PROJECTS_RANGE, project_id)
        self.client.delete_row(principal, context, PROJECTS_TAB, row_number)
        logger.info("Deleted project %s (row %d)", project_id, row_number)
        return DeletedProject(project_id=project_id, project_name=_cell(row, 1))

    @decodes_response
    def create_area(
        self, principal: Principal, draft: AreaDraft, context: AttemptContext
    ) -> Area:
        area = Area(
            id=new_id("area"),
            name=draft.name,
            description=draft.description,
            created_at=utc_now_iso(),
        )
        self.client.append_row(principal, context, AREAS_RANGE, area_to_row(area))
        logger.info("Created area %s", area.id)
        return area

    def project_folder_id(
        self, principal: Principal, project_id: str, context: AttemptContext
    ) -> Optional[str]:
        """Drive folder linked to a project (column F), if any."""
        rows = self.client.get_values(principal, context, PROJECTS_RANGE)
        for _, row in _data_rows(rows):
            if row and row[0] == project_id:
                return _cell(row, 5) or None
        return None

    # Per-user settings

    def _settings_rows(self, principal: Principal, context: AttemptContext) -> Optional[list]:
        """Rows of the Settings tab, or None while the tab does not exist."""
        try:
            return self.client.get_values(principal, context, SETTINGS_RANGE)
        except PermanentBackendFailure as exc:
            # Sheets answers 400 "Unable to parse range" for a missing tab.
            if exc.upstream_status != 400:
                raise
            logger.info("No %s tab yet: %s", SETTINGS_TAB, exc.detail)
            return None

    def master_folder_id(
        self, principal: Principal, context: AttemptContext
    ) -> Optional[str]:
        """Folder new project folders go under: the caller's setting, else the default."""
        found = _find_setting(
            self._settings_rows(principal, context) or [],
            _settings_owner(principal),
            MASTER_FOLDER_KEY,
        )
        folder_id = _cell(found[1], 2) if found else ""
        if folder_id:
            return folder_id
        return self.drive.parent_folder_id if self.drive is not None else None

    @decodes_response
    def get_master_folder(
        self, principal: Principal, payload: Any, context: AttemptContext
    ) -> MasterFolderSetting:
        owner = _settings_owner(principal)
        found = _find_setting(
            self._settings_rows(principal, context) or [], owner, MASTER_FOLDER_KEY
        )
        folder_id = (_cell(found[1], 2) if found else "") or None
        return MasterFolderSetting(
            folder_id=folder_id,
            owner=owner,
            message=(
                "Master folder configured"
                if folder_id
                else "No master folder set; project folders use the default parent"
            ),
        )

    @decodes_response
    def set_master_folder(
        self, principal: Principal, folder_id: str, context: AttemptContext
    ) -> MasterFolderSetting:
        owner = _settings_owner(principal)
        rows = self._settings_rows(principal, context)
        if rows is None:
            self.client.add_sheet(principal, context, SETTINGS_TAB)
        if not rows:
            self.client.update_values(
                principal,
                context,
                [{"range": f"{SETTINGS_TAB}!A1:C1", "values": [SETTINGS_COLUMNS]}],
            )
            rows = [SETTINGS_COLUMNS]

        found = _find_setting(rows, owner, MASTER_FOLDER_KEY)
        if found is None:
            self.client.append_row(
                principal, context, SETTINGS_RANGE, [owner, MASTER_FOLDER_KEY, folder_id]
            )
        else:
            self.client.update_values(
                principal,
                context,
                [{"range": f"{SETTINGS_TAB}!C{found[0]}", "values": [[folder_id]]}],
            )
        logger.info("Master folder for %s set to %s", owner, folder_id)
        return MasterFolderSetting(
            folder_id=folder_id, owner=owner, message="Master folder updated successfully"
        )


def _decode_rows(rows: list, decoder) -> list:
    items = []
    for _, row in _data_rows(rows):
        item = decoder(row)
        if item is not None:
            items.append(item)
    return items
