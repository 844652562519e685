"""
Legacy backend: the Apps Script web app.

Reads are sent as `GET ?function=&parameters=&token=`, writes as a
`text/plain` JSON body `{action, parameters, token}`. Every response is an
envelope `{success, data, message}`.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

import requests

from nowandlater.auth import Principal
from nowandlater.drive import ROOT_FOLDER, project_file_type, to_drive_file
from nowandlater.errors import (
    ConfigurationError,
    PermanentBackendFailure,
    TransientBackendFailure,
)
from nowandlater.router import AttemptContext
from nowandlater.sheets import parse_attachments
from nowandlater.shared.types import (
    AppData,
    Area,
    AreaDraft,
    DeletedProject,
    DeletedTask,
    DriveFile,
    DriveListing,
    DriveQuery,
    PathSegment,
    Project,
    ProjectChanges,
    ProjectDraft,
    ProjectFile,
    ProjectFilesQuery,
    Task,
    TaskChanges,
    TaskDraft,
    TaskReorder,
    TaskUpdate,
    decode,
    decode_list,
    encode,
)
from nowandlater.transport import decodes_response, json_body, send, unexpected_shape

logger = logging.getLogger(__name__)

GET = "GET"
POST = "POST"


@dataclass
class AppsScriptClient:
    url: Optional[str]
    session: requests.Session = field(default_factory=requests.Session)

    def call(
        self,
        principal: Principal,
        function: str,
        args: list,
        context: AttemptContext,
        method: str = POST,
    ) -> Any:
        """
        Runs one Apps Script function and unwraps its envelope.

        Args:
            principal: Caller whose credential is forwarded as `token`.
            function: Apps Script function name, e.g. `loadAppData`.
            args: Positional parameters, JSON-encoded.
            context: Attempt settings (timeout, cancellation).
            method: GET for reads, POST for writes.

        Returns:
            Any: The envelope's `data` member.

        Raises:
            PermanentBackendFailure: The script answered `success: false`.
            TransientBackendFailure: Transport problems or a malformed reply.
        """
        if not self.url:
            raise ConfigurationError("APPS_SCRIPT_URL is not configured")
        action = f"Apps Script {function}"
        if method == GET:
            response = send(
                self.session,
                GET,
                self.url,
                context=context,
                action=action,
                params={
                    "function": function,
                    "parameters": json.dumps(args),
                    "token": principal.credential,
                },
            )
        else:
            response = send(
                self.session,
                POST,
                self.url,
                context=context,
                action=action,
                headers={"Content-Type": "text/plain;charset=utf-8"},
                data=json.dumps(
                    {"action": function, "parameters": args, "token": principal.credential}
                ),
            )

        envelope = json_body(response, context=context, action=action)
        if not isinstance(envelope, dict) or "success" not in envelope:
            raise TransientBackendFailure(
                f"{action} returned a malformed envelope",
                backend=context.backend.value,
                upstream_status=response.status_code,
            )
        if not envelope["success"]:
            message = envelope.get("message") or envelope.get("error") or "request failed"
            logger.warning("%s rejected: %s", action, message)
            raise PermanentBackendFailure(
                f"{action}: {message}",
                backend=context.backend.value,
                upstream_status=404 if "not found" in str(message).lower() else None,
            )
        return envelope.get("data")


def _task(item: dict) -> Task:
    attachments = item.get("attachments")
    payload = {**item, "attachments": []}
    for key in ("projectId", "dueDate"):
        if payload.get(key) == "":
            payload[key] = None
    task = decode(Task, payload)
    task.attachments = parse_attachments(attachments)
    return task


def _project(item: dict) -> Project:
    payload = dict(item)
    if payload.get("areaId") == "":
        payload["areaId"] = None
    payload["status"] = payload.get("status") or "Active"
    return decode(Project, payload)


def _project_file(item: dict) -> ProjectFile:
    mime_type = str(item.get("mimeType") or "")
    payload = {
        **item,
        "mimeType": mime_type,
        "fileType": item.get("fileType") or item.get("type") or project_file_type(mime_type),
        "url": item.get("url") or item.get("webViewLink") or "",
        "thumbnailUrl": item.get("thumbnailUrl") or item.get("thumbnailLink"),
        "downloadUrl": item.get("downloadUrl")
        or f"https://drive.google.com/uc?id={item.get('id', '')}&export=download",
        "isFolder": item.get("isFolder", mime_type.endswith(".folder")),
        "createdAt": item.get("createdAt") or item.get("createdTime") or "",
        "modifiedAt": item.get("modifiedAt") or item.get("modifiedTime") or "",
    }
    return decode(ProjectFile, payload)


def _list(data: Any, context: AttemptContext, function: str) -> list:
    """Objects in a list payload; null is an empty list, non-objects are skipped."""
    if data is None:
        return []
    if not isinstance(data, list):
        raise unexpected_shape(
            context, f"Apps Script {function}", f"expected a list, got {type(data).__name__}"
        )
    return [item for item in data if isinstance(item, dict)]


def _object(data: Any, context: AttemptContext, function: str) -> dict:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise unexpected_shape(
            context, f"Apps Script {function}", f"expected an object, got {type(data).__name__}"
        )
    return data


class AppsScriptBackend:
    """Legacy executors. Same signatures and result types as the primary ones."""

    def __init__(self, client: AppsScriptClient):
        self.client = client

    @decodes_response
    def load_app_data(
        self, principal: Principal, payload: Any, context: AttemptContext
    ) -> AppData:
        function = "loadAppData"
        data = _object(
            self.client.call(principal, function, [], context, GET), context, function
        )
        return AppData(
            areas=decode_list(Area, _list(data.get("areas"), context, function)),
            projects=[_project(item) for item in _list(data.get("projects"), context, function)],
            tasks=[_task(item) for item in _list(data.get("tasks"), context, function)],
        )

    @decodes_response
    def list_tasks(
        self, principal: Principal, payload: Any, context: AttemptContext
    ) -> List[Task]:
        data = self.client.call(principal, "getTasks", [None, None], context, GET)
        return [_task(item) for item in _list(data, context, "getTasks")]

    @decodes_response
    def create_task(
        self, principal: Principal, draft: TaskDraft, context: AttemptContext
    ) -> Task:
        data = self.client.call(
            principal,
            "createTask",
            [
                draft.title,
                draft.description,
                draft.project_id,
                draft.context,
                draft.due_date,
                encode(draft.attachments),
            ],
            context,
        )
        return _task(_object(data, context, "createTask"))

    @decodes_response
    def update_task(
        self, principal: Principal, changes: TaskChanges, context: AttemptContext
    ) -> TaskUpdate:
        fields = changes.changed_fields()
        if not fields:
            raise PermanentBackendFailure("No fields to update", backend=context.backend.value)
        is_completed = fields.pop("is_completed", None)
        if fields:
            self.client.call(
                principal,
                "updateTask",
                [
                    changes.task_id,
                    changes.title,
                    changes.description,
                    changes.project_id,
                    changes.context,
                    changes.due_date,
                ],
                context,
            )
        if is_completed is not None:
            self.client.call(
                principal, "updateTaskCompletion", [changes.task_id, is_completed], context
            )
        return TaskUpdate(
            task_id=changes.task_id,
            updated_fields=sorted(changes.changed_fields()),
        )

    @decodes_response
    def delete_task(
        self, principal: Principal, task_id: str, context: AttemptContext
    ) -> DeletedTask:
        self.client.call(principal, "deleteTask", [task_id], context)
        return DeletedTask(task_id=task_id)

    @decodes_response
    def reorder_tasks(
        self, principal: Principal, reorder: TaskReorder, context: AttemptContext
    ) -> TaskReorder:
        self.client.call(principal, "reorderTasks", [list(reorder.task_ids)], context)
        return TaskReorder(task_ids=list(reorder.task_ids))

    @decodes_response
    def create_project(
        self, principal: Principal, draft: ProjectDraft, context: AttemptContext
    ) -> Project:
        data = self.client.call(
            principal, "createProject", [draft.name, draft.description, draft.area_id], context
        )
        return _project(_object(data, context, "createProject"))

    @decodes_response
    def update_project(
        self, principal: Principal, changes: ProjectChanges, context: AttemptContext
    ) -> Project:
        fields = changes.changed_fields()
        if not fields:
            raise PermanentBackendFailure("No fields to update", backend=context.backend.value)
        unsupported = sorted(set(fields) - {"status", "area_id"})
        if unsupported:
            raise PermanentBackendFailure(
                f"Legacy backend cannot update {', '.join(unsupported)}",
                backend=context.backend.value,
            )
        if "status" in fields:
            self.client.call(
                principal, "updateProjectStatus", [changes.project_id, changes.status], context
            )
        if "area_id" in fields:
            self.client.call(
                principal, "updateProjectArea", [changes.project_id, changes.area_id], context
            )
        projects = self.client.call(principal, "getProjects", [None], context, GET)
        for item in _list(projects, context, "getProjects"):
            if item.get("id") == changes.project_id:
                return _project(item)
        raise PermanentBackendFailure(
            f"Project {changes.project_id} not found",
            backend=context.backend.value,
            upstream_status=404,
        )

    @decodes_response
    def delete_project(
        self, principal: Principal, project_id: str, context: AttemptContext
    ) -> DeletedProject:
        data = self.client.call(principal, "deleteProject", [project_id], context)
        name = data.get("projectName", "") if isinstance(data, dict) else ""
        return DeletedProject(project_id=project_id, project_name=name)

    @decodes_response
    def create_area(
        self, principal: Principal, draft: AreaDraft, context: AttemptContext
    ) -> Area:
        data = self.client.call(principal, "createArea", [draft.name, draft.description], context)
        return decode(Area, _object(data, context, "createArea"))

    @decodes_response
    def list_project_files(
        self, principal: Principal, query: ProjectFilesQuery, context: AttemptContext
    ) -> List[ProjectFile]:
        if query.folder_id:
            function, args = "getFolderFiles", [query.folder_id]
        else:
            function, args = "getProjectFiles", [query.project_id]
        data = self.client.call(principal, function, args, context, GET)
        return [_project_file(item) for item in _list(data, context, function)]

    @decodes_response
    def list_drive_files(
        self, principal: Principal, query: DriveQuery, context: AttemptContext
    ) -> DriveListing:
        folder_id = query.folder_id or ROOT_FOLDER
        data = self.client.call(principal, "listDriveFiles", [folder_id], context, GET)
        return DriveListing(
            files=[to_drive_file(item) for item in _list(data, context, "listDriveFiles")],
            next_page_token=None,
            folder_id=folder_id,
        )

    @decodes_response
    def search_drive_files(
        self, principal: Principal, query: DriveQuery, context: AttemptContext
    ) -> List[DriveFile]:
        data = self.client.call(principal, "searchDriveFiles", [query.search], context, GET)
        return [to_drive_file(item) for item in _list(data, context, "searchDriveFiles")]

    @decodes_response
    def get_file_path(
        self, principal: Principal, file_id: str, context: AttemptContext
    ) -> List[PathSegment]:
        data = self.client.call(principal, "getFilePath", [file_id], context, GET)
        return decode_list(PathSegment, _list(data, context, "getFilePath"))


class Unsupported:
    """Legacy executor for operations the Apps Script never offered."""

    def __init__(self, operation: str):
        self.operation = operation

    def __call__(self, principal: Principal, payload: Any, context: AttemptContext) -> Any:
        raise PermanentBackendFailure(
            f"{self.operation} is not available on the legacy backend",
            backend=context.backend.value,
        )
