"""
HTTP routes for the data-access API.

Every routed handler authenticates the caller, builds the operation input,
and hands it to the RequestRouter in the worker thread pool while watching
for client disconnects.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query, Request
from fastapi.concurrency import run_in_threadpool

from nowandlater.auth import Principal
from nowandlater.cancellation import CancellationToken, watch_disconnect
from nowandlater.config import get_settings
from nowandlater.dependencies import (
    get_invalidation_store,
    get_operations,
    get_principal,
    get_recording_observer,
    get_request_router,
)
from nowandlater.errors import InvalidRequest
from nowandlater.invalidation import InvalidationStore
from nowandlater.observers import RecordingObserver
from nowandlater.operations import OperationSet
from nowandlater.router import OperationDescriptor, RequestRouter
from nowandlater.schemas import (
    CacheInvalidateRequest,
    CreateAreaRequest,
    CreateProjectRequest,
    CreateTaskRequest,
    DeleteProjectRequest,
    DeleteTaskRequest,
    Envelope,
    HealthResponse,
    Performance,
    ReorderTasksRequest,
    SetMasterFolderRequest,
    SetupDriveFolderRequest,
    UpdateProjectRequest,
    UpdateTaskRequest,
)
from nowandlater.shared.types import (
    AreaDraft,
    CacheInvalidation,
    DriveQuery,
    DriveScope,
    ProjectChanges,
    ProjectDraft,
    ProjectFilesQuery,
    TaskChanges,
    TaskDraft,
    TaskReorder,
    decode,
    encode,
)

logger = logging.getLogger(__name__)

router = APIRouter()

MIN_SEARCH_LENGTH = 3


async def _route(
    request: Request,
    router_: RequestRouter,
    operation: OperationDescriptor,
    principal: Principal,
    payload: Any,
    message: Optional[str] = None,
) -> Envelope:
    token = CancellationToken()
    watcher = asyncio.create_task(watch_disconnect(request, token))
    try:
        result = await run_in_threadpool(
            router_.execute, operation, principal, payload, cancellation=token
        )
    finally:
        watcher.cancel()
    return Envelope(
        success=True,
        data=encode(result.value),
        message=message,
        performance=Performance(**result.performance()),
    )


@router.get("/app/load-data", response_model=Envelope, response_model_exclude_none=True)
async def load_app_data(
    request: Request,
    principal: Principal = Depends(get_principal),
    router_: RequestRouter = Depends(get_request_router),
    operations: OperationSet = Depends(get_operations),
):
    return await _route(request, router_, operations.load_app_data, principal, None)


@router.get("/tasks/manage", response_model=Envelope, response_model_exclude_none=True)
async def list_tasks(
    request: Request,
    principal: Principal = Depends(get_principal),
    router_: RequestRouter = Depends(get_request_router),
    operations: OperationSet = Depends(get_operations),
):
    return await _route(request, router_, operations.list_tasks, principal, None)


@router.post(
    "/tasks/manage",
    response_model=Envelope,
    response_model_exclude_none=True,
    status_code=201,
)
async def create_task(
    request: Request,
    payload: CreateTaskRequest,
    principal: Principal = Depends(get_principal),
    router_: RequestRouter = Depends(get_request_router),
    operations: OperationSet = Depends(get_operations),
):
    draft = decode(TaskDraft, payload.model_dump(by_alias=True))
    return await _route(
        request, router_, operations.create_task, principal, draft,
        message="Task created successfully",
    )


@router.put("/tasks/manage", response_model=Envelope, response_model_exclude_none=True)
async def update_task(
    request: Request,
    payload: UpdateTaskRequest,
    principal: Principal = Depends(get_principal),
    router_: RequestRouter = Depends(get_request_router),
    operations: OperationSet = Depends(get_operations),
):
    changes = decode(TaskChanges, payload.model_dump(by_alias=True))
    if not changes.changed_fields():
        raise InvalidRequest("No fields to update")
    return await _route(
        request, router_, operations.update_task, principal, changes,
        message="Task updated successfully",
    )


@router.delete("/tasks/manage", response_model=Envelope, response_model_exclude_none=True)
async def delete_task(
    request: Request,
    task_id: Optional[str] = Query(default=None, alias="taskId"),
    payload: Optional[DeleteTaskRequest] = Body(default=None),
    principal: Principal = Depends(get_principal),
    router_: RequestRouter = Depends(get_request_router),
    operations: OperationSet = Depends(get_operations),
):
    task_id = task_id or (payload.task_id if payload else None)
    if not task_id:
        raise InvalidRequest("taskId is required")
    return await _route(
        request, router_, operations.delete_task, principal, task_id,
        message="Task deleted successfully",
    )


@router.post("/tasks/reorder", response_model=Envelope, response_model_exclude_none=True)
async def reorder_tasks(
    request: Request,
    payload: ReorderTasksRequest,
    principal: Principal = Depends(get_principal),
    router_: RequestRouter = Depends(get_request_router),
    operations: OperationSet = Depends(get_operations),
):
    if len(set(payload.task_ids)) != len(payload.task_ids):
        raise InvalidRequest("taskIds must not repeat")
    return await _route(
        request, router_, operations.reorder_tasks, principal,
        TaskReorder(task_ids=list(payload.task_ids)),
    )


@router.get("/projects/files", response_model=Envelope, response_model_exclude_none=True)
async def list_project_files(
    request: Request,
    project_id: str = Query(..., alias="projectId", min_length=1),
    folder_id: Optional[str] = Query(default=None, alias="folderId"),
    principal: Principal = Depends(get_principal),
    router_: RequestRouter = Depends(get_request_router),
    operations: OperationSet = Depends(get_operations),
):
    operation = operations.list_project_files.scoped(project_id)
    query = ProjectFilesQuery(project_id=project_id, folder_id=folder_id)
    return await _route(request, router_, operation, principal, query)


@router.post(
    "/projects/manage",
    response_model=Envelope,
    response_model_exclude_none=True,
    status_code=201,
)
async def create_project(
    request: Request,
    payload: CreateProjectRequest,
    principal: Principal = Depends(get_principal),
    router_: RequestRouter = Depends(get_request_router),
    operations: OperationSet = Depends(get_operations),
):
    draft = decode(ProjectDraft, payload.model_dump(by_alias=True, mode="json"))
    return await _route(
        request, router_, operations.create_project, principal, draft,
        message="Project created successfully",
    )


@router.put("/projects/manage", response_model=Envelope, response_model_exclude_none=True)
async def update_project(
    request: Request,
    payload: UpdateProjectRequest,
    principal: Principal = Depends(get_principal),
    router_: RequestRouter = Depends(get_request_router),
    operations: OperationSet = Depends(get_operations),
):
    changes = decode(ProjectChanges, payload.model_dump(by_alias=True, mode="json"))
    if not changes.changed_fields():
        raise InvalidRequest("No fields to update")
    return await _route(
        request, router_, operations.update_project, principal, changes,
        message="Project updated successfully",
    )


@router.delete("/projects/manage", response_model=Envelope, response_model_exclude_none=True)
async def delete_project(
    request: Request,
    project_id: Optional[str] = Query(default=None, alias="projectId"),
    payload: Optional[DeleteProjectRequest] = Body(default=None),
    principal: Principal = Depends(get_principal),
    router_: RequestRouter = Depends(get_request_router),
    operations: OperationSet = Depends(get_operations),
):
    project_id = project_id or (payload.project_id if payload else None)
    if not project_id:
        raise InvalidRequest("projectId is required")
    return await _route(
        request, router_, operations.delete_project, principal, project_id,
        message="Project deleted successfully",
    )


@router.post(
    "/areas/manage",
    response_model=Envelope,
    response_model_exclude_none=True,
    status_code=201,
)
async def create_area(
    request: Request,
    payload: CreateAreaRequest,
    principal: Principal = Depends(get_principal),
    router_: RequestRouter = Depends(get_request_router),
    operations: OperationSet = Depends(get_operations),
):
    draft = AreaDraft(name=payload.name, description=payload.description)
    return await _route(
        request, router_, operations.create_area, principal, draft,
        message="Area created successfully",
    )


@router.post(
    "/projects/setup-drive-folder",
    response_model=Envelope,
    response_model_exclude_none=True,
)
async def setup_drive_folder(
    request: Request,
    payload: SetupDriveFolderRequest,
    principal: Principal = Depends(get_principal),
    router_: RequestRouter = Depends(get_request_router),
    operations: OperationSet = Depends(get_operations),
):
    operation = operations.setup_project_folder.scoped(payload.project_id)
    return await _route(request, router_, operation, principal, payload.project_id)


@router.post(
    "/projects/fix-drive-folders",
    response_model=Envelope,
    response_model_exclude_none=True,
)
async def fix_drive_folders(
    request: Request,
    principal: Principal = Depends(get_principal),
    router_: RequestRouter = Depends(get_request_router),
    operations: OperationSet = Depends(get_operations),
):
    return await _route(request, router_, operations.fix_project_folders, principal, None)


@router.get("/settings/master-folder", response_model=Envelope, response_model_exclude_none=True)
async def get_master_folder(
    request: Request,
    principal: Principal = Depends(get_principal),
    router_: RequestRouter = Depends(get_request_router),
    operations: OperationSet = Depends(get_operations),
):
    return await _route(request, router_, operations.get_master_folder, principal, None)


@router.post(
    "/settings/master-folder",
    response_model=Envelope,
    response_model_exclude_none=True,
)
async def set_master_folder(
    request: Request,
    payload: SetMasterFolderRequest,
    principal: Principal = Depends(get_principal),
    router_: RequestRouter = Depends(get_request_router),
    operations: OperationSet = Depends(get_operations),
):
    return await _route(
        request, router_, operations.set_master_folder, principal, payload.folder_id,
        message="Master folder updated successfully",
    )


@router.get("/drive/files", response_model=Envelope, response_model_exclude_none=True)
async def drive_files(
    request: Request,
    folder_id: str = Query(default="root", alias="folderId"),
    search: Optional[str] = Query(default=None),
    scope: Optional[str] = Query(default=None),
    file_type: Optional[str] = Query(default=None, alias="type"),
    mime_type: Optional[str] = Query(default=None, alias="mimeType"),
    days: int = Query(default=30, ge=1, le=3650),
    limit: int = Query(default=100, ge=1, le=1000),
    page_size: int = Query(default=100, ge=1, le=1000, alias="pageSize"),
    page_token: Optional[str] = Query(default=None, alias="pageToken"),
    order_by: Optional[str] = Query(default=None, alias="orderBy"),
    path_for: Optional[str] = Query(default=None, alias="pathFor"),
    principal: Principal = Depends(get_principal),
    router_: RequestRouter = Depends(get_request_router),
    operations: OperationSet = Depends(get_operations),
):
    """
    One endpoint, four modes: `pathFor` resolves a breadcrumb, `search`
    runs a full-text query, `scope` lists recent, shared or trashed files, and
    anything else lists `folderId`.
    """
    if path_for:
        operation = operations.get_file_path.scoped(path_for)
        return await _route(request, router_, operation, principal, path_for)

    if search is not None and len(search.strip()) < MIN_SEARCH_LENGTH:
        raise InvalidRequest(
            f"Search query must be at least {MIN_SEARCH_LENGTH} characters"
        )

    query = DriveQuery(
        folder_id=folder_id or "root",
        search=search.strip() if search else None,
        scope=scope,
        file_type=file_type,
        mime_type=mime_type,
        days=days,
        limit=limit,
        page_size=page_size,
        page_token=page_token,
        order_by=order_by,
    )
    if scope == DriveScope.RECENT:
        operation = operations.recent_drive_files
    elif scope == DriveScope.SHARED:
        operation = operations.shared_drive_files
    elif scope == DriveScope.TRASH:
        operation = operations.trash_drive_files
    elif scope:
        raise InvalidRequest(f"Unsupported scope: {scope}")
    elif query.search:
        operation = operations.search_drive_files
    else:
        operation = operations.list_drive_files.scoped(query.folder_id)
    return await _route(request, router_, operation, principal, query)


@router.post("/cache/invalidate", response_model=Envelope, response_model_exclude_none=True)
def invalidate_cache(
    payload: CacheInvalidateRequest,
    principal: Principal = Depends(get_principal),
    store: InvalidationStore = Depends(get_invalidation_store),
):
    """Marks resource classes stale for the caller, e.g. after an out-of-band edit."""
    keys = [key for key in payload.cache_keys if key]
    if not keys:
        raise InvalidRequest("cacheKeys must contain at least one key")
    for key in keys:
        store.mark_invalidated(principal.id, key)
    logger.info("Invalidated %d cache key(s) for %s", len(keys), principal.id)

    result = CacheInvalidation(
        invalidated_keys=keys,
        timestamp=datetime.now(timezone.utc).isoformat(),
        message=f"Invalidated {len(keys)} cache key(s)",
    )
    return Envelope(success=True, data=encode(result), message=result.message)


@router.get("/health", response_model=HealthResponse)
def health(
    router_: RequestRouter = Depends(get_request_router),
    recorder: RecordingObserver = Depends(get_recording_observer),
):
    settings = get_settings()
    return HealthResponse(
        status="ok",
        environment=settings.environment,
        primary_enabled=router_.config.primary_enabled,
        fallback_enabled=router_.config.fallback_enabled,
        invalidation_store=type(router_.store).__name__,
        backends=recorder.summary(),
    )
