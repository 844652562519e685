"""
Pydantic schemas for the HTTP API. Bodies and envelopes use camelCase.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from nowandlater.shared.types import ProjectStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class AttachmentPayload(CamelModel):
    id: str
    name: str
    mime_type: str = ""
    size: int = 0
    url: str = ""
    thumbnail_url: Optional[str] = None
    drive_file_id: Optional[str] = None
    uploaded_at: str = ""


class CreateTaskRequest(CamelModel):
    title: str = Field(..., min_length=1, max_length=500)
    description: str = ""
    project_id: Optional[str] = None
    context: str = ""
    due_date: Optional[str] = None
    attachments: list[AttachmentPayload] = Field(default_factory=list)


class UpdateTaskRequest(CamelModel):
    task_id: str = Field(..., min_length=1)
    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    description: Optional[str] = None
    project_id: Optional[str] = None
    context: Optional[str] = None
    due_date: Optional[str] = None
    is_completed: Optional[bool] = None


class DeleteTaskRequest(CamelModel):
    task_id: str = Field(..., min_length=1)


class ReorderTasksRequest(CamelModel):
    task_ids: list[str] = Field(..., min_length=1)


class CreateProjectRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    area_id: Optional[str] = None
    status: ProjectStatus = ProjectStatus.ACTIVE


class UpdateProjectRequest(CamelModel):
    project_id: str = Field(..., min_length=1)
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    area_id: Optional[str] = None
    status: Optional[ProjectStatus] = None


class DeleteProjectRequest(CamelModel):
    project_id: str = Field(..., min_length=1)


class CreateAreaRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str = ""


class SetupDriveFolderRequest(CamelModel):
    project_id: str = Field(..., min_length=1)


class SetMasterFolderRequest(CamelModel):
    folder_id: str = Field(..., min_length=1)


class CacheInvalidateRequest(CamelModel):
    cache_keys: list[str] = Field(..., min_length=1)


class Performance(CamelModel):
    duration: str
    timestamp: str
    backend: Optional[str] = None
    cache_invalidated: bool = False


class Envelope(CamelModel):
    success: bool
    data: Any = None
    message: Optional[str] = None
    error: Optional[str] = None
    details: Optional[Any] = None
    needs_refresh: Optional[bool] = None
    performance: Optional[Performance] = None


class BackendAttempts(BaseModel):
    attempts: int
    failures: int


class HealthResponse(CamelModel):
    status: str
    environment: str
    primary_enabled: bool
    fallback_enabled: bool
    invalidation_store: str
    backends: dict[str, BackendAttempts] = Field(default_factory=dict)
