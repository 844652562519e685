"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

from typing import Optional

import requests
from fastapi import Depends, Header

from nowandlater.apps_script import AppsScriptBackend, AppsScriptClient
from nowandlater.auth import (
    CredentialValidator,
    GoogleTokenValidator,
    Principal,
    StaticCredentialValidator,
)
from nowandlater.config import RouterConfig, get_settings
from nowandlater.drive import DriveBackend, DriveClient
from nowandlater.invalidation import (
    InMemoryInvalidationStore,
    InvalidationStore,
    RedisInvalidationStore,
)
from nowandlater.observers import CompositeObserver, LoggingObserver, RecordingObserver
from nowandlater.operations import OperationSet
from nowandlater.router import RequestRouter
from nowandlater.sheets import SheetsBackend, SheetsClient

_validator: CredentialValidator | None = None
_store: InvalidationStore | None = None
_recorder: RecordingObserver | None = None
_router: RequestRouter | None = None
_operations: OperationSet | None = None
_session: requests.Session | None = None


def get_http_session() -> requests.Session:
    """One pooled session for every outbound Google call."""
    global _session
    if _session:
        return _session
    _session = requests.Session()
    return _session


def get_credential_validator() -> CredentialValidator:
    global _validator
    if _validator:
        return _validator

    settings = get_settings()
    if settings.use_in_memory_backends:
        _validator = StaticCredentialValidator()
    else:
        _validator = GoogleTokenValidator(
            client_id=settings.google_client_id,
            timeout=settings.attempt_timeout_seconds,
            session=get_http_session(),
        )
    return _validator


def get_invalidation_store() -> InvalidationStore:
    """
    Return a singleton registry so invalidations outlive the request that
    made them.
    """
    global _store
    if _store:
        return _store

    settings = get_settings()
    if settings.redis_url and not settings.use_in_memory_backends:
        _store = RedisInvalidationStore(
            url=settings.redis_url,
            key_prefix=settings.redis_key_prefix,
        )
    else:
        _store = InMemoryInvalidationStore()
    return _store


def get_recording_observer() -> RecordingObserver:
    global _recorder
    if _recorder:
        return _recorder
    _recorder = RecordingObserver()
    return _recorder


def get_request_router() -> RequestRouter:
    global _router
    if _router:
        return _router

    settings = get_settings()
    _router = RequestRouter(
        config=RouterConfig.from_settings(settings),
        store=get_invalidation_store(),
        observer=CompositeObserver([LoggingObserver(), get_recording_observer()]),
    )
    return _router


def get_operations() -> OperationSet:
    global _operations
    if _operations:
        return _operations

    settings = get_settings()
    session = get_http_session()
    drive_client = DriveClient(
        session=session, parent_folder_id=settings.drive_parent_folder_id
    )
    sheets = SheetsBackend(
        SheetsClient(spreadsheet_id=settings.google_sheets_id, session=session),
        drive=drive_client,
    )
    _operations = OperationSet(
        sheets=sheets,
        drive=DriveBackend(drive_client, sheets=sheets),
        legacy=AppsScriptBackend(
            AppsScriptClient(url=settings.apps_script_url, session=session)
        ),
    )
    return _operations


def get_principal(
    authorization: Optional[str] = Header(default=None),
    validator: CredentialValidator = Depends(get_credential_validator),
) -> Principal:
    """Validates the bearer credential; nothing routed runs without it."""
    return validator.validate(authorization)


def reset_dependencies() -> None:
    """Drops the cached singletons (tests and settings reloads)."""
    global _validator, _store, _recorder, _router, _operations, _session
    _validator = _store = _recorder = _router = _operations = _session = None
    get_settings.cache_clear()
