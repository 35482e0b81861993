"""
Backend selection and dependency wiring for the FastAPI app.

The selected clients live on ``app.state`` for the lifetime of the process;
routes receive them through ``Depends`` rather than module globals.
"""

from __future__ import annotations

import logging

from fastapi import Request

from formsite.config import Settings
from formsite.db import DbClient, JsonFileDbClient, PostgresDbClient, SqliteDbClient
from formsite.errors import StorageError
from formsite.uploads import LocalUploadStore

logger = logging.getLogger(__name__)


def select_db_client(settings: Settings) -> DbClient:
    """
    Pick the storage backend for this process.

    ``sqlite`` and ``json`` are used unconditionally. ``postgres`` is the
    networked-only mode, where initialization errors propagate. ``auto``
    prefers the database at ``database_url`` and falls back to the JSON file
    store when no URL is configured, the file store is forced, or the
    database cannot be initialized.
    """
    backend = settings.storage_backend
    if backend == "sqlite":
        logger.info("Using SQLite store at %s", settings.sqlite_path)
        return SqliteDbClient(settings.sqlite_path)
    if backend == "json":
        logger.info("Using JSON file store at %s", settings.json_store_path)
        return JsonFileDbClient(settings.json_store_path)
    if backend == "postgres":
        client = PostgresDbClient(
            settings.database_url or "", ssl_disabled=settings.db_ssl_disable
        )
        logger.info("Using database store")
        return client

    if settings.force_file_store or not settings.database_url:
        logger.info(
            "No database configured; using JSON file store at %s",
            settings.json_store_path,
        )
        return JsonFileDbClient(settings.json_store_path)
    try:
        client = PostgresDbClient(
            settings.database_url, ssl_disabled=settings.db_ssl_disable
        )
    except StorageError as exc:
        logger.warning(
            "Database unavailable, falling back to JSON file store at %s: %s",
            settings.json_store_path,
            exc,
        )
        return JsonFileDbClient(settings.json_store_path)
    logger.info("Using database store")
    return client


def build_upload_store(settings: Settings) -> LocalUploadStore:
    return LocalUploadStore(directory=settings.uploads_dir)


def get_db_client(request: Request) -> DbClient:
    return request.app.state.db_client


def get_upload_store(request: Request) -> LocalUploadStore:
    return request.app.state.upload_store
