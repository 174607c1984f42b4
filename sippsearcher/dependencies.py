"""
Backend selection and dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError

from sippsearcher.config import Settings
from sippsearcher.db import (
    DbClient,
    InMemoryDbClient,
    PostgresDbClient,
    SqliteDbClient,
    StorageError,
)
from sippsearcher.storage import LocalPhotoStorage, PhotoStorage

logger = logging.getLogger(__name__)


class StorageConfigurationError(RuntimeError):
    """No durable storage is available where one is required."""


async def open_db_client(settings: Settings) -> DbClient:
    """
    Pick exactly one backend for the life of the process and initialize it.

    Production requires DATABASE_URL. Otherwise Postgres is used when
    configured, then the embedded SQLite file, then in-memory storage.
    """
    if settings.is_production and not settings.database_url:
        raise StorageConfigurationError(
            "DATABASE_URL must be set when ENVIRONMENT=production"
        )

    if settings.database_url:
        client = PostgresDbClient(
            settings.database_url,
            timeout_seconds=settings.storage_timeout_seconds,
            ssl=settings.database_ssl,
        )
        await client.init_schema()
        logger.info("Using Postgres database")
        return client

    if settings.use_in_memory_backend:
        logger.info("Using in-memory database (USE_IN_MEMORY_BACKEND)")
        return InMemoryDbClient()

    client = None
    try:
        client = SqliteDbClient(
            settings.sqlite_path, timeout_seconds=settings.storage_timeout_seconds
        )
        await client.init_schema()
    except (ImportError, OSError, SQLAlchemyError, StorageError) as exc:
        if client is not None:
            await client.close()
        logger.warning(
            "SQLite unavailable (%s); falling back to in-memory storage. "
            "Data will be lost on restart.",
            exc,
        )
        return InMemoryDbClient()
    logger.info("Using SQLite database at %s", settings.sqlite_path)
    return client


def build_photo_storage(settings: Settings) -> PhotoStorage:
    return LocalPhotoStorage(upload_dir=settings.upload_dir)


def get_db_client(request: Request) -> DbClient:
    """Return the client opened at startup."""
    return request.app.state.db


def get_photo_storage(request: Request) -> PhotoStorage:
    return request.app.state.photos


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_flavor_catalog(request: Request) -> dict:
    return request.app.state.flavors
