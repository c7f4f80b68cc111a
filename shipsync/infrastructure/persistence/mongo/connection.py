"""Mongo connection for the event queue, audit and order collections.

One client is shared by every Mongo adapter of a process. It is timezone-aware,
since queue locks and availability times are compared against aware UTC values.
"""
from __future__ import annotations

import inspect
from typing import Any
from urllib.parse import quote_plus

from loguru import logger
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError

from shipsync.config.settings import Settings
from shipsync.core import SERVICE_NAME
from shipsync.core.backoff import exponential_backoff


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def build_mongo_uri(settings: Settings) -> str:
    """DATABASE_URL wins when set; otherwise the URI is built from host parts."""
    if settings.database_url:
        return settings.database_url
    address = f"{settings.database_host}:{settings.database_port}"
    if settings.database_user and settings.database_password:
        credentials = f"{quote_plus(settings.database_user)}:{quote_plus(settings.database_password)}"
        return f"mongodb://{credentials}@{address}"
    return f"mongodb://{address}"


async def close_mongo_client(client: Any) -> None:
    res = client.close()
    if inspect.isawaitable(res):
        await res


async def _open_and_ping(uri: str, settings: Settings) -> AsyncIOMotorClient:
    client = AsyncIOMotorClient(
        uri,
        serverSelectionTimeoutMS=settings.database_connection_timeout_ms,
        tz_aware=True,
        appname=SERVICE_NAME,
    )
    try:
        await client.admin.command("ping")
    except PyMongoError:
        await close_mongo_client(client)
        raise
    return client


async def create_mongo_client(settings: Settings) -> AsyncIOMotorClient:
    """Ping until the server answers, backing off between attempts.

    The last connection error is raised once max_connection_attempts is used up.
    """
    uri = build_mongo_uri(settings)
    _log("mongo_connecting", database=settings.database_name, max_attempts=settings.max_connection_attempts)
    last_error: PyMongoError | None = None
    attempt = 0
    async for delay in exponential_backoff(
        settings.initial_backoff_seconds,
        settings.max_backoff_seconds,
        settings.backoff_multiplier,
        settings.max_connection_attempts,
    ):
        attempt += 1
        try:
            client = await _open_and_ping(uri, settings)
        except PyMongoError as exc:
            last_error = exc
            logger.warning("mongo ping failed (attempt {}, delay {}s): {}", attempt, delay, exc)
            continue
        _log("mongo_connected", database=settings.database_name, attempts=attempt)
        return client
    if last_error is not None:
        raise last_error
    raise RuntimeError("mongo connect failed: max_connection_attempts must be at least 1")
