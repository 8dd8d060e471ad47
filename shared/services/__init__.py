"""Shared services (minimal exports)."""

from api.orchestrator.db.session import get_session, get_db_session, close_db
from api.orchestrator.db.service.queue import get_mq, close_mq
from api.orchestrator.storage.blob_store import get_blob_store

__all__ = [
    "get_session",
    "get_db_session",
    "close_db",
    "get_mq",
    "close_mq",
    "get_blob_store",
]
