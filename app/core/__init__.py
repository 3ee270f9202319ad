"""Service plumbing shared by every feature.

Settings, the async order-store session, structured logging, request
correlation and RFC 7807 error handling.
"""

from app.core.config import Settings, get_settings
from app.core.database import Base, get_db, get_engine
from app.core.exceptions import BadRequestError, DatabaseError, OrderInsightError
from app.core.logging import get_logger, request_id_ctx

__all__ = [
    "BadRequestError",
    "Base",
    "DatabaseError",
    "OrderInsightError",
    "Settings",
    "get_db",
    "get_engine",
    "get_logger",
    "get_settings",
    "request_id_ctx",
]
