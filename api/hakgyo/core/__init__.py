# Core infrastructure
from hakgyo.core.context import (
    RequestContext,
    clear_context,
    get_context,
    get_kelas_id,
    get_request_id,
    get_trace_id,
    get_user_id,
    set_kelas_id,
    set_request_id,
    set_trace_id,
    set_user_id,
)
from hakgyo.core.locks import KeyedLock, LockTimeoutError
from hakgyo.core.logging import configure_structlog, get_logger
from hakgyo.core.middleware import RequestContextMiddleware


__all__ = [
    "KeyedLock",
    "LockTimeoutError",
    "RequestContext",
    "RequestContextMiddleware",
    "clear_context",
    "configure_structlog",
    "get_context",
    "get_kelas_id",
    "get_logger",
    "get_request_id",
    "get_trace_id",
    "get_user_id",
    "set_kelas_id",
    "set_request_id",
    "set_trace_id",
    "set_user_id",
]
