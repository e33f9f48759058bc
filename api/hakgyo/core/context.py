"""Request context management using contextvars.

Every request gets an id, and optionally the authenticated user, the
distributed trace id and the kelas being worked on. Values set here are
picked up by the logging processors without being passed around.
"""

from contextvars import ContextVar, Token
from typing import Any
from uuid import UUID, uuid4


request_id_var: ContextVar[str] = ContextVar("request_id", default="")
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)
trace_id_var: ContextVar[str | None] = ContextVar("trace_id", default=None)
kelas_id_var: ContextVar[str | None] = ContextVar("kelas_id", default=None)

# Optional context keys, in the order they appear in log events
_OPTIONAL_VARS: dict[str, ContextVar[str | None]] = {
    "user_id": user_id_var,
    "trace_id": trace_id_var,
    "kelas_id": kelas_id_var,
}


def generate_request_id() -> str:
    """Generate a new unique request ID."""
    return str(uuid4())


def get_request_id() -> str:
    """Get the current request ID."""
    return request_id_var.get()


def set_request_id(request_id: str | None = None) -> str:
    """Set the request ID for the current context, generating one if missing."""
    rid = request_id or generate_request_id()
    request_id_var.set(rid)
    return rid


def _as_text(value: str | UUID | None) -> str | None:
    return str(value) if value is not None else None


def get_user_id() -> str | None:
    """Get the current user ID."""
    return user_id_var.get()


def set_user_id(user_id: str | UUID | None) -> None:
    """Set the authenticated user for the current context."""
    user_id_var.set(_as_text(user_id))


def get_trace_id() -> str | None:
    """Get the current trace ID."""
    return trace_id_var.get()


def set_trace_id(trace_id: str | None) -> None:
    """Set the trace ID taken from distributed tracing headers."""
    trace_id_var.set(trace_id)


def get_kelas_id() -> str | None:
    """Get the kelas the current request operates on."""
    return kelas_id_var.get()


def set_kelas_id(kelas_id: str | UUID | None) -> None:
    """Bind a kelas to the current context (shows up in every log line)."""
    kelas_id_var.set(_as_text(kelas_id))


def get_context() -> dict[str, Any]:
    """Get all non-empty context variables as a dictionary."""
    context: dict[str, Any] = {}

    request_id = get_request_id()
    if request_id:
        context["request_id"] = request_id

    for name, var in _OPTIONAL_VARS.items():
        value = var.get()
        if value:
            context[name] = value

    return context


def clear_context() -> None:
    """Clear all context variables.

    Called at the end of each request to prevent leakage between requests.
    """
    request_id_var.set("")
    for var in _OPTIONAL_VARS.values():
        var.set(None)


class RequestContext:
    """Context manager for a request (or background job) scope.

    Usage:
        with RequestContext(user_id=user_id, kelas_id=kelas_id):
            logger.info("recomputing_progress")
    """

    def __init__(
        self,
        request_id: str | None = None,
        user_id: str | UUID | None = None,
        trace_id: str | None = None,
        kelas_id: str | UUID | None = None,
    ) -> None:
        self.request_id = request_id
        self.values: dict[str, str | None] = {
            "user_id": _as_text(user_id),
            "trace_id": trace_id,
            "kelas_id": _as_text(kelas_id),
        }
        self._request_token: Token[str] | None = None
        self._tokens: dict[str, Token[str | None]] = {}

    def __enter__(self) -> "RequestContext":
        """Enter context and set variables."""
        self._request_token = request_id_var.set(
            self.request_id or generate_request_id()
        )
        for name, value in self.values.items():
            if value is not None:
                self._tokens[name] = _OPTIONAL_VARS[name].set(value)
        return self

    def __exit__(self, *_: object) -> None:
        """Exit context and restore previous values."""
        for name, token in self._tokens.items():
            _OPTIONAL_VARS[name].reset(token)
        self._tokens.clear()
        if self._request_token is not None:
            request_id_var.reset(self._request_token)
            self._request_token = None
