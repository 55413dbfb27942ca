from __future__ import annotations

import logging
import os
from contextvars import ContextVar

trace_id_var: ContextVar[str | None] = ContextVar("portal_trace_id", default=None)

_HANDLER_NAME = "portal-stream"
_FORMAT = "%(asctime)s %(levelname)s %(name)s trace_id=%(trace_id)s %(message)s"


class TraceIdFilter(logging.Filter):
    """Stamp each record with the trace id of the request being served."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.trace_id = trace_id_var.get() or "-"
        return True


def configure_logging(level: str | None = None) -> None:
    resolved = (level or os.environ.get("PORTAL_LOG_LEVEL", "INFO")).strip().upper() or "INFO"
    root = logging.getLogger()
    root.setLevel(resolved)
    if any(h.get_name() == _HANDLER_NAME for h in root.handlers):
        return
    handler = logging.StreamHandler()
    handler.set_name(_HANDLER_NAME)
    handler.addFilter(TraceIdFilter())
    handler.setFormatter(logging.Formatter(_FORMAT))
    root.addHandler(handler)
