import logging
import os
import uuid
from contextvars import ContextVar

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s"


class RequestIdFilter(logging.Filter):
    """Inject the current request id into log records."""

    def filter(self, record):
        record.request_id = request_id_var.get()
        return True


def get_request_id() -> str:
    return request_id_var.get()


def new_request_id(incoming: str = None) -> str:
    request_id = incoming or str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def configure_logging(level: str = None):
    root = logging.getLogger()
    level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    root.setLevel(level)
    # Idempotent: the app factory may run more than once per process (tests)
    for handler in root.handlers:
        if getattr(handler, "_qredirect", False):
            return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(RequestIdFilter())
    handler._qredirect = True
    root.addHandler(handler)
