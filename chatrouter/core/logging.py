import json
import logging
import sys
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from chatrouter.core.config import settings

ReservedLogKeys = set(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__.keys()
) | {"message", "taskName"}

request_id_ctx_var: ContextVar[str] = ContextVar("request_id", default="-")
message_id_ctx_var: ContextVar[str] = ContextVar("message_id", default="-")
user_id_ctx_var: ContextVar[str] = ContextVar("user_id", default="-")

# Record attribute -> context variable stamped on every log line.
CORRELATION_FIELDS: Dict[str, ContextVar[str]] = {
    "request_id": request_id_ctx_var,
    "message_id": message_id_ctx_var,
    "user_id": user_id_ctx_var,
}

# Client libraries that log every HTTP exchange at INFO.
_CHATTY_LOGGERS = ("httpx", "httpcore", "openai")

_PLAIN_FORMAT = (
    "%(asctime)s | %(levelname)s | %(name)s | %(message_id)s | %(user_id)s | %(message)s"
)
_logging_configured = False

MessageTokens = Tuple[Token[str], Token[str]]


def bind_request_id(request_id: str) -> Token[str]:
    return request_id_ctx_var.set(request_id)


def reset_request_id(token: Token[str]) -> None:
    request_id_ctx_var.reset(token)


def bind_message(message_id: str, user_id: str) -> MessageTokens:
    """Bind the inbound message and its sender for the current unit of work."""
    return message_id_ctx_var.set(message_id), user_id_ctx_var.set(user_id)


def reset_message(tokens: MessageTokens) -> None:
    message_token, user_token = tokens
    user_id_ctx_var.reset(user_token)
    message_id_ctx_var.reset(message_token)


class MessageContextFilter(logging.Filter):
    """Stamp correlation ids and the environment on each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        for attribute, variable in CORRELATION_FIELDS.items():
            setattr(record, attribute, variable.get())
        record.environment = settings.environment
        return True


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line; ``extra=`` fields are merged in at top level."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for attribute in (*CORRELATION_FIELDS, "environment"):
            entry[attribute] = getattr(record, attribute, "-")

        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            entry["stack"] = self.formatStack(record.stack_info)

        extras = {
            key: value
            for key, value in vars(record).items()
            if key not in ReservedLogKeys and not key.startswith("_")
        }
        for key, value in extras.items():
            entry.setdefault(key, value)
        return json.dumps(entry, default=str, ensure_ascii=False)


def configure_logging() -> None:
    """Install stdout (and optional rotating file) handlers on the root logger once."""
    global _logging_configured
    if _logging_configured:
        return

    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    formatter: logging.Formatter = (
        JsonLogFormatter()
        if settings.log_json
        else logging.Formatter(fmt=_PLAIN_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z")
    )

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    file_handler = _build_file_handler()
    if file_handler is not None:
        handlers.append(file_handler)
    for handler in handlers:
        handler.setLevel(level)
        handler.addFilter(MessageContextFilter())
        handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = handlers
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    logging.captureWarnings(True)
    _logging_configured = True


def _build_file_handler() -> Optional[logging.Handler]:
    if not settings.log_file_path:
        return None
    log_path = Path(settings.log_file_path)
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        return RotatingFileHandler(
            log_path,
            maxBytes=settings.log_file_max_bytes,
            backupCount=settings.log_file_backup_count,
            encoding="utf-8",
        )
    except OSError as exc:  # pragma: no cover - filesystem-specific
        logging.getLogger(__name__).warning("file logging disabled for %s: %s", log_path, exc)
        return None
