"""Structured logging built on structlog

Every event carries the request id, chat id and user id of the chat turn
it was logged from (see LogContext), so one turn can be followed across
the guard, the agent loop, the tools and the store.
"""
import contextvars
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import structlog

request_id_var = contextvars.ContextVar("request_id", default=None)
chat_id_var = contextvars.ContextVar("chat_id", default=None)
user_id_var = contextvars.ContextVar("user_id", default=None)

_CONTEXT_VARS = {
    "request_id": request_id_var,
    "chat_id": chat_id_var,
    "user_id": user_id_var,
}

# Libraries that log every request or SQL statement at INFO/DEBUG
NOISY_LOGGERS = (
    "aiosqlite",
    "httpx",
    "httpcore",
    "asyncio",
    "langchain",
    "langchain_core",
    "langgraph",
    "openai",
    "langfuse",
    "uvicorn.access",
)


def add_context_info(logger, method_name, event_dict):
    """structlog processor: copy the turn context into the event"""
    for key, var in _CONTEXT_VARS.items():
        value = var.get()
        if value:
            event_dict[key] = value
    return event_dict


def _file_handlers(log_dir: str, formatter: logging.Formatter) -> List[logging.Handler]:
    """Daily log file with every level, plus a second file with errors only"""
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)
    day = datetime.now().strftime("%Y%m%d")

    all_levels = logging.FileHandler(log_path / f"searchchat_{day}.log", encoding="utf-8")
    all_levels.setLevel(logging.DEBUG)

    errors = logging.FileHandler(log_path / f"searchchat_error_{day}.log", encoding="utf-8")
    errors.setLevel(logging.ERROR)

    for handler in (all_levels, errors):
        handler.setFormatter(formatter)
    return [all_levels, errors]


def setup_structured_logging(
    log_level: str = "INFO",
    log_dir: Optional[str] = "logs",
    enable_json: bool = True,
    enable_console: bool = True
):
    """
    Route structlog through the stdlib root logger

    Args:
        log_level: DEBUG/INFO/WARNING/ERROR
        log_dir: directory for the daily log files, None disables file output
        enable_json: render JSON lines (production) instead of colored text
        enable_console: also log to stdout
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    formatter = logging.Formatter("%(message)s")

    handlers: List[logging.Handler] = []
    if enable_console:
        console = logging.StreamHandler(sys.stdout)
        console.setLevel(level)
        console.setFormatter(formatter)
        handlers.append(console)
    if log_dir:
        handlers.extend(_file_handlers(log_dir, formatter))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level)
    for handler in handlers:
        root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    renderer = structlog.processors.JSONRenderer() if enable_json else structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            add_context_info,
            structlog.processors.CallsiteParameterAdder({
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.LINENO,
                structlog.processors.CallsiteParameter.FUNC_NAME,
            }),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    get_logger(__name__).info(
        "Structured logging enabled",
        log_level=log_level,
        log_dir=str(Path(log_dir).absolute()) if log_dir else None,
        output="json" if enable_json else "console",
    )


def get_logger(name: str = None) -> structlog.BoundLogger:
    return structlog.get_logger(name)


class LogContext:
    """Bind request id, chat id and user id to every event logged inside the block

    Nested contexts only override what they set; the outer values come
    back on exit.
    """

    def __init__(
        self,
        request_id: Optional[str] = None,
        chat_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ):
        self.values = {"request_id": request_id, "chat_id": chat_id, "user_id": user_id}
        self._tokens = []

    def __enter__(self):
        for key, value in self.values.items():
            if value:
                var = _CONTEXT_VARS[key]
                self._tokens.append((var, var.set(value)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)
