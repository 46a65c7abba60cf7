from __future__ import annotations

import json
import logging
import os
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from flask import Flask


_CORE_LOG_RECORD_FIELDS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
}

LOGGER_NAMESPACE = "base_model"

_log_context: ContextVar[Dict[str, Any]] = ContextVar("base_model_log_context", default={})


def get_log_context() -> Dict[str, Any]:
    """Return a shallow copy of the active contextual logging fields."""

    return dict(_log_context.get())


def set_log_context(context: Dict[str, Any]) -> None:
    """Replace the active contextual logging fields."""

    _log_context.set(dict(context or {}))


def update_log_context(**fields: Any) -> None:
    """Merge additional fields into the active contextual logging fields."""

    current = dict(_log_context.get())
    for key, value in fields.items():
        if value is None:
            current.pop(key, None)
        else:
            current[key] = value
    _log_context.set(current)


def clear_log_context(*keys: str) -> None:
    """Clear specific contextual keys, or all if none provided."""

    if not keys:
        _log_context.set({})
        return
    current = dict(_log_context.get())
    for key in keys:
        current.pop(key, None)
    _log_context.set(current)


@contextmanager
def log_context(**fields: Any):
    """Context manager that temporarily adds contextual logging fields."""

    updated = dict(_log_context.get())
    updated.update({k: v for k, v in fields.items() if v is not None})
    token = _log_context.set(updated)
    try:
        yield
    finally:
        _log_context.reset(token)


class ContextAwareFormatter(logging.Formatter):
    """Formatter that can emit JSON or text logs enriched with contextual fields."""

    def __init__(
        self,
        fmt: Optional[str] = None,
        datefmt: Optional[str] = None,
        *,
        json_format: bool = False,
        static_fields: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(fmt=fmt or "[%(asctime)s] %(levelname)s %(name)s - %(message)s", datefmt=datefmt)
        self.json_format = json_format
        self.static_fields = dict(static_fields or {})

    def format(self, record: logging.LogRecord) -> str:
        if self.json_format:
            return self._format_json(record)

        base = super().format(record)
        context = _log_context.get()
        if context:
            ctx = " ".join(f"{key}={value}" for key, value in sorted(context.items()))
            base = f"{base} | {ctx}"
        return base

    def _format_json(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(self.static_fields)

        for key, value in record.__dict__.items():
            if key in _CORE_LOG_RECORD_FIELDS or key.startswith("_") or key in payload:
                continue
            payload[key] = value

        context = _log_context.get()
        if context:
            payload.setdefault("context", {}).update(context)

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str, separators=(",", ":"))


@dataclass(frozen=True)
class LogCategory:
    """A logical logging category and the file it writes to."""

    name: str
    filename: str


DEFAULT_CATEGORIES: Dict[str, LogCategory] = {
    "model": LogCategory("model", "model.log"),
    "query": LogCategory("query", "query.log"),
    "validation": LogCategory("validation", "validation.log"),
    "registry": LogCategory("registry", "registry.log"),
    "app": LogCategory("app", "application.log"),
}


class LoggerManager:
    """
    Hands out one logger per category.

    With category files disabled the loggers are plain ``base_model.<category>``
    loggers that propagate to the host application's handlers. With category
    files enabled each category gets its own timed-rotating file, plus an
    optional shared console handler.
    """

    def __init__(
        self,
        *,
        base_dir: Optional[str] = None,
        rotation_when: str = "midnight",
        rotation_interval: int = 1,
        backup_count: Optional[int] = None,
        categories: Optional[Dict[str, LogCategory]] = None,
        enable_category_files: bool = False,
        default_level: int = logging.INFO,
        category_levels: Optional[Dict[str, int]] = None,
        enable_console: bool = False,
        console_level: Optional[int] = None,
        json_format: bool = False,
        text_format: Optional[str] = None,
        date_format: Optional[str] = None,
        static_fields: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._base_dir = base_dir
        self._rotation_when = rotation_when
        self._rotation_interval = rotation_interval
        self._backup_count = backup_count if backup_count is not None else 7
        self._categories = (categories or DEFAULT_CATEGORIES).copy()
        self._enable_category_files = enable_category_files
        self._default_level = default_level
        self._category_levels = {k.lower(): v for k, v in (category_levels or {}).items()}
        self._enable_console = enable_console
        self._console_level = console_level if console_level is not None else default_level
        self._json_format = json_format
        self._text_format = text_format
        self._date_format = date_format
        self._static_fields = dict(static_fields or {})
        self._loggers: Dict[str, logging.Logger] = {}
        self._console_handler: Optional[logging.Handler] = None

    @property
    def base_dir(self) -> Path:
        if self._base_dir:
            return Path(self._base_dir)
        return Path(os.getenv("LOGGING_BASE_DIR", "/tmp/base_model_logs"))

    @property
    def categories(self) -> Dict[str, LogCategory]:
        return dict(self._categories)

    def register_category(self, name: str, filename: Optional[str] = None) -> LogCategory:
        """Register a new logging category (idempotent)."""

        key = name.strip().lower()
        spec = LogCategory(key, filename or f"{key}.log")
        existing = self._categories.get(key)
        if existing and existing.filename != spec.filename:
            self._detach_logger(key)
        self._categories[key] = spec
        return spec

    def get_logger(self, category: str) -> logging.Logger:
        category_key = category.strip().lower()
        if category_key in self._loggers:
            return self._loggers[category_key]

        spec = self._categories.get(category_key)
        if spec is None:
            spec = self.register_category(category_key)

        logger = logging.getLogger(f"{LOGGER_NAMESPACE}.{spec.name}")
        level = self._category_levels.get(category_key)
        if level is not None:
            logger.setLevel(level)

        if self._enable_category_files:
            logger.propagate = False
            logger.setLevel(level if level is not None else self._default_level)

            log_dir = self.base_dir
            log_dir.mkdir(parents=True, exist_ok=True)
            handler = TimedRotatingFileHandler(
                log_dir / spec.filename,
                when=self._rotation_when,
                interval=self._rotation_interval,
                backupCount=self._backup_count,
                encoding="utf-8",
                utc=True,
            )
            handler.setFormatter(self._build_formatter())
            logger.addHandler(handler)

        if self._enable_console:
            console_handler = self._ensure_console_handler()
            if console_handler not in logger.handlers:
                logger.addHandler(console_handler)

        self._loggers[category_key] = logger
        return logger

    def _build_formatter(self) -> ContextAwareFormatter:
        return ContextAwareFormatter(
            fmt=self._text_format,
            datefmt=self._date_format,
            json_format=self._json_format,
            static_fields=self._static_fields,
        )

    def _ensure_console_handler(self) -> logging.Handler:
        if self._console_handler is None:
            handler = logging.StreamHandler()
            handler.setLevel(self._console_level)
            handler.setFormatter(self._build_formatter())
            self._console_handler = handler
        return self._console_handler

    def shutdown(self) -> None:
        for key in list(self._loggers.keys()):
            self._detach_logger(key)
        if self._console_handler:
            self._console_handler.close()
            self._console_handler = None

    def _detach_logger(self, category_key: str) -> None:
        logger = self._loggers.pop(category_key, None)
        if not logger:
            return
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            if handler is not self._console_handler:
                handler.close()
        logger.propagate = True
        logger.setLevel(logging.NOTSET)


def _to_int(value: Optional[Any], *, default: Optional[int] = None) -> Optional[int]:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _to_bool(value: Optional[Any], *, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "y", "on"}
    return bool(value)


def _to_level(value: Optional[Any], *, default: int = logging.INFO) -> int:
    if value is None or value == "":
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        numeric = getattr(logging, value.strip().upper(), None)
        if isinstance(numeric, int):
            return numeric
    return default


def _parse_categories(config_categories: Optional[Iterable[Dict[str, Any]]]) -> Dict[str, LogCategory]:
    categories = DEFAULT_CATEGORIES.copy()
    if not config_categories:
        return categories
    for entry in config_categories:
        if not isinstance(entry, dict):
            continue
        name = str(entry.get("name", "")).strip().lower()
        filename = str(entry.get("filename", "")).strip()
        if not name or not filename:
            continue
        categories[name] = LogCategory(name, filename)
    return categories


_manager: Optional[LoggerManager] = None


def init_logger(app: Flask) -> LoggerManager:
    """
    Configure the shared logger manager from a Flask application's config.
    """

    global _manager

    category_levels_cfg = app.config.get("LOGGING_CATEGORY_LEVELS") or {}
    category_levels = {
        str(name).strip().lower(): _to_level(level)
        for name, level in category_levels_cfg.items()
    }

    manager = LoggerManager(
        base_dir=app.config.get("LOGGING_BASE_DIR"),
        rotation_when=app.config.get("LOGGING_ROTATION_WHEN", "midnight"),
        rotation_interval=_to_int(app.config.get("LOGGING_ROTATION_INTERVAL"), default=1) or 1,
        backup_count=_to_int(app.config.get("LOGGING_ROTATION_BACKUP_COUNT")),
        categories=_parse_categories(app.config.get("LOGGING_EXTRA_CATEGORIES")),
        enable_category_files=_to_bool(app.config.get("LOGGING_ENABLE_CATEGORY_FILES"), default=False),
        default_level=_to_level(app.config.get("LOGGING_DEFAULT_LEVEL"), default=logging.INFO),
        category_levels=category_levels,
        enable_console=_to_bool(app.config.get("LOGGING_CONSOLE_ENABLED"), default=False),
        console_level=_to_level(app.config.get("LOGGING_CONSOLE_LEVEL"), default=logging.INFO),
        json_format=_to_bool(app.config.get("LOGGING_JSON_FORMAT"), default=False),
        text_format=app.config.get("LOGGING_TEXT_FORMAT"),
        date_format=app.config.get("LOGGING_DATE_FORMAT"),
        static_fields=app.config.get("LOGGING_STATIC_FIELDS") or {},
    )

    shutdown_logger()
    _manager = manager
    # module-level loggers already hold these logger objects; attach handlers now
    for name in manager.categories:
        manager.get_logger(name)
    return _manager


def logger_manager() -> LoggerManager:
    global _manager
    if _manager is None:
        _manager = LoggerManager(
            base_dir=os.getenv("LOGGING_BASE_DIR"),
            rotation_when=os.getenv("LOGGING_ROTATION_WHEN", "midnight"),
            rotation_interval=_to_int(os.getenv("LOGGING_ROTATION_INTERVAL"), default=1) or 1,
            backup_count=_to_int(os.getenv("LOGGING_ROTATION_BACKUP_COUNT")),
            enable_category_files=_to_bool(os.getenv("LOGGING_ENABLE_CATEGORY_FILES"), default=False),
            default_level=_to_level(os.getenv("LOGGING_DEFAULT_LEVEL"), default=logging.INFO),
            enable_console=_to_bool(os.getenv("LOGGING_CONSOLE_ENABLED"), default=False),
            console_level=_to_level(os.getenv("LOGGING_CONSOLE_LEVEL"), default=logging.INFO),
            json_format=_to_bool(os.getenv("LOGGING_JSON_FORMAT"), default=False),
            text_format=os.getenv("LOGGING_TEXT_FORMAT"),
            date_format=os.getenv("LOGGING_DATE_FORMAT"),
        )
    return _manager


def shutdown_logger() -> None:
    global _manager
    if _manager is None:
        return
    _manager.shutdown()
    _manager = None


def get_logger(category: str) -> logging.Logger:
    return logger_manager().get_logger(category)


def register_category(name: str, filename: Optional[str] = None) -> LogCategory:
    return logger_manager().register_category(name, filename=filename)
