import logging
import json
from logging import Logger
from functools import lru_cache
from datetime import datetime, timezone
from dataclasses import asdict, is_dataclass
from enum import Enum
from pathlib import Path
from typing import Any

_DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[3] / "configs" / "logging.json"

_DEFAULT_PROFILE = {
    "level": "INFO",
    "debug": {"enabled": False, "modules": []},
    "handlers": {"console": {"enabled": True}},
    "format": {"json": True, "timestamp_utc": True},
}

_CONFIGURED = False
_RUN_ID: str | None = None
_MODE: str | None = None
_DEBUG_ENABLED = False
_DEBUG_MODULES: set[str] = set()
_GLOBAL_LEVEL = logging.INFO


def _load_logging_config(config_path: str | Path | None = None) -> dict:
    path = Path(config_path) if config_path is not None else _DEFAULT_CONFIG_PATH
    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    return {"active_profile": "default", "profiles": {"default": _DEFAULT_PROFILE}}


def _select_profile(cfg: dict, mode: str | None) -> dict:
    profiles = cfg.get("profiles")
    if not isinstance(profiles, dict):
        # flat (single profile) layout
        return cfg
    name = mode if mode in profiles else cfg.get("active_profile", "default")
    return dict(profiles.get(name) or _DEFAULT_PROFILE)


def safe_jsonable(value: Any) -> Any:
    """Coerce log context into something ``json.dumps`` accepts."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, dict):
        return {str(k): safe_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [safe_jsonable(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return sorted((safe_jsonable(v) for v in value), key=repr)
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return safe_jsonable(value.value)
    if is_dataclass(value) and not isinstance(value, type):
        return safe_jsonable(asdict(value))
    if isinstance(value, BaseException):
        return f"{type(value).__name__}: {value}"
    return repr(value)


def _debug_module_matches(logger_name: str, module: str) -> bool:
    """True if ``module`` names the logger or one of its dotted segments' prefixes."""
    if logger_name == module or logger_name.startswith(module + "."):
        return True
    parts = logger_name.split(".")
    # allow short names without the top-level package ("data" for cyclone_timeline.data.cache)
    return len(parts) > 1 and (parts[1] == module or ".".join(parts[1:]).startswith(module + "."))


class ContextFilter(logging.Filter):
    """Guarantees record.context always exists (prevents type warnings)."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "context"):
            record.context = None
        if not hasattr(record, "category"):
            record.category = None
        return True


class JsonFormatter(logging.Formatter):
    """Structured JSON formatter for deterministic, parseable logs."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "ts_ms": int(record.created * 1000),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "event": record.getMessage(),
            "msg": record.getMessage(),
        }

        category = getattr(record, "category", None)
        if category:
            payload["category"] = category

        context = dict(getattr(record, "context", None) or {})
        if _RUN_ID is not None:
            context.setdefault("run_id", _RUN_ID)
        if _MODE is not None:
            context.setdefault("mode", _MODE)
        if context:
            payload["context"] = safe_jsonable(context)

        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False)


def init_logging(
    config_path: str | None = None,
    *,
    run_id: str | None = None,
    mode: str | None = None,
) -> None:
    """
    Configure the root logger from a logging profile.

    Call once at application bootstrap. Library code only calls get_logger().
    """
    global _CONFIGURED, _RUN_ID, _MODE, _DEBUG_ENABLED, _DEBUG_MODULES, _GLOBAL_LEVEL

    cfg = _load_logging_config(config_path)
    profile = _select_profile(cfg, mode)

    _RUN_ID = run_id
    _MODE = mode
    _GLOBAL_LEVEL = getattr(logging, str(profile.get("level", "INFO")).upper(), logging.INFO)
    debug_cfg = profile.get("debug", {}) or {}
    _DEBUG_ENABLED = bool(debug_cfg.get("enabled", False))
    _DEBUG_MODULES = set(debug_cfg.get("modules", []) or [])

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(_GLOBAL_LEVEL)

    handlers_cfg = profile.get("handlers", {}) or {}
    console_cfg = handlers_cfg.get("console", {}) or {}
    if console_cfg.get("enabled", True):
        handler = logging.StreamHandler()
        handler.setLevel(getattr(logging, str(console_cfg.get("level", "DEBUG")).upper(), logging.DEBUG))
        root.addHandler(handler)

    file_cfg = handlers_cfg.get("file", {}) or {}
    if file_cfg.get("enabled") and file_cfg.get("path"):
        path = Path(str(file_cfg["path"]).format(run_id=run_id or "default", mode=mode or "default"))
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, encoding="utf-8")
        handler.setLevel(getattr(logging, str(file_cfg.get("level", "INFO")).upper(), logging.INFO))
        root.addHandler(handler)

    for handler in root.handlers:
        handler.addFilter(ContextFilter())
        handler.setFormatter(JsonFormatter())

    # loggers created before init_logging keep their own handler otherwise
    for name in list(logging.Logger.manager.loggerDict):
        existing = logging.getLogger(name)
        if getattr(existing, "_cyclone_timeline_handler", False):
            existing.handlers = []
            existing.propagate = True
            existing.setLevel(logging.NOTSET)

    _CONFIGURED = True


@lru_cache(None)
def get_logger(name: str = "cyclone_timeline", level: int = logging.INFO) -> Logger:
    logger = logging.getLogger(name)

    if _CONFIGURED or logger.handlers:
        return logger

    # not configured yet: give the logger its own JSON console handler
    logger.setLevel(_GLOBAL_LEVEL)
    handler = logging.StreamHandler()
    handler.addFilter(ContextFilter())
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    logger.propagate = False
    logger._cyclone_timeline_handler = True  # type: ignore[attr-defined]
    return logger


def log_debug(logger: Logger, msg: str, **context):
    if not _DEBUG_ENABLED:
        return
    if _DEBUG_MODULES and not any(_debug_module_matches(logger.name, m) for m in _DEBUG_MODULES):
        return
    logger.debug(msg, extra={"context": context}, stacklevel=2)


def log_info(logger: Logger, msg: str, **context):
    logger.info(msg, extra={"context": context}, stacklevel=2)


def log_warn(logger: Logger, msg: str, **context):
    logger.warning(msg, extra={"context": context}, stacklevel=2)


def log_error(logger: Logger, msg: str, **context):
    logger.error(msg, extra={"context": context}, stacklevel=2)


def log_exception(logger: Logger, msg: str, **context):
    logger.exception(msg, extra={"context": context}, stacklevel=2)


def log_data_integrity(logger: Logger, msg: str, **context):
    """Frame gaps and other dataset holes; routed by category to artifact sinks."""
    logger.warning(msg, extra={"context": context, "category": "data_integrity"}, stacklevel=2)
