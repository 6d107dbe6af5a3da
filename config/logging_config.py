"""
Logging setup for the portfolio API process.

Services log one event per line in the form `event_name key=value key=value`,
e.g. `position_sold owner=user-1 asset=bitcoin`. In JSON mode (LOG_JSON=1)
the event name and its pairs become top-level fields so log aggregators can
filter on `event`, `owner` or `asset` without regexes.

- LOG_LEVEL from env (default INFO).
- LOG_LEVELS for per-logger overrides: "sqlalchemy.engine=INFO,httpx=DEBUG".
- Owners are logged by opaque id only. Never pass tokens into log calls.
"""
import json
import logging
import os
import re
import sys
from typing import Any, Dict

_STD_ATTRS = set(vars(logging.makeLogRecord({})).keys()) | {"message", "asctime"}

_EVENT_RE = re.compile(r"^([a-z][a-z0-9_]*)(?:\s|$)")
_PAIR_RE = re.compile(r"(\w+)=(\S+)")

# chatty third-party loggers, unless LOG_LEVELS says otherwise
_QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "sqlalchemy.engine")


def _json_serial(obj: Any):
    if hasattr(obj, "isoformat"):
        return obj.isoformat()
    return str(obj)


def _event_fields(message: str) -> Dict[str, str]:
    m = _EVENT_RE.match(message)
    if not m:
        return {}
    fields = {"event": m.group(1)}
    fields.update(_PAIR_RE.findall(message[m.end():]))
    return fields


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        payload = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S") + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": message,
        }
        for k, v in _event_fields(message).items():
            payload.setdefault(k, v)
        if record.exc_info and record.exc_info[0]:
            payload["exception"] = self.formatException(record.exc_info)
        # anything passed via logger.info(..., extra={...})
        for k, v in vars(record).items():
            if k not in _STD_ATTRS and k not in payload and v is not None:
                payload[k] = v
        return json.dumps(payload, default=_json_serial)


def _json_enabled() -> bool:
    return os.getenv("LOG_JSON", "").lower() in ("1", "true", "yes")


def _level(name: str, default: int) -> int:
    value = getattr(logging, (name or "").strip().upper(), None)
    return value if isinstance(value, int) else default


def parse_level_overrides(spec: str) -> Dict[str, int]:
    """Parse "logger=LEVEL,logger=LEVEL"; malformed entries are skipped."""
    overrides: Dict[str, int] = {}
    for item in (spec or "").split(","):
        name, sep, level_name = item.partition("=")
        name = name.strip()
        if not sep or not name:
            continue
        level = _level(level_name, -1)
        if level >= 0:
            overrides[name] = level
    return overrides


def configure_logging() -> None:
    level = _level(os.getenv("LOG_LEVEL") or "INFO", logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    # uvicorn --reload re-imports main; don't stack handlers
    for h in root.handlers[:]:
        root.removeHandler(h)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(logging.NOTSET)
    if _json_enabled():
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
    root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    for name, lvl in parse_level_overrides(os.getenv("LOG_LEVELS", "")).items():
        logging.getLogger(name).setLevel(lvl)
