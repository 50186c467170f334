"""Structured logging for the daily code service.

Log calls use an event name as the message and pass context through ``extra``:

    logger.info("game_submitted", extra={"player_id": pid, "date": d, "won": True})

Records render as one JSON object per line, or as a coloured single line for
local development.
"""
import json
import logging
import os
import sys
from contextvars import ContextVar
from typing import Any, Dict, List, Optional, Union

request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# attribute names picked off LogRecord, in output order
REQUEST_FIELDS = ("method", "path", "status", "duration_ms", "client", "user_agent")
GAME_FIELDS = ("player_id", "date", "kind", "won", "guesses", "time_ms", "score", "rank")
MISC_FIELDS = ("event", "url", "errors", "error")

PALETTE = {
    "DEBUG": "36",
    "INFO": "32",
    "WARNING": "33",
    "ERROR": "31",
    "CRITICAL": "35",
    "rid": "35",
    "logger": "34",
    "method": "1",
    "path": "36",
    "muted": "90",
}


def extra_fields(record: logging.LogRecord, names=REQUEST_FIELDS + GAME_FIELDS + MISC_FIELDS) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for name in names:
        val = getattr(record, name, None)
        if val is not None:
            out[name] = val
    return out


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "level": record.levelname,
            "time": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S%z"),
            "logger": record.name,
            "message": record.getMessage(),
        }
        rid = request_id_ctx.get()
        if rid:
            payload["request_id"] = rid
        payload.update(extra_fields(record))
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class PrettyFormatter(logging.Formatter):
    """`LEVEL hh:mm:ss rid=.. logger METHOD /path 200 12ms - event [k=v ...]`"""

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def paint(self, text: str, style: str) -> str:
        code = PALETTE.get(style)
        if not self.use_color or not code:
            return text
        return f"\033[{code}m{text}\033[0m"

    def _status(self, status: int) -> str:
        style = "INFO" if status < 300 else "WARNING" if status < 500 else "ERROR"
        return self.paint(str(status), style)

    def format(self, record: logging.LogRecord) -> str:
        parts: List[str] = [self.paint(record.levelname, record.levelname), self.formatTime(record, datefmt="%H:%M:%S")]
        rid = request_id_ctx.get()
        if rid:
            parts.append(self.paint(f"rid={rid}", "rid"))
        parts.append(self.paint(record.name, "logger"))

        req = extra_fields(record, REQUEST_FIELDS)
        if "method" in req:
            parts.append(self.paint(req["method"], "method"))
        if "path" in req:
            parts.append(self.paint(req["path"], "path"))
        if isinstance(req.get("status"), int):
            parts.append(self._status(req["status"]))
        if "duration_ms" in req:
            parts.append(self.paint(f"{req['duration_ms']}ms", "muted"))

        msg = record.getMessage()
        if msg:
            parts += ["-", msg]

        ctx = [f"{k}={v}" for k, v in extra_fields(record, GAME_FIELDS + ("error",)).items()]
        if "client" in req:
            ctx.append(f"client={req['client']}")
        if ctx:
            parts.append(self.paint("[" + " ".join(ctx) + "]", "muted"))

        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def choose_formatter(stream=None) -> logging.Formatter:
    """LOG_FORMAT=pretty|json forces a format; otherwise pretty on a TTY.

    LOG_COLOR=0 turns colours off in pretty mode.
    """
    stream = stream or sys.stdout
    fmt = os.getenv("LOG_FORMAT", "").lower()
    if fmt == "json":
        return JsonFormatter()
    isatty = getattr(stream, "isatty", None)
    if fmt == "pretty" or (fmt == "" and callable(isatty) and isatty()):
        color = os.getenv("LOG_COLOR", "1").lower() not in ("0", "false", "no")
        return PrettyFormatter(use_color=color)
    return JsonFormatter()


def setup_logging(level: Union[int, str] = logging.INFO) -> logging.Logger:
    """Install a single stdout handler on the root logger and route uvicorn through it."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(choose_formatter(sys.stdout))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        lg = logging.getLogger(name)
        lg.handlers = [handler]
        lg.setLevel(level)
        lg.propagate = False
    return root


def get_logger(name: str = "dailycode") -> logging.Logger:
    return logging.getLogger(name)
