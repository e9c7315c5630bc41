import logging
import re
from typing import Any

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b-\x1f\x7f]")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
MAX_VALUE_LENGTH = 512


def sanitize_log_value(value: Any, max_length: int = MAX_VALUE_LENGTH) -> str:
    """
    Make a user-supplied value safe to interpolate into a log line.

    Crime numbers, station names and usernames arrive from uploads and
    login forms. Line breaks are escaped, other control characters become
    "?" and long values are cut at ``max_length``.
    """
    if value is None:
        return "<none>"
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")

    text = str(value).replace("\r", "\\r").replace("\n", "\\n")
    text = _CONTROL_CHARS.sub("?", text)
    if len(text) > max_length:
        return text[:max_length] + "...[truncated]"
    return text


class LogSanitizerFilter(logging.Filter):
    """Escape text arguments of a record; numbers keep their type for %d/%f."""

    def __init__(self, max_length: int = MAX_VALUE_LENGTH):
        super().__init__()
        self.max_length = max_length

    def _clean(self, value: Any) -> Any:
        if isinstance(value, (str, bytes)):
            return sanitize_log_value(value, self.max_length)
        return value

    def filter(self, record: logging.LogRecord) -> bool:
        args = record.args
        if not args:
            record.msg = self._clean(record.msg)
        elif isinstance(args, dict):
            record.args = {key: self._clean(val) for key, val in args.items()}
        else:
            record.args = tuple(self._clean(arg) for arg in args)
        return True


def _has_sanitizer(filterer: logging.Filterer) -> bool:
    return any(isinstance(f, LogSanitizerFilter) for f in filterer.filters)


def install_log_sanitizer(
    target_logger: logging.Logger | None = None, max_length: int = MAX_VALUE_LENGTH
) -> None:
    """Attach one sanitizer to ``target_logger`` (root by default)."""
    logger = target_logger or logging.getLogger()
    if not _has_sanitizer(logger):
        logger.addFilter(LogSanitizerFilter(max_length))


def configure_logging(level: str = "INFO") -> None:
    """Set the root level and a single stream handler for the API process."""
    root = logging.getLogger()
    resolved = logging.getLevelName(str(level).upper())
    root.setLevel(resolved if isinstance(resolved, int) else logging.INFO)

    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)

    # Records from child loggers skip root logger filters but not handler filters
    for handler in root.handlers:
        if not _has_sanitizer(handler):
            handler.addFilter(LogSanitizerFilter())
    install_log_sanitizer(root)
