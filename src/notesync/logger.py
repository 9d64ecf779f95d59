import json
import logging
import os
import sys

_DATEFMT = "%Y-%m-%d %H:%M:%S"
LOG_FORMATS = ("text", "json")


class JsonFormatter(logging.Formatter):
    """Single-line JSON formatter for structured debug output.

    Produces one JSON object per log record with fields: ts, level, logger, msg.
    Exception info is included as an "exc" field when present.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _formatter(log_format: str, with_name: bool = False) -> logging.Formatter:
    if log_format == "json":
        return JsonFormatter(datefmt=_DATEFMT)
    fmt = "[%(asctime)s] [%(levelname)s] "
    if with_name:
        fmt += "%(name)s "
    return logging.Formatter(fmt + "%(message)s", datefmt=_DATEFMT)


def setup_logging(
    debug: bool = False,
    log_file: str | None = None,
    log_format: str = "text",
    level: str | None = None,
) -> None:
    """
    Configure logging for the command line.

    Records go to stderr; a log file, when given, mirrors them with the
    logger name added.

    Args:
        debug: If True, overrides the level to DEBUG.
        log_file: Mirror file path (overrides LOG_FILE env var).
        log_format: "text" (default) or "json" for one JSON object per line.
        level: Level name from the config file, used when LOG_LEVEL is unset.

    Environment variables:
        LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR). Default: INFO.
        LOG_FILE: Mirror file path when ``log_file`` is not given.
    """
    env_level = os.getenv("LOG_LEVEL", level or "INFO").upper()

    if debug:
        log_level = logging.DEBUG
    else:
        log_level = getattr(logging, env_level, logging.INFO)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(_formatter(log_format))
    handlers: list[logging.Handler] = [stderr_handler]

    mirror = log_file or os.getenv("LOG_FILE")
    if mirror:
        file_handler = logging.FileHandler(mirror, mode="a")
        file_handler.setFormatter(_formatter(log_format, with_name=True))
        handlers.append(file_handler)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    if log_level != logging.DEBUG:
        logging.getLogger("charset_normalizer").setLevel(logging.WARNING)
