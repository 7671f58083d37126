import json
import logging
import os
import sys

TEXT_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_NOISY_LOGGERS = (
    "urllib3",
    "discord",
    "discord.http",
    "discord.gateway",
    "aiohttp.access",
)


class JsonFormatter(logging.Formatter):
    """Single-line JSON formatter for log shippers.

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


def _formatter(debug_format: str) -> logging.Formatter:
    if debug_format == "json":
        return JsonFormatter(datefmt=DATE_FORMAT)
    return logging.Formatter(TEXT_FORMAT, datefmt=DATE_FORMAT)


def setup_logging(
    mode: str = "bot",
    debug: bool = False,
    log_file: str | None = None,
    debug_format: str | None = None,
) -> None:
    """
    Configure logging based on execution mode.

    Args:
        mode: "bot" for the long-running gateway process, "cli" for
              one-shot sweeps whose report goes to stdout.
        debug: If True, overrides LOG_LEVEL to DEBUG.
        log_file: Additional log file path (overrides LOG_FILE env var).
        debug_format: "text" or "json" (overrides LOG_FORMAT env var).

    Environment variables:
        LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR).
                   Default: INFO for bot mode, WARNING for CLI mode.
        LOG_FILE: Also write logs to this file.
        LOG_FORMAT: "text" (default) or "json".
    """
    default_level = "WARNING" if mode == "cli" else "INFO"
    env_level = os.getenv("LOG_LEVEL", default_level).upper()

    if debug:
        log_level = logging.DEBUG
    else:
        log_level = getattr(logging, env_level, logging.INFO)

    fmt = (debug_format or os.getenv("LOG_FORMAT", "text")).lower()
    final_log_file = log_file or os.getenv("LOG_FILE")

    # Always stderr: CLI mode prints its report on stdout
    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(_formatter(fmt))
    handlers: list[logging.Handler] = [stderr_handler]

    if final_log_file:
        file_handler = logging.FileHandler(final_log_file, mode="a")
        file_handler.setFormatter(_formatter(fmt))
        handlers.append(file_handler)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    # Silence third-party libs unless DEBUG
    if log_level != logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
