"""Rotating logger setup for the acceptance harness."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"


class ScenarioFormatter(logging.Formatter):
    """Formatter aware of records tagged with a ``scenario`` title.

    With ``comments`` set, tagged records render as TAP comment lines
    (``# [title] message``) so a console run reads like a test report.
    Otherwise the title is prefixed to the message and ``fmt`` applies.
    """

    def __init__(self, fmt: str = FILE_FORMAT, datefmt: str = DATE_FORMAT, comments: bool = False):
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.comments = comments

    def format(self, record: logging.LogRecord) -> str:
        scenario = getattr(record, "scenario", None)
        if scenario is None:
            return super().format(record)

        message = f"[{scenario}] {record.getMessage()}"
        if not self.comments:
            tagged = logging.makeLogRecord(record.__dict__)
            tagged.msg, tagged.args = message, None
            return super().format(tagged)

        lines = [f"# {message}"]
        if record.exc_info:
            lines.extend(f"# {line}" for line in self.formatException(record.exc_info).splitlines())
        return "\n".join(lines)


def scenario_logger(title: str, name: str = "harness.scenario") -> logging.LoggerAdapter:
    """Logger whose records carry the scenario title for ScenarioFormatter."""
    return logging.LoggerAdapter(logging.getLogger(name), {"scenario": title})


def setup_logger(
    name: str = "harness",
    log_file: str = "./logs/harness.log",
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 3,
    level: int = logging.INFO,
) -> logging.Logger:
    """Setup rotating file logger with ISO 8601 timestamps.

    Component loggers (``harness.poller``, ``harness.shell``, ...) propagate
    to the logger configured here. Scenario comments are echoed to the
    console as ``#`` lines while the file keeps the full record.

    Args:
        name: Logger name
        log_file: Path to log file (created if doesn't exist)
        max_bytes: Max size before rotation
        backup_count: Number of rotated files to keep
        level: Logging level

    Returns:
        Configured logger instance
    """
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Avoid duplicate handlers if already configured
    if logger.handlers:
        return logger

    file_handler = RotatingFileHandler(
        log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(ScenarioFormatter())

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(ScenarioFormatter(comments=True))

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    return logger
