import datetime
import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .settings import settings


_LOGGING_CONFIGURED = False
_APP_LOGGER_NAME = "aigate"
_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
_BACKUP_DAYS = 7


class ZonedFormatter(logging.Formatter):
    """
    Renders ``%(asctime)s`` as ISO-8601 in LOG_TIMEZONE, falling back to
    the system local zone when it is unset or unknown.
    """

    def __init__(self, fmt: str = _LOG_FORMAT, *, timezone_name: str | None = None):
        super().__init__(fmt)
        self._tzinfo: datetime.tzinfo | None = None
        if timezone_name:
            try:
                self._tzinfo = ZoneInfo(timezone_name)
            except ZoneInfoNotFoundError:
                self._tzinfo = None
        if self._tzinfo is None:
            self._tzinfo = datetime.datetime.now().astimezone().tzinfo or datetime.timezone.utc

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        dt = datetime.datetime.fromtimestamp(record.created, tz=self._tzinfo)
        return dt.strftime(datefmt) if datefmt else dt.isoformat(timespec="milliseconds")


def _daily_file_handler(log_dir: Path, formatter: logging.Formatter) -> logging.Handler:
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = TimedRotatingFileHandler(
        log_dir / "app.log", when="midnight", backupCount=_BACKUP_DAYS, encoding="utf-8"
    )
    handler.setFormatter(formatter)
    # Only application records go to the file; the console gets everything.
    handler.addFilter(lambda record: record.name.startswith(_APP_LOGGER_NAME))
    return handler


def setup_logging() -> None:
    """
    Configure application logging once per process: "aigate" records go to
    LOG_DIR/app.log (rotated at midnight) and everything reaches the console
    through the root logger, so celery and uvicorn output shows up too.
    """
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    level = getattr(logging, str(settings.log_level).upper(), logging.INFO)
    formatter = ZonedFormatter(timezone_name=settings.log_timezone)

    app_logger = logging.getLogger(_APP_LOGGER_NAME)
    app_logger.setLevel(level)
    app_logger.propagate = True
    app_logger.addHandler(_daily_file_handler(Path(settings.log_dir), formatter))

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    has_console = any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        for h in root_logger.handlers
    )
    if not has_console:
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        root_logger.addHandler(console)

    _LOGGING_CONFIGURED = True


logger = logging.getLogger(_APP_LOGGER_NAME)
