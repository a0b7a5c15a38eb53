import datetime
import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .settings import settings


LOGGER_NAME = "kimiproxy"

_LOGGING_CONFIGURED = False


class LocalTimezoneFormatter(logging.Formatter):
    """
    Formatter that renders timestamps in LOG_TIMEZONE, or the system
    local timezone when it is unset or unknown.
    """

    def __init__(self, *args, timezone_name: str | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self._tzinfo = self._resolve_tzinfo(timezone_name)

    @staticmethod
    def _resolve_tzinfo(timezone_name: str | None) -> datetime.tzinfo:
        if timezone_name:
            try:
                return ZoneInfo(timezone_name)
            except ZoneInfoNotFoundError:
                pass
        return datetime.datetime.now().astimezone().tzinfo or datetime.timezone.utc

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        dt = datetime.datetime.fromtimestamp(record.created, tz=self._tzinfo)
        if datefmt:
            return dt.strftime(datefmt)
        return dt.isoformat(timespec="milliseconds")


class DailyFileHandler(TimedRotatingFileHandler):
    """
    Midnight-rotating handler whose rotated files are named
    logs/app-YYYY-MM-DD.log while the current day stays in logs/app.log.
    """

    def rotation_filename(self, default_name: str) -> str:  # type: ignore[override]
        base = Path(self.baseFilename)
        date_suffix = default_name.rsplit(".", 1)[-1]
        return str(base.with_name(f"{base.stem}-{date_suffix}{base.suffix}"))


def _resolve_level(level_name: object) -> int:
    if not isinstance(level_name, str):
        return logging.INFO
    return getattr(logging, level_name.upper(), logging.INFO)


def setup_logging(log_dir: Path | str = "logs") -> None:
    """
    Configure application logging once per process.

    Application records (logger "kimiproxy") go to a daily rotating file
    under ``log_dir``; everything, uvicorn included, goes to the console.
    """
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    level_value = _resolve_level(settings.log_level)
    formatter = LocalTimezoneFormatter(
        "%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        timezone_name=settings.log_timezone,
    )

    file_handler = DailyFileHandler(
        log_dir / "app.log",
        when="midnight",
        interval=1,
        backupCount=7,
        encoding="utf-8",
    )
    file_handler.suffix = "%Y-%m-%d"
    file_handler.setFormatter(formatter)
    file_handler.addFilter(lambda record: record.name.startswith(LOGGER_NAME))

    app_logger = logging.getLogger(LOGGER_NAME)
    app_logger.setLevel(level_value)
    app_logger.propagate = True  # console output comes from the root handler
    app_logger.addHandler(file_handler)

    root_logger = logging.getLogger()
    root_logger.setLevel(level_value)
    has_console = any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        for h in root_logger.handlers
    )
    if not has_console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    _LOGGING_CONFIGURED = True


logger = logging.getLogger(LOGGER_NAME)
