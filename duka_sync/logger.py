import logging
import os
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Any, List

from pythonjsonlogger import json

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
# Пустое значение отключает запись в файл (киоски без записываемого диска).
LOG_FILE = os.getenv("LOG_FILE", "logs/duka_sync.log")
LOG_MAX_BYTES = int(os.getenv("LOG_MAX_BYTES", str(5 * 1024 * 1024)))
LOG_BACKUP_COUNT = int(os.getenv("LOG_BACKUP_COUNT", "3"))

logger: logging.Logger = logging.getLogger("duka_sync")


class QueueJSONFormatter(json.JsonFormatter):
    """
    JSON-формат с UTC временем, уровнем и именем процесса (api / worker).
    """

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        if not log_record.get("timestamp"):
            log_record["timestamp"] = datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(timespec="milliseconds")

        level = log_record.get("level")
        log_record["level"] = level.upper() if level else record.levelname
        log_record.setdefault("process_name", record.processName)


def _build_handlers() -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if LOG_FILE:
        os.makedirs(os.path.dirname(LOG_FILE) or ".", exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                LOG_FILE,
                maxBytes=LOG_MAX_BYTES,
                backupCount=LOG_BACKUP_COUNT,
                encoding="utf-8",
            )
        )
    return handlers


formatter = QueueJSONFormatter(
    "%(timestamp)s %(level)s %(name)s %(message)s %(module)s %(funcName)s"
)

if not logger.handlers:
    for handler in _build_handlers():
        handler.setFormatter(formatter)
        logger.addHandler(handler)

logger.setLevel(LOG_LEVEL)
logger.propagate = False
