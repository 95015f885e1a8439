import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from substitution_server.config import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s:%(lineno)d: %(message)s"

_initialized = False


def setup_logging():
    global _initialized
    if _initialized:
        return

    settings = get_settings()
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT)

    logger = logging.getLogger()
    logger.setLevel(level)

    if not any(type(h) is logging.StreamHandler for h in logger.handlers):
        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setFormatter(formatter)
        logger.addHandler(stream_handler)

    log_dir = Path(settings.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)

    if not any(isinstance(h, TimedRotatingFileHandler) for h in logger.handlers):
        file_handler = TimedRotatingFileHandler(
            filename=log_dir / "substitutions.log",
            when="midnight",
            interval=1,
            backupCount=7,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if settings.LOG_TO_DB:
        from substitution_server.logs.db_logger import DBLogHandler

        db_handler = DBLogHandler()
        db_handler.setLevel(logging.INFO)
        db_handler.setFormatter(formatter)

        if not any(isinstance(h, DBLogHandler) for h in logger.handlers):
            logger.addHandler(db_handler)

    # pdfminer is very chatty about font and layout details
    logging.getLogger("pdfminer").setLevel(logging.ERROR)

    _initialized = True
