import logging
import sys
from loguru import logger

from app.core.config import settings


class InterceptHandler(logging.Handler):
    """Routes stdlib records (uvicorn, sqlalchemy) into loguru."""

    def emit(self, record):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk past the logging module frames so loguru reports the caller
        frame, depth = logging.currentframe(), 2
        while frame.f_back and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def setup_logging():
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)

    logging.basicConfig(handlers=[InterceptHandler()], level=logging.INFO)

    logger.remove()
    logger.add(sys.stderr, level=settings.log_level)
    if settings.log_file:
        logger.add(
            settings.log_file,
            rotation="500 MB",
            compression="zip",
            level=settings.log_level,
            backtrace=True,
            diagnose=settings.debug,
        )
