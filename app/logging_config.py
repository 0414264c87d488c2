import logging
import sys

from pythonjsonlogger.json import JsonFormatter

from app.config import settings

HANDLER_NAME = "articles-stdout"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging() -> None:
    """Install a single JSON stdout handler on the root logger.

    Safe to call more than once; the handler is only added the first time.
    """
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(level)

    if any(h.get_name() == HANDLER_NAME for h in root.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        JsonFormatter(
            LOG_FORMAT,
            datefmt="%Y-%m-%d %H:%M:%S",
            json_ensure_ascii=False,
        )
    )
    handler.set_name(HANDLER_NAME)
    root.addHandler(handler)
