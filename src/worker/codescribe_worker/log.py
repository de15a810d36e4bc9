import logging
import sys

from .config import LOG_LEVEL

LOGGER_NAME = "codescribe"
NOISY_LOGGERS = ("httpx", "httpcore", "openai", "git")


def init_logger(level: str | None = None) -> logging.Logger:
    """
    Idempotent logger init for the API process and the worker.

    Logs go to stdout only; the level comes from LOG_LEVEL unless given.
    """
    root = logging.getLogger()
    if getattr(root, "_codescribe_inited", False):
        return logging.getLogger(LOGGER_NAME)

    resolved = getattr(logging, (level or LOG_LEVEL or "INFO").upper(), logging.INFO)
    root.setLevel(resolved)

    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(resolved)
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s - %(message)s", datefmt="%Y-%m-%dT%H:%M:%S%z")
    )
    root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root._codescribe_inited = True
    return logging.getLogger(LOGGER_NAME)
