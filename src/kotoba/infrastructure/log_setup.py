"""Logging setup shared by the CLI and the server."""

import logging
import sys
from pathlib import Path

from ulid import ULID

LOG_FORMAT = "%(levelname)s:%(name)s:%(message)s"
FILE_LOG_FORMAT = "%(asctime)s %(levelname)s [%(run_id)s] %(name)s: %(message)s"


class _RunIdFilter(logging.Filter):
    def __init__(self, run_id: str):
        super().__init__()
        self.run_id = run_id

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = self.run_id
        return True


def _level_for(verbose: int) -> int:
    if verbose <= 0:
        return logging.WARNING
    if verbose == 1:
        return logging.INFO
    return logging.DEBUG


def setup_logging(log_dir: Path | None, verbose: int = 1) -> tuple[logging.Logger, Path | None, str]:
    """
    Configure the ``kotoba`` logger for one run.

    Logs go to stderr at a level derived from ``verbose`` and, when ``log_dir``
    is given, to ``<log_dir>/run_<run_id>.log`` at DEBUG level.

    Returns:
        (logger, log_path, run_id)
    """
    run_id = str(ULID())
    logger = logging.getLogger("kotoba")
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    stream = logging.StreamHandler(sys.stderr)
    stream.setLevel(_level_for(verbose))
    stream.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(stream)

    log_path = None
    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        log_path = log_dir / f"run_{run_id}.log"
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.addFilter(_RunIdFilter(run_id))
        file_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT))
        logger.addHandler(file_handler)

    return logger, log_path, run_id
