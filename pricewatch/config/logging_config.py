# pricewatch/config/logging_config.py

"""Per-run timestamped logging for pricewatch.

Every launch, whether a one-off CLI command or the long-running
scheduler, writes to its own ``logs/run_YYYYmmdd_HHMMSS.log``.  All
``pricewatch.*`` loggers share that file.  Scheduled batches fetch
pages in worker threads, so file records carry the thread name next
to the logger name.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

from pricewatch.config.settings import Settings

_FILE_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(name)s | %(threadName)s | "
    "%(module)s:%(funcName)s:%(lineno)d | %(message)s"
)
_CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# HTTP stacks pulled in by cloudscraper log every connection at DEBUG
_NOISY_LOGGERS: tuple[str, ...] = ("urllib3", "charset_normalizer")


def setup_logging(verbose: bool = False) -> Path:
    """Attach the file and console handlers to the ``pricewatch`` logger.

    The file always receives DEBUG and above.  The console (stderr)
    shows WARNING and above, or INFO and above when *verbose*.  Calling
    this again keeps the existing handlers.

    Returns:
        Path of this run's log file.
    """
    Settings.LOGS_DIR.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = Settings.LOGS_DIR / f"run_{stamp}.log"

    root_logger = logging.getLogger("pricewatch")
    root_logger.setLevel(logging.DEBUG)
    if root_logger.handlers:
        return log_file

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        logging.Formatter(_FILE_FORMAT, datefmt=_DATE_FORMAT)
    )
    root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.INFO if verbose else logging.WARNING)
    console_handler.setFormatter(
        logging.Formatter(_CONSOLE_FORMAT, datefmt=_DATE_FORMAT)
    )
    root_logger.addHandler(console_handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root_logger.info("Logging to %s", log_file)
    return log_file
