import logging
import sys
from typing import Optional

from app.core.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """
    Attach a stdout handler to the root logger once and apply the level.
    Uvicorn installs its handlers before importing us; celery workers, beat and alembic do not.
    """
    resolved_level = (level or settings.LOG_LEVEL or "INFO").upper()
    root_logger = logging.getLogger()

    if not root_logger.handlers:
        logging.basicConfig(
            level=resolved_level,
            format=LOG_FORMAT,
            handlers=[logging.StreamHandler(sys.stdout)],
        )
    else:
        root_logger.setLevel(resolved_level)

    # croniter/urllib3 are chatty at DEBUG
    logging.getLogger("urllib3").setLevel(max(logging.INFO, root_logger.level))

    logging.captureWarnings(True)
    return logging.getLogger("commerce_hub")


logger = configure_logging()
