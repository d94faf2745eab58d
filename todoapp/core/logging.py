import logging
import os
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """Configure process-wide logging for the API and its stores."""
    requested = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    resolved = logging.getLevelName(requested)
    if not isinstance(resolved, int):
        resolved = logging.INFO
    logging.basicConfig(level=resolved, format=LOG_FORMAT)
    if resolved != logging.getLevelName(requested):
        logging.getLogger(__name__).warning("Unknown LOG_LEVEL %r, using INFO", requested)
    # Client libraries are chatty at DEBUG; keep them at WARNING.
    logging.getLogger("httpx").setLevel(logging.WARNING)
