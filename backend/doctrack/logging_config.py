import logging
import sys

LOG_FORMAT = "%(asctime)s - [%(levelname)s] - [%(name)s] - %(message)s"


def setup_logging(level: str = "INFO") -> None:
    formatter = logging.Formatter(LOG_FORMAT)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(level.upper())
    root.handlers = [handler]

    # uvicorn installs its own handlers; route them through ours
    for name in ("uvicorn.access", "uvicorn.error"):
        uv_logger = logging.getLogger(name)
        uv_logger.handlers = [handler]
        uv_logger.propagate = False

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger(__name__).info("Logging configured at level %s", level.upper())
