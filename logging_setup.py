import logging
import sys

FORMAT = "%(asctime)s - %(name)s - [%(levelname)-7s] - %(message)s"


def setup_logging(level: str = "INFO"):
    """Configures the root logger."""
    root = logging.getLogger()
    root.setLevel(level.upper())
    if not root.hasHandlers():
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(FORMAT))
        root.addHandler(handler)
    # pymongo is chatty at DEBUG
    logging.getLogger("pymongo").setLevel(logging.WARNING)
