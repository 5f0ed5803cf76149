import logging, sys

from .config import get_settings

FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

def configure_logging(level: str | int | None = None) -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(FORMAT))
    root = logging.getLogger()
    root.setLevel(level or get_settings().log_level.upper())
    for h in list(root.handlers):
        root.removeHandler(h)
    root.addHandler(handler)
