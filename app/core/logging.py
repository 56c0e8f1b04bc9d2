import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: str = "INFO"):
    root = logging.getLogger()

    # uvicorn --reload imports the app twice
    if any(getattr(h, "_trip_ledger", False) for h in root.handlers):
        root.setLevel(level.upper())
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._trip_ledger = True

    root.addHandler(handler)
    root.setLevel(level.upper())

    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
