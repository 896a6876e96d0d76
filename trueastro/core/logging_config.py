import logging
import sys

from trueastro.core.config import LOG_LEVEL

_LOGGING_CONFIGURED = False


def configure_logging(level: str = LOG_LEVEL) -> None:
    """
    Install one stream handler on the root logger.

    Safe to call more than once (app startup and the sweep script both call it).
    """
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
    )

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.addHandler(handler)

    # motor/pymongo are chatty at DEBUG
    logging.getLogger("pymongo").setLevel(logging.WARNING)

    _LOGGING_CONFIGURED = True
