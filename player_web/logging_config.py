import logging
import sys

from player_web.config import LOG_LEVEL


def configure_logging(level: str | int = LOG_LEVEL) -> None:
    """
    Configure root logging: one stdout handler, time / level / logger name.
    Safe to call more than once; later calls only adjust the level.
    """
    root = logging.getLogger()
    if root.handlers:
        root.setLevel(level)
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s - %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root.addHandler(handler)
    root.setLevel(level)
