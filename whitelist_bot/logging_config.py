import logging
import sys

QUIET_LIBRARIES = ("discord", "asyncssh", "aioftp", "httpx")


def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """Configure and return the ``whitelist`` logger.

    Module loggers (``whitelist.engine``, ``whitelist.rcon``, ...) propagate
    to it. discord.py and the transport libraries only report warnings and
    above. Calling this again returns the configured logger unchanged.
    """
    logger = logging.getLogger("whitelist")
    if logger.handlers:
        return logger  # already configured
    logger.setLevel(level)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter("[%(asctime)s] %(levelname)s %(name)s: %(message)s")
    )
    logger.addHandler(handler)
    for name in QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)
    return logger
