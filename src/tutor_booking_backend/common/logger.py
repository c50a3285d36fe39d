'''
Application-wide logger. Every module imports `log` from here.
'''
import logging
import sys

from .config import settings

def setup_logger():
    """
    Configures and returns the booking engine's logger. The level comes from
    LOG_LEVEL; in TEST_MODE only warnings and above are printed.
    """
    logger = logging.getLogger('tutor-booking')
    level = logging.WARNING if settings.TEST_MODE else settings.LOG_LEVEL.upper()
    logger.setLevel(level)
    logger.propagate = False

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(
        '%(asctime)s [%(levelname)s] %(module)s.%(funcName)s: %(message)s'
    ))

    if not logger.handlers:
        logger.addHandler(handler)

    return logger

log = setup_logger()
