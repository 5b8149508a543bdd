"""
Logging configuration for omicnet.

Analysis classes print short progress lines the way a notebook would; the
I/O, network and pipeline layers log through the standard ``logging``
module under the ``omicnet`` logger. Set the OMICNET_DEBUG environment
variable to see everything:

    export OMICNET_DEBUG=1
    omicnet --config analysis.json

Or in Python:
    import omicnet as onet
    onet.utils.setup_logging('DEBUG')
"""

import logging
import os
import sys

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def _debug_from_env() -> bool:
    return os.getenv('OMICNET_DEBUG', '').lower() in ('1', 'true', 'yes')


def setup_logging(level: str = None, stream=None) -> logging.Logger:
    """
    Configure the ``omicnet`` logger.

    Args:
        level: 'DEBUG', 'INFO', 'WARNING' or 'ERROR'. When None, DEBUG if
               OMICNET_DEBUG is '1', 'true' or 'yes', otherwise INFO.
        stream: Stream of the console handler, stdout when None. Only used
                the first time a handler is attached.

    Returns:
        The configured ``omicnet`` logger.
    """
    if level is None:
        level = 'DEBUG' if _debug_from_env() else 'INFO'
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    logger = logging.getLogger('omicnet')
    logger.setLevel(numeric_level)
    if not logger.handlers:
        handler = logging.StreamHandler(stream or sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(handler)
    for handler in logger.handlers:
        handler.setLevel(numeric_level)

    if numeric_level == logging.DEBUG:
        print(f"✓ omicnet debug logging enabled (level: {level})", file=sys.stderr)
    return logger


def enable_debug_logging() -> None:
    setup_logging('DEBUG')


def disable_debug_logging() -> None:
    setup_logging('INFO')


if _debug_from_env():
    setup_logging('DEBUG')
