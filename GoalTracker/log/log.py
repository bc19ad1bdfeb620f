import logging
import re
import sys

from PySide6.QtCore import QtMsgType, qInstallMessageHandler

LOG_LEVEL = logging.DEBUG
LOG_FORMAT = '[%(asctime)s] <%(module)s> %(levelname)s:  %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'

VALID_LEVELS = (
    logging.DEBUG,
    logging.INFO,
    logging.WARNING,
    logging.ERROR,
    logging.CRITICAL,
)

MASK = '***'

# (pattern, replacement) pairs applied in order to every formatted message
SECRET_PATTERNS = (
    # GitHub OAuth, personal, user-to-server and refresh tokens
    (re.compile(r'\b(gh[oprsu]_)[A-Za-z0-9]{16,}\b'), r'\1' + MASK),
    (re.compile(r'\bgithub_pat_[A-Za-z0-9_]{16,}'), 'github_pat_' + MASK),
    # Authorization headers
    (re.compile(r'\b(Bearer|token)\s+[A-Za-z0-9_.~+/=-]{8,}', re.IGNORECASE), r'\1 ' + MASK),
    # Form and query parameters
    (re.compile(r'\b(access_token|refresh_token|client_secret)=[^&\s]+'), r'\1=' + MASK),
    (re.compile(r'([?&]code)=[^&\s]+'), r'\1=' + MASK),
    # JSON and repr'd dictionaries
    (
        re.compile(r'''(['"](?:access_token|refresh_token|client_secret)['"]\s*:\s*['"])[^'"]+'''),
        r'\1' + MASK
    ),
)


def redact(message):
    """
    Masks GitHub tokens, client secrets and authorization codes in a message.

    Args:
        message (str): The text to clean.

    Returns:
        str: The message with every secret replaced by ``***``.
    """
    for pattern, replacement in SECRET_PATTERNS:
        message = pattern.sub(replacement, message)
    return message


class SecretFilter(logging.Filter):
    """
    Handler filter that rewrites records so secrets never reach a log destination.

    The message is merged with its arguments before redaction, so tokens passed as
    ``%s`` arguments are masked too. Records are never dropped.
    """

    def filter(self, record):
        message = record.getMessage()
        cleaned = redact(message)
        if cleaned != message:
            record.msg = cleaned
            record.args = None
        return True


def set_logging_level(level):
    """
    Sets the logging level for the root logger and all of its handlers.

    Args:
        level (int): The logging level to set. Should be one of the standard logging levels.
    """
    if not isinstance(level, int):
        raise ValueError('Logging level must be an integer.')
    if level not in VALID_LEVELS:
        raise ValueError('Invalid logging level. Use one of the standard logging levels, e.g., logging.DEBUG.')

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers:
        handler.setLevel(level)


def qt_message_handler(mode, context, message):
    """
    Converts Qt messages to standard Python logging.
    """
    logger = logging.getLogger('Qt')

    # Qt message may have newline/stripped formatting
    message = message.strip()

    if mode == QtMsgType.QtDebugMsg:
        logger.debug(message)
    elif mode == QtMsgType.QtInfoMsg:
        logger.info(message)
    elif mode == QtMsgType.QtWarningMsg:
        logger.warning(message)
    elif mode == QtMsgType.QtCriticalMsg:
        logger.error(message)
    elif mode == QtMsgType.QtFatalMsg:
        logger.critical(message)
        sys.exit(1)


def setup_logging(enable_stream_handler=True, enable_qt_handler=True, log_level=LOG_LEVEL):
    """
    Configures the root logger and optionally installs the Qt message handler.

    Every installed handler carries a :class:`SecretFilter`.

    Args:
        enable_stream_handler (bool): Write records to stdout.
        enable_qt_handler (bool): Route Qt's own messages through Python logging.
        log_level (int): Level applied to the root logger and every handler.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Clear all handlers to avoid formatting conflicts
    root_logger.handlers.clear()

    if enable_stream_handler:
        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT))
        stream_handler.setLevel(log_level)
        stream_handler.addFilter(SecretFilter())
        root_logger.addHandler(stream_handler)

    if enable_qt_handler:
        qInstallMessageHandler(qt_message_handler)
