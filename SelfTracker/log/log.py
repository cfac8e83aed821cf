"""Logging setup for SelfTracker.

Everything logs through the root logger. :func:`setup_logging` attaches an
optional stdout handler and a :class:`TankHandler`, a bounded in-memory buffer a
front-end can browse, since background sync failures never interrupt the user.
Qt's own diagnostics are routed into the same handlers.
"""
import collections
import logging
import sys

from PySide6.QtCore import QtMsgType, qInstallMessageHandler

from ..core.signals import signals

LOG_LEVEL = logging.DEBUG
LOG_FORMAT = '[%(asctime)s] <%(module)s> %(levelname)s:  %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'

#: Records kept by the tank before the oldest are discarded
TANK_SIZE = 5000

LEVELS = (
    logging.DEBUG,
    logging.INFO,
    logging.WARNING,
    logging.ERROR,
    logging.CRITICAL,
)

QT_LEVELS = {
    QtMsgType.QtDebugMsg: logging.DEBUG,
    QtMsgType.QtInfoMsg: logging.INFO,
    QtMsgType.QtWarningMsg: logging.WARNING,
    QtMsgType.QtCriticalMsg: logging.ERROR,
    QtMsgType.QtFatalMsg: logging.CRITICAL,
}


def set_logging_level(level):
    """Change the root logger's level.

    Raises:
        ValueError: If ``level`` is not one of the standard integer levels.
    """
    if not isinstance(level, int) or level not in LEVELS:
        raise ValueError(f'Expected one of the standard logging levels, got {level!r}.')
    logging.getLogger().setLevel(level)


def qt_message_handler(mode, context, message):
    """Forward a Qt diagnostic to the ``Qt`` logger. A fatal message exits the process."""
    level = QT_LEVELS.get(mode, logging.INFO)
    logging.getLogger('Qt').log(level, message.strip())
    if mode == QtMsgType.QtFatalMsg:
        sys.exit(1)


def setup_logging(enable_stream_handler=True, enable_qt_handler=True, log_level=LOG_LEVEL):
    """Replace the root logger's handlers with the application's.

    Args:
        enable_stream_handler (bool): Also print records to stdout.
        enable_qt_handler (bool): Install :func:`qt_message_handler`.
        log_level (int): Level of the root logger and of every handler.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)
    handlers = [TankHandler()]
    if enable_stream_handler:
        handlers.insert(0, logging.StreamHandler(sys.stdout))

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(log_level)
        root_logger.addHandler(handler)

    if enable_qt_handler:
        qInstallMessageHandler(qt_message_handler)


def get_tank():
    """The :class:`TankHandler` attached to the root logger, or None."""
    return next(
        (h for h in logging.getLogger().handlers if isinstance(h, TankHandler)),
        None
    )


class TankHandler(logging.Handler):
    """Keeps the latest formatted records in memory.

    Only the newest ``maxlen`` records are kept, so a long-running sync loop
    does not grow without bound. Errors emit ``showLogs``.

    Attributes:
        tank (collections.deque[tuple[int, str]]): ``(level, message)`` pairs, oldest first.
    """

    def __init__(self, maxlen=TANK_SIZE):
        super().__init__()
        self.tank = collections.deque(maxlen=maxlen)

    def emit(self, record):
        try:
            self.tank.append((record.levelno, self.format(record)))
        except Exception:
            self.handleError(record)
            return
        if record.levelno >= logging.ERROR:
            signals.showLogs.emit()

    def get_logs(self, level=logging.NOTSET):
        """Messages at ``level`` or above, oldest first."""
        return [msg for lvl, msg in self.tank if lvl >= level]

    def clear_logs(self):
        self.tank.clear()
