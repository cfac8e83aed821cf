"""
SelfTracker: personal habit, finance and small-business tracker synchronised with a spreadsheet-backed store.

This package provides:

- :mod:`SelfTracker.core` – Application state, local store, remote client, merge policies and the sync controller.
- :mod:`SelfTracker.data` – Summaries (filters, totals, progress) and sample data.
- :mod:`SelfTracker.settings` – Settings management with schema validation.
- :mod:`SelfTracker.status` – Status codes and the exceptions raised across the package.
- :mod:`SelfTracker.log` – Logging setup with an in-memory log tank.

Use :func:`SelfTracker.exec_` to run the headless sync loop.
"""

import sys

from PySide6 import QtCore

# Fail on Python < 3.11
if not (sys.version_info.major == 3 and sys.version_info.minor >= 11):
    raise RuntimeError('SelfTracker requires Python 3.11 or higher.')

__version__ = '0.1.0'
__description__ = 'SelfTracker: habit checklists, finances and a business ledger kept in sync with a remote spreadsheet.'

from .log import log

log.setup_logging()


def exec_() -> None:
    """Load the data and keep it in sync until the process is stopped.

    Runs a single load when periodic refresh is disabled (``sync.interval`` is 0).
    """
    from .core.controller import Controller

    app = QtCore.QCoreApplication.instance() or QtCore.QCoreApplication(sys.argv)
    controller = Controller()
    controller.load()

    if not controller.start_auto_refresh():
        return
    sys.exit(app.exec())


if __name__ == '__main__':
    exec_()
