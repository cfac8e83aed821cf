"""Application-wide Qt signals for SelfTracker.

The signal hub decouples the data layer from whatever front-end is attached to it:
the controller and the remote client emit here, views connect here.
"""
from PySide6 import QtCore


class Signals(QtCore.QObject):
    """Centralized Qt signals for configuration, data and sync events."""
    configSectionChanged = QtCore.Signal(str)  # Section name

    dataLoaded = QtCore.Signal()
    dataChanged = QtCore.Signal(str)  # Collection name

    syncStatusChanged = QtCore.Signal(str)  # SyncStatus value
    syncSkipped = QtCore.Signal(str)  # Name of the dropped operation
    queueChanged = QtCore.Signal(int)  # Pending remote operations

    showLogs = QtCore.Signal()
    error = QtCore.Signal(str)


signals = Signals()
