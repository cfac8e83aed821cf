"""Application controller: load, mutate, persist and sync the application state.

The controller owns the in-memory :class:`~SelfTracker.core.state.AppState`. Every
change is applied through :func:`~SelfTracker.core.state.apply_change`, persisted
to the local store first and only then mirrored to the remote store. Remote
failures never roll back local changes: when the store is unreachable the
operations are queued and retried by :meth:`Controller.flush_queue` or the next
refresh. Operations the store rejects are dropped.

Sync operations share a single-flight guard. A sync requested while another is
in flight is dropped and reported through the ``syncSkipped`` signal. Background
refreshes only talk to the network off the controller's thread; the state is
merged back on it.
"""
import enum
import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

from PySide6 import QtCore

from . import merge
from .client import RemoteClient
from .migration import migrate_legacy_categories
from .signals import signals
from .state import (
    AppState,
    Change,
    Collection,
    PendingOperation,
    RECORD_COLLECTIONS,
    RemoteAction,
    apply_change,
    now_str,
)
from .storage import StorageManager
from ..data.samples import get_sample_data
from ..settings import lib
from ..status import status


class SyncStatus(enum.StrEnum):
    """Connection indicator values."""
    Online = 'Online'
    Offline = 'Offline'
    Syncing = 'Syncing'
    Error = 'Sync Error'


class SyncWorker(QtCore.QThread):
    """
    Worker thread running a blocking sync function.

    Signals:
        resultReady (object): Emitted with the function's result on success.
        errorOccurred (object): Emitted with the exception on failure.
    """
    resultReady = QtCore.Signal(object)
    errorOccurred = QtCore.Signal(object)

    def __init__(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        super().__init__()
        self.func = func
        self.args = args
        self.kwargs = kwargs

    def run(self) -> None:
        try:
            result = self.func(*self.args, **self.kwargs)
        except Exception as ex:
            logging.error(f'Background sync failed: {ex}')
            self.errorOccurred.emit(ex)
            return
        self.resultReady.emit(result)


class Controller(QtCore.QObject):
    """Coordinates the local store, the remote client and the application state.

    Args:
        storage: The local store. Defaults to one built from the settings.
        client: The remote client. Defaults to one built from the settings.
        parent: Optional Qt parent.
    """

    def __init__(self, storage: Optional[StorageManager] = None, client: Optional[RemoteClient] = None,
                 parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self.storage: StorageManager = storage or StorageManager()
        self.client: RemoteClient = client or RemoteClient.from_settings()
        self.state: AppState = AppState()

        self.is_online: bool = False
        self.sync_status: SyncStatus = SyncStatus.Offline

        self._queue: List[PendingOperation] = []
        self._sync_lock = threading.Lock()
        self._worker: Optional[SyncWorker] = None
        self._timer: Optional[QtCore.QTimer] = None

        self._connect_signals()

    def _connect_signals(self) -> None:
        signals.configSectionChanged.connect(self.on_config_changed)

    @QtCore.Slot(str)
    def on_config_changed(self, section: str) -> None:
        """Pick up remote or sync configuration changes."""
        if section == 'remote':
            config = lib.settings.get_section('remote')
            self.client.configure(config.get('url', ''), config.get('token', ''))
            self.client.max_attempts = max(1, config.get('max_retries', self.client.max_attempts))
            self.client.retry_delay = config.get('retry_delay', self.client.retry_delay)
            self.client.timeout = config.get('timeout', self.client.timeout)
        elif section == 'sync' and self._timer is not None:
            self.start_auto_refresh()

    @property
    def queue(self) -> List[PendingOperation]:
        """A copy of the remote operations waiting to be sent."""
        return list(self._queue)

    def set_status(self, value: SyncStatus) -> None:
        self.sync_status = value
        signals.syncStatusChanged.emit(value.value)

    def load(self) -> AppState:
        """Load the local cache, merge in the remote snapshot and persist the result.

        Collections absent from both sides are filled with sample data. Legacy
        categories are upgraded once and the upgraded snapshot is pushed.

        Returns:
            The loaded state.
        """
        local = self.storage.get_all()
        logging.debug(f'Loaded {len(local)} keys from the local store.')

        remote: Optional[Dict[str, Any]] = None
        remote_empty = False
        if self.client.is_configured():
            try:
                remote = self.client.pull()
                remote_empty = not remote
                self.is_online = True
                self.set_status(SyncStatus.Online)
            except status.BaseStatusException as ex:
                logging.warning(f'Failed to pull remote data, using the local cache: {ex}')
                self.is_online = False
                self.set_status(SyncStatus.Offline)
        else:
            logging.info('Remote store is not configured. Working offline.')

        merged = merge.merge_snapshot(local, remote)
        for kind in RECORD_COLLECTIONS:
            if merged.get(kind.value) is None:
                logging.debug(f'No {kind.value} data found. Using sample data.')
                merged[kind.value] = get_sample_data(kind)

        self.state = AppState.from_dict(merged)
        migrated = migrate_legacy_categories(self.state)
        self.persist()

        if self.is_online and (migrated or remote_empty):
            self._dispatch([PendingOperation(RemoteAction.Push, Collection.Settings)])

        signals.dataLoaded.emit()
        return self.state

    def persist(self) -> bool:
        """Write the whole state to the local store.

        Returns:
            True if every key was written.
        """
        results = self.storage.set_all(self.state.to_dict())
        failed = [k for k, ok in results.items() if not ok]
        if failed:
            logging.error(f'Failed to persist: {", ".join(failed)}')
        return not failed

    def apply(self, change: Change) -> List[PendingOperation]:
        """Apply a change, persist it locally, then mirror it to the remote store.

        Args:
            change: The change to apply.

        Returns:
            The remote operations the change produced.

        Raises:
            status.ValidationFailedException: If the change is invalid. Nothing is modified.
        """
        operations = apply_change(self.state, change)
        if not operations:
            return operations

        self.persist()
        signals.dataChanged.emit(Collection(change.collection).value)
        self._dispatch(operations)
        return operations

    def _send(self, operation: PendingOperation, snapshot: Optional[Dict[str, Any]] = None) -> None:
        kind = operation.collection.value
        if operation.action == RemoteAction.Create:
            self.client.create(kind, operation.payload)
        elif operation.action == RemoteAction.Update:
            self.client.update(kind, operation.record_id, operation.payload)
        elif operation.action == RemoteAction.Delete:
            self.client.delete(kind, operation.record_id)
        elif operation.action == RemoteAction.Push:
            self.client.push(snapshot if snapshot is not None else self.state.to_dict())
        else:
            raise ValueError(f'Unknown remote action: {operation.action}')

    def _enqueue(self, operations: List[PendingOperation]) -> None:
        for operation in operations:
            if operation.action == RemoteAction.Push and any(
                    op.action == RemoteAction.Push for op in self._queue):
                continue
            self._queue.append(operation)
        logging.debug(f'{len(self._queue)} remote operation(s) queued.')
        signals.queueChanged.emit(len(self._queue))

    def _dispatch(self, operations: List[PendingOperation]) -> None:
        """Send operations now if possible, queueing whatever could not be sent.

        Operations the remote store rejects are dropped. Only unreachable-store
        failures are queued.
        """
        if not self.client.is_configured():
            self._enqueue(operations)
            return

        if not self._sync_lock.acquire(blocking=False):
            logging.debug('A sync is in flight. Queueing the remote operations.')
            self._enqueue(operations)
            return

        try:
            for index, operation in enumerate(operations):
                try:
                    self._send(operation)
                except status.RemoteErrorException as ex:
                    logging.warning(f'Remote store rejected {operation.action.value} on '
                                    f'{operation.collection.value}, dropping it: {ex.detail}')
                except status.BaseStatusException as ex:
                    logging.warning(f'Remote {operation.action.value} failed, queued for retry: {ex}')
                    self.is_online = False
                    self._enqueue(operations[index:])
                    return
        finally:
            self._sync_lock.release()

    def _flush(self, snapshot: Optional[Dict[str, Any]] = None) -> bool:
        """Send queued operations in order. The caller holds the sync guard.

        A rejected operation is dropped and the flush moves on to the next one.
        The flush stops at the first unreachable-store failure.
        """
        changed = 0
        try:
            while self._queue:
                operation = self._queue[0]
                try:
                    self._send(operation, snapshot)
                except status.RemoteErrorException as ex:
                    logging.warning(f'Remote store rejected queued {operation.action.value} on '
                                    f'{operation.collection.value}, dropping it: {ex.detail}')
                except status.BaseStatusException as ex:
                    logging.warning(f'Flushing the queue stopped, {len(self._queue)} operation(s) left: {ex}')
                    break
                self._queue.pop(0)
                changed += 1
        finally:
            if changed:
                signals.queueChanged.emit(len(self._queue))
        return not self._queue

    def flush_queue(self) -> bool:
        """Send every queued operation.

        Returns:
            True if the queue is empty afterwards. False if the flush was skipped
            or the remote store could not be reached.
        """
        if not self._queue:
            return True
        if not self.client.is_configured():
            logging.debug('Remote store is not configured. Keeping the queue.')
            return False
        if not self._sync_lock.acquire(blocking=False):
            logging.info('Flush skipped: a sync is already in flight.')
            signals.syncSkipped.emit('flush_queue')
            return False
        try:
            return self._flush()
        finally:
            self._sync_lock.release()

    def check_connection(self) -> bool:
        """Query the remote health endpoint and update the connection status."""
        if not self.client.is_configured():
            self.is_online = False
        else:
            self.is_online = self.client.health().get('reachable', False)
        self.set_status(SyncStatus.Online if self.is_online else SyncStatus.Offline)
        return self.is_online

    def _fetch(self, snapshot: Dict[str, Any], silent: bool) -> Optional[Tuple[bool, Any]]:
        """Network half of a refresh: health check, queue flush and pull.

        Safe to run on a worker thread, the state is never read or written here.
        ``snapshot`` is what a queued push sends.

        Returns:
            None if another sync is in flight, otherwise ``(reachable, remote snapshot)``.

        Raises:
            status.ServiceUnavailableException: If the store is unreachable and not silent.
            status.RemoteErrorException: If the pull is rejected and not silent.
        """
        if not self._sync_lock.acquire(blocking=False):
            logging.info('Refresh skipped: a sync is already in flight.')
            signals.syncSkipped.emit('refresh')
            return None

        try:
            self.set_status(SyncStatus.Syncing)
            health = self.client.health()
            if not health.get('reachable', False):
                if silent:
                    logging.warning(f'Refresh failed, the remote store is unreachable: {health.get("error")}')
                    return False, None
                raise status.ServiceUnavailableException(health.get('error'))

            self._flush(snapshot)
            return True, self.client.pull()
        except status.BaseStatusException:
            if silent:
                return False, None
            raise
        finally:
            self._sync_lock.release()

    @QtCore.Slot(object)
    def _apply_fetched(self, result: Optional[Tuple[bool, Any]]) -> bool:
        """State half of a refresh: merge the pulled snapshot and persist it."""
        if result is None:
            return False

        reachable, remote = result
        self.is_online = reachable
        if not reachable:
            self.set_status(SyncStatus.Error)
            return False

        merged = merge.merge_snapshot(self.state.to_dict(), remote)
        self.state = AppState.from_dict(merged)
        migrated = migrate_legacy_categories(self.state)
        self.persist()
        self.set_status(SyncStatus.Online)

        if migrated:
            self._dispatch([PendingOperation(RemoteAction.Push, Collection.Settings)])

        signals.dataLoaded.emit()
        logging.info('Refresh completed.')
        return True

    @QtCore.Slot(object)
    def _on_fetch_failed(self, ex: Exception) -> None:
        self.is_online = False
        self.set_status(SyncStatus.Error)

    def refresh(self, silent: bool = False) -> bool:
        """Pull the remote snapshot and merge it into the current state.

        Queued operations are sent first so the pull reflects them.

        Args:
            silent: When True, failures only update the status indicator.

        Returns:
            True if the refresh completed. False if it was skipped or failed silently.

        Raises:
            status.RemoteNotConfiguredException: If no remote is configured and not silent.
            status.ServiceUnavailableException: If the remote store is unreachable and not silent.
            status.RemoteErrorException: If the remote store reports an error and not silent.
        """
        if not self.client.is_configured():
            if silent:
                logging.debug('Refresh skipped: remote store is not configured.')
                return False
            raise status.RemoteNotConfiguredException

        try:
            result = self._fetch(self.state.to_dict(), silent)
        except status.BaseStatusException as ex:
            self._on_fetch_failed(ex)
            raise
        return self._apply_fetched(result)

    def refresh_async(self, silent: bool = True) -> Optional[SyncWorker]:
        """Run the network half of :meth:`refresh` on a worker thread.

        The pulled snapshot is merged on the controller's thread once the worker
        reports back, so changes applied in the meantime are kept.

        Returns:
            The started worker, or None if the refresh was not started.
        """
        if not self.client.is_configured():
            logging.debug('Background refresh skipped: remote store is not configured.')
            return None
        if self._worker is not None and self._worker.isRunning():
            logging.info('Background refresh skipped: one is already running.')
            signals.syncSkipped.emit('refresh')
            return None

        self._worker = SyncWorker(self._fetch, self.state.to_dict(), silent)
        self._worker.resultReady.connect(self._apply_fetched)
        self._worker.errorOccurred.connect(self._on_fetch_failed)
        self._worker.start()
        return self._worker

    def start_auto_refresh(self) -> bool:
        """(Re)start periodic background refreshes using ``sync.interval``.

        Returns:
            True if a timer is running. An interval of 0 disables periodic refresh.
        """
        interval = lib.settings.get_section('sync').get('interval', 0)
        if self._timer is not None:
            self._timer.stop()
        if interval <= 0:
            logging.debug('Periodic refresh is disabled.')
            return False

        if self._timer is None:
            self._timer = QtCore.QTimer(self)
            self._timer.timeout.connect(lambda: self.refresh_async(silent=True))
        self._timer.setInterval(interval * 1000)
        self._timer.start()
        logging.debug(f'Periodic refresh every {interval}s.')
        return True

    def stop_auto_refresh(self) -> None:
        if self._timer is not None:
            self._timer.stop()

    def push_all(self) -> bool:
        """Replace the remote snapshot with the current state.

        Returns:
            True on success. False if skipped because another sync is in flight.

        Raises:
            status.RemoteNotConfiguredException: If no remote is configured.
            status.ServiceUnavailableException: If the push failed. A push is queued.
            status.RemoteErrorException: If the remote store reported an error. A push is queued.
        """
        if not self.client.is_configured():
            raise status.RemoteNotConfiguredException

        if not self._sync_lock.acquire(blocking=False):
            logging.info('Push skipped: a sync is already in flight.')
            signals.syncSkipped.emit('push_all')
            return False

        try:
            self.client.push(self.state.to_dict())
        except status.BaseStatusException:
            self._enqueue([PendingOperation(RemoteAction.Push, Collection.Settings)])
            raise
        finally:
            self._sync_lock.release()

        self._queue = [op for op in self._queue if op.action != RemoteAction.Push]
        signals.queueChanged.emit(len(self._queue))
        return True

    def export_data(self) -> Dict[str, Any]:
        """Return the current state in snapshot export format."""
        return {
            'data': self.state.to_dict(),
            'timestamp': now_str(),
            'version': lib.settings.get_section('sync').get('export_version', '2.0'),
        }

    def import_data(self, payload: Any) -> AppState:
        """Merge an exported snapshot into the current state.

        The imported data is merged as the remote side, so it wins on id
        collisions. The result is persisted and, when configured, pushed.

        Raises:
            status.ImportInvalidException: If the payload carries no ``data`` mapping.
        """
        if not isinstance(payload, dict) or not isinstance(payload.get('data'), dict):
            raise status.ImportInvalidException('Expected a mapping with a "data" section.')

        merged = merge.merge_snapshot(self.state.to_dict(), payload['data'])
        self.state = AppState.from_dict(merged)
        migrate_legacy_categories(self.state)
        self.persist()
        signals.dataLoaded.emit()

        if self.client.is_configured():
            self._dispatch([PendingOperation(RemoteAction.Push, Collection.Settings)])
        logging.info(f'Imported data (version {payload.get("version", "unknown")}).')
        return self.state

    def cleanup(self, days_to_keep: Optional[int] = None) -> Dict[str, int]:
        """Drop old transactions from the local store and reload them into the state."""
        if days_to_keep is None:
            days_to_keep = lib.settings.get_section('storage').get('cleanup_days', 90)

        removed = self.storage.cleanup(days_to_keep)
        for kind in removed:
            setattr(self.state, kind, self.storage.get(kind) or [])
            signals.dataChanged.emit(kind)
        return removed
