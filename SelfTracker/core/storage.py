"""
Local key-value store for the application snapshot.

Each reserved key (one per collection plus ``settings``) is stored as a JSON
string in a single SQLite table, under a namespacing prefix. Read failures are
logged and reported as missing data; they never raise.
"""

import datetime
import enum
import json
import logging
import pathlib
import sqlite3
from typing import Any, Dict, Optional

from dateutil import parser as date_parser

from .state import Collection, TRANSACTIONS, now_str
from ..settings import lib

#: Keys the store accepts, in storage order
KEYS = tuple(c.value for c in Collection)

#: Estimated quota used for the usage percentage
ESTIMATED_LIMIT = 5 * 1024 * 1024

DEFAULT_EXPORT_VERSION = '1.0'


class Table(enum.StrEnum):
    """Enum for database tables."""
    Store = 'store'


class StorageManager:
    """Namespaced, JSON-serialising key-value store backed by SQLite.

    Args:
        path: Path of the database file. Defaults to the configured storage path.
        prefix: Namespace prepended to every key. Defaults to the configured prefix.
    """

    def __init__(self, path: Optional[pathlib.Path] = None, prefix: Optional[str] = None) -> None:
        self.path: pathlib.Path = pathlib.Path(path) if path else lib.settings.storage_path
        if prefix is None:
            prefix = lib.settings.get_section('storage').get('prefix', 'selftracker_')
        self.prefix: str = prefix
        self._initialize_schema_if_needed()

    def _initialize_schema_if_needed(self) -> None:
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = self.connection()
            conn.execute(
                f'CREATE TABLE IF NOT EXISTS {Table.Store.value} '
                '(key TEXT PRIMARY KEY, value TEXT NOT NULL)'
            )
            conn.commit()
        except sqlite3.Error as e:
            logging.error(f'SQLite error during schema initialization: {e}', exc_info=True)
        finally:
            if conn:
                conn.close()

    def connection(self) -> sqlite3.Connection:
        """Return a new connection to the store database."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        return sqlite3.connect(str(self.path), timeout=2.0)

    def _key(self, key: str) -> Optional[str]:
        if key not in KEYS:
            logging.error(f'Unknown storage key "{key}". Expected one of {KEYS}.')
            return None
        return f'{self.prefix}{key}'

    def _read_raw(self, key: str) -> Optional[str]:
        full_key = self._key(key)
        if full_key is None:
            return None

        conn: Optional[sqlite3.Connection] = None
        try:
            conn = self.connection()
            row = conn.execute(
                f'SELECT value FROM {Table.Store.value} WHERE key = ?', (full_key,)
            ).fetchone()
        except sqlite3.Error as e:
            logging.error(f'Storage get error for "{key}": {e}')
            return None
        finally:
            if conn:
                conn.close()
        return row[0] if row else None

    def get(self, key: str) -> Any:
        """Return the parsed value stored under ``key``, or None if absent or unreadable."""
        raw = self._read_raw(key)
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            logging.error(f'Storage get error for "{key}": could not parse stored value: {e}')
            return None

    def set(self, key: str, value: Any) -> bool:
        """Serialise and store ``value`` under ``key``.

        Returns:
            True on success, False if the key is unknown, the value is not JSON
            serialisable or the write failed.
        """
        full_key = self._key(key)
        if full_key is None:
            return False

        try:
            serialized = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            logging.error(f'Storage set error for "{key}": {e}')
            return False

        conn: Optional[sqlite3.Connection] = None
        try:
            conn = self.connection()
            conn.execute(
                f'INSERT OR REPLACE INTO {Table.Store.value} (key, value) VALUES (?, ?)',
                (full_key, serialized)
            )
            conn.commit()
        except sqlite3.Error as e:
            logging.error(f'Storage set error for "{key}": {e}')
            return False
        finally:
            if conn:
                conn.close()
        return True

    def set_all(self, data: Dict[str, Any]) -> Dict[str, bool]:
        """Store every reserved key present in ``data``.

        Returns:
            A mapping of key to the result of :meth:`set`.
        """
        return {key: self.set(key, data[key]) for key in KEYS if data.get(key) is not None}

    def get_all(self) -> Dict[str, Any]:
        """Return every reserved key that holds readable data."""
        data = {}
        for key in KEYS:
            value = self.get(key)
            if value is not None:
                data[key] = value
        return data

    def clear(self) -> bool:
        """Remove every reserved key from the store."""
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = self.connection()
            conn.executemany(
                f'DELETE FROM {Table.Store.value} WHERE key = ?',
                [(f'{self.prefix}{key}',) for key in KEYS]
            )
            conn.commit()
        except sqlite3.Error as e:
            logging.error(f'Storage clear error: {e}')
            return False
        finally:
            if conn:
                conn.close()
        logging.debug('Local store cleared.')
        return True

    def export_data(self, version: str = DEFAULT_EXPORT_VERSION) -> Dict[str, Any]:
        """Return the stored snapshot in export format."""
        return {
            'data': self.get_all(),
            'timestamp': now_str(),
            'version': version,
        }

    def import_data(self, payload: Any) -> Dict[str, Any]:
        """Store every reserved key of an exported snapshot.

        Returns:
            ``{'success': True, 'results': {...}, 'imported': n}`` or
            ``{'success': False, 'error': message}`` when the payload carries no data.
        """
        if not isinstance(payload, dict) or not payload.get('data'):
            logging.error('Import error: invalid import data format.')
            return {'success': False, 'error': 'Invalid import data format'}

        data = payload['data']
        results = {key: self.set(key, data[key]) for key in KEYS if data.get(key) is not None}
        return {'success': True, 'results': results, 'imported': len(results)}

    def storage_info(self) -> Dict[str, Any]:
        """Report the byte size of each stored key against the estimated quota."""
        item_sizes: Dict[str, int] = {}
        for key in KEYS:
            raw = self._read_raw(key)
            if raw:
                item_sizes[key] = len(raw.encode('utf-8'))
        total_size = sum(item_sizes.values())

        return {
            'totalSize': total_size,
            'itemSizes': item_sizes,
            'usagePercentage': min(total_size / ESTIMATED_LIMIT * 100, 100),
            'estimatedLimit': ESTIMATED_LIMIT,
        }

    def cleanup(self, days_to_keep: int = 90) -> Dict[str, int]:
        """Drop transactions older than ``days_to_keep`` days.

        A record's age is taken from ``created_at``, falling back to ``date``.
        Records without a parsable date are kept.

        Returns:
            The number of removed records per collection.
        """
        cutoff = datetime.datetime.now() - datetime.timedelta(days=days_to_keep)
        removed: Dict[str, int] = {}

        for kind in TRANSACTIONS:
            records = self.get(kind.value)
            if not isinstance(records, list):
                continue

            kept = [r for r in records if not _is_older_than(r, cutoff)]
            if len(kept) != len(records):
                self.set(kind.value, kept)
                removed[kind.value] = len(records) - len(kept)
                logging.info(f'Cleaned up {removed[kind.value]} old {kind.value} records.')
        return removed


def _is_older_than(record: Dict[str, Any], cutoff: datetime.datetime) -> bool:
    value = record.get('created_at') or record.get('date')
    if not value:
        return False
    try:
        dt = date_parser.parse(str(value))
    except (ValueError, OverflowError):
        return False
    if dt.tzinfo is not None:
        dt = dt.astimezone().replace(tzinfo=None)
    return dt < cutoff
