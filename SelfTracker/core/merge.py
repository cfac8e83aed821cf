"""Merge policies for reconciling the local cache with the remote store.

All functions are pure: inputs are deep-copied and never mutated.

Policy per collection kind:
    - Checklists (daily, weekly, monthly): remote wins for scalar fields, the
      completion maps of both sides are unioned with remote winning on key
      collisions, local-only records are kept.
    - Transactions (finance, business): records are deduplicated by ``id`` with
      remote first, then the unseen local records, stably sorted by ``date``
      descending.
    - Settings: remote overwrites local except for the local-only connection
      fields.
"""
import copy
import datetime
import logging
from typing import Any, Dict, List, Optional

from dateutil import parser as date_parser

from .state import CHECKLISTS, PERIOD_FIELDS, RECORD_COLLECTIONS, TRANSACTIONS, Collection

#: Settings fields that only ever live on the local device
LOCAL_ONLY_SETTINGS_KEYS = ('apiToken', 'apiBase')


def _parse_date(value: Any) -> datetime.datetime:
    """Parse a record date for sorting. Unparsable or missing dates sort last."""
    if not value:
        return datetime.datetime.min
    if isinstance(value, datetime.datetime):
        dt = value
    else:
        try:
            dt = date_parser.isoparse(str(value))
        except (ValueError, OverflowError):
            try:
                dt = date_parser.parse(str(value))
            except (ValueError, OverflowError):
                logging.debug(f'Could not parse date "{value}"; sorting it last.')
                return datetime.datetime.min
    if dt.tzinfo is not None:
        dt = dt.astimezone(datetime.timezone.utc).replace(tzinfo=None)
    return dt


def _dedupe(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Drop records whose id was already seen, keeping the first occurrence."""
    seen = set()
    result = []
    for record in records:
        record_id = record.get('id')
        if record_id in seen:
            logging.debug(f'Dropping duplicate record id {record_id!r}.')
            continue
        seen.add(record_id)
        result.append(record)
    return result


def _warn_if_stale(local: Dict[str, Any], remote: Dict[str, Any], kind: str) -> None:
    local_ts = local.get('updated_at')
    remote_ts = remote.get('updated_at')
    if not local_ts or not remote_ts:
        return
    if _parse_date(remote_ts) < _parse_date(local_ts):
        logging.warning(
            f'{kind} record {remote.get("id")!r}: remote copy ({remote_ts}) is older than the '
            f'local copy ({local_ts}). Keeping the remote copy.'
        )


def _merge_checklists(local: List[Dict[str, Any]], remote: List[Dict[str, Any]], kind: Collection) -> List[Dict[str, Any]]:
    period_field = PERIOD_FIELDS[kind]
    local_by_id = {}
    for record in local:
        local_by_id.setdefault(record.get('id'), record)

    result = []
    remote_ids = set()
    for r in remote:
        remote_ids.add(r.get('id'))
        l = local_by_id.get(r.get('id'))
        if l is None:
            result.append(r)
            continue

        _warn_if_stale(l, r, kind.value)
        merged = dict(r)
        if period_field in l or period_field in r:
            merged[period_field] = {**(l.get(period_field) or {}), **(r.get(period_field) or {})}
        result.append(merged)

    result.extend(l for l in local if l.get('id') not in remote_ids)
    return result


def _merge_transactions(local: List[Dict[str, Any]], remote: List[Dict[str, Any]], kind: Collection) -> List[Dict[str, Any]]:
    local_by_id = {}
    for record in local:
        local_by_id.setdefault(record.get('id'), record)
    for r in remote:
        l = local_by_id.get(r.get('id'))
        if l is not None:
            _warn_if_stale(l, r, kind.value)

    result = _dedupe(remote + local)
    # sorted() is stable, so equal dates keep their remote-then-local order
    return sorted(result, key=lambda r: _parse_date(r.get('date')), reverse=True)


def merge_collection(local: Optional[List[Dict[str, Any]]], remote: Optional[List[Dict[str, Any]]], kind: str) -> List[Dict[str, Any]]:
    """Merge the local and remote copies of one collection.

    When either side is empty the other side is returned as is.

    Args:
        local: The locally cached records.
        remote: The records pulled from the remote store.
        kind: The collection name, one of the checklist or transaction collections.

    Returns:
        A new list. The inputs are left untouched.

    Raises:
        ValueError: If ``kind`` is not a record collection.
    """
    kind = Collection(kind)
    if kind not in RECORD_COLLECTIONS:
        raise ValueError(f'"{kind}" is not a record collection.')

    local = _dedupe(copy.deepcopy(local or []))
    remote = _dedupe(copy.deepcopy(remote or []))

    if not local or not remote:
        return remote or local

    if kind in CHECKLISTS:
        result = _merge_checklists(local, remote, kind)
    else:
        result = _merge_transactions(local, remote, kind)

    logging.debug(
        f'Merged {kind.value}: {len(local)} local + {len(remote)} remote -> {len(result)} records.'
    )
    return result


def merge_settings(local: Optional[Dict[str, Any]], remote: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Merge two settings records, remote winning except for local-only connection fields."""
    local = copy.deepcopy(local or {})
    remote = copy.deepcopy(remote or {})

    result = {**local, **remote}
    for key in LOCAL_ONLY_SETTINGS_KEYS:
        if key in local or key in remote:
            result[key] = remote.get(key) or local.get(key) or ''
    return result


def merge_snapshot(local: Optional[Dict[str, Any]], remote: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Merge every collection and the settings of two snapshots.

    Collections missing from both sides are left out of the result.
    """
    local = local or {}
    remote = remote or {}

    result: Dict[str, Any] = {}
    for kind in CHECKLISTS + TRANSACTIONS:
        if local.get(kind.value) is None and remote.get(kind.value) is None:
            continue
        result[kind.value] = merge_collection(local.get(kind.value), remote.get(kind.value), kind)

    local_settings = local.get(Collection.Settings.value)
    remote_settings = remote.get(Collection.Settings.value)
    if local_settings is not None or remote_settings is not None:
        result[Collection.Settings.value] = merge_settings(local_settings, remote_settings)
    return result
