"""Application state container and the single entry point for changing it.

:class:`AppState` holds the five record collections and the settings record.
Every user-driven mutation goes through :func:`apply_change`, which validates the
change, applies it to the state in place and returns the list of
:class:`PendingOperation` objects the remote store needs to see. Nothing in this
module performs I/O: persisting and syncing is left to the controller.
"""
import copy
import datetime
import enum
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..status import status


class Collection(enum.StrEnum):
    """Logical record sets, doubling as the reserved local store keys."""
    Daily = 'daily'
    Weekly = 'weekly'
    Monthly = 'monthly'
    Finance = 'finance'
    Business = 'business'
    Settings = 'settings'


CHECKLISTS = (Collection.Daily, Collection.Weekly, Collection.Monthly)
TRANSACTIONS = (Collection.Finance, Collection.Business)
RECORD_COLLECTIONS = CHECKLISTS + TRANSACTIONS

#: Name of the completion map field for each checklist collection
PERIOD_FIELDS: Dict[Collection, str] = {
    Collection.Daily: 'days',
    Collection.Weekly: 'weeks',
    Collection.Monthly: 'months',
}

PERIOD_KEY_PATTERNS: Dict[Collection, re.Pattern] = {
    Collection.Daily: re.compile(r'^\d{4}-\d{2}-\d{2}$'),
    Collection.Weekly: re.compile(r'^\d{4}-\d{2}-W\d$'),
    Collection.Monthly: re.compile(r'^\d{4}-\d{2}$'),
}

REQUIRED_FIELDS: Dict[Collection, tuple] = {
    Collection.Daily: ('name',),
    Collection.Weekly: ('name',),
    Collection.Monthly: ('name',),
    Collection.Finance: ('date', 'category', 'description'),
    Collection.Business: ('date', 'type'),
}

#: Fields sent to the remote store when a record is edited
EDITABLE_FIELDS: Dict[Collection, tuple] = {
    Collection.Daily: ('name',),
    Collection.Weekly: ('name',),
    Collection.Monthly: ('name',),
    Collection.Finance: ('date', 'category', 'description', 'income', 'outcome'),
    Collection.Business: ('date', 'type', 'income', 'outcome', 'note'),
}

CATEGORY_TYPES = ('spending', 'income')
MONTH_PATTERN = re.compile(r'^\d{4}-\d{2}$')

DEFAULT_MONTHLY_BUDGET = 5_000_000
DEFAULT_CATEGORIES: List[Dict[str, Any]] = [
    {'id': 1, 'name': 'Food', 'type': 'spending', 'limit': 1_500_000},
    {'id': 2, 'name': 'Transport', 'type': 'spending', 'limit': 800_000},
    {'id': 3, 'name': 'Entertainment', 'type': 'spending', 'limit': 500_000},
    {'id': 4, 'name': 'Shopping', 'type': 'spending', 'limit': 700_000},
    {'id': 5, 'name': 'Bills', 'type': 'spending', 'limit': 1_000_000},
    {'id': 6, 'name': 'Salary', 'type': 'income', 'limit': 8_000_000},
    {'id': 7, 'name': 'Bonus', 'type': 'income', 'limit': 2_000_000},
]


class Action(enum.StrEnum):
    """Kinds of change accepted by :func:`apply_change`."""
    Add = 'add'
    Update = 'update'
    Delete = 'delete'
    SetPeriod = 'set_period'
    AddCategory = 'add_category'
    UpdateCategory = 'update_category'
    RemoveCategory = 'remove_category'
    SaveSettings = 'save_settings'


class RemoteAction(enum.StrEnum):
    """Remote operations produced by a change."""
    Create = 'create'
    Update = 'update'
    Delete = 'delete'
    Push = 'push'


@dataclass
class Change:
    """One user-driven change to the application state."""
    action: Action
    collection: Collection
    record_id: Any = None
    fields: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PendingOperation:
    """A remote operation waiting to be sent."""
    action: RemoteAction
    collection: Collection
    record_id: Any = None
    payload: Any = None


def now_str() -> str:
    """Return the current UTC date and time as an ISO 8601 string."""
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


def current_month() -> str:
    """Return the current month as ``YYYY-MM``."""
    return datetime.date.today().strftime('%Y-%m')


def default_settings() -> Dict[str, Any]:
    return {
        'activeMonth': current_month(),
        'monthlyBudget': DEFAULT_MONTHLY_BUDGET,
        'categories': copy.deepcopy(DEFAULT_CATEGORIES),
        'storageMode': 'online',
    }


@dataclass
class AppState:
    """The in-memory aggregate of every collection plus settings."""
    daily: List[Dict[str, Any]] = field(default_factory=list)
    weekly: List[Dict[str, Any]] = field(default_factory=list)
    monthly: List[Dict[str, Any]] = field(default_factory=list)
    finance: List[Dict[str, Any]] = field(default_factory=list)
    business: List[Dict[str, Any]] = field(default_factory=list)
    settings: Dict[str, Any] = field(default_factory=default_settings)

    def collection(self, name: str) -> Any:
        """Return the live collection (or settings dict) for ``name``."""
        return getattr(self, Collection(name).value)

    def to_dict(self) -> Dict[str, Any]:
        """Return a deep copy of the state in snapshot layout."""
        return {c.value: copy.deepcopy(getattr(self, c.value)) for c in Collection}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'AppState':
        """Build a state from snapshot layout, ignoring unknown keys and missing collections."""
        data = data or {}
        state = cls()
        for c in RECORD_COLLECTIONS:
            value = data.get(c.value)
            if isinstance(value, list):
                setattr(state, c.value, copy.deepcopy(value))
            elif value is not None:
                logging.warning(f'Ignoring "{c.value}": expected a list, got {type(value).__name__}.')
        value = data.get(Collection.Settings.value)
        if isinstance(value, dict) and value:
            state.settings = {**state.settings, **copy.deepcopy(value)}
        return state


def next_id(records: List[Dict[str, Any]]) -> int:
    """Mint a new record id: one more than the largest integer id in ``records``."""
    ids = [r['id'] for r in records if isinstance(r.get('id'), int) and not isinstance(r.get('id'), bool)]
    return max(ids, default=0) + 1


def find_record(records: List[Dict[str, Any]], record_id: Any) -> Optional[Dict[str, Any]]:
    return next((r for r in records if r.get('id') == record_id), None)


def parse_amount(value: Any, field_name: str) -> int:
    """Coerce a form amount to a non-negative integer; blank or unparsable values become 0.

    Raises:
        status.ValidationFailedException: If the amount is negative.
    """
    if value is None or value == '':
        return 0
    try:
        amount = int(float(value))
    except (TypeError, ValueError, OverflowError):
        logging.debug(f'Failed to parse "{value}" as an amount for "{field_name}". Using 0.')
        return 0
    if amount < 0:
        raise status.ValidationFailedException(f'"{field_name}" must not be negative, got {amount}.')
    return amount


def _clean_text(value: Any) -> str:
    return str(value).strip() if value is not None else ''


def _verify_required(collection: Collection, fields: Dict[str, Any]) -> None:
    missing = [k for k in REQUIRED_FIELDS[collection] if not _clean_text(fields.get(k))]
    if missing:
        raise status.ValidationFailedException(f'Missing required field(s) for {collection.value}: {missing}.')


def _record_fields(collection: Collection, fields: Dict[str, Any]) -> Dict[str, Any]:
    """Normalise the editable fields of a record, raising on invalid input."""
    _verify_required(collection, fields)
    if collection in CHECKLISTS:
        return {'name': _clean_text(fields['name'])}

    values: Dict[str, Any] = {
        'date': _clean_text(fields['date']),
        'income': parse_amount(fields.get('income'), 'income'),
        'outcome': parse_amount(fields.get('outcome'), 'outcome'),
    }
    if collection == Collection.Finance:
        category = fields['category']
        values['category'] = category if isinstance(category, int) else _clean_text(category)
        values['description'] = _clean_text(fields['description'])
    else:
        values['type'] = _clean_text(fields['type'])
        values['note'] = _clean_text(fields.get('note'))
    return values


def _add_record(state: AppState, change: Change) -> List[PendingOperation]:
    records = state.collection(change.collection)
    values = _record_fields(change.collection, change.fields)

    timestamp = now_str()
    record: Dict[str, Any] = {'id': next_id(records)}
    record.update(values)
    if change.collection in CHECKLISTS:
        record[PERIOD_FIELDS[change.collection]] = {}
    record['created_at'] = timestamp
    record['updated_at'] = timestamp

    records.append(record)
    logging.debug(f'Added {change.collection.value} record {record["id"]}.')
    return [PendingOperation(RemoteAction.Create, change.collection, record['id'], copy.deepcopy(record))]


def _update_record(state: AppState, change: Change) -> List[PendingOperation]:
    records = state.collection(change.collection)
    values = _record_fields(change.collection, change.fields)

    record = find_record(records, change.record_id)
    if record is None:
        logging.warning(f'No {change.collection.value} record with id {change.record_id}; update ignored.')
        return []

    record.update(values)
    record['updated_at'] = now_str()
    updates = {k: record[k] for k in EDITABLE_FIELDS[change.collection]}
    return [PendingOperation(RemoteAction.Update, change.collection, change.record_id, updates)]


def _delete_record(state: AppState, change: Change) -> List[PendingOperation]:
    records = state.collection(change.collection)
    record = find_record(records, change.record_id)
    if record is None:
        logging.warning(f'No {change.collection.value} record with id {change.record_id}; delete ignored.')
        return []

    records.remove(record)
    logging.debug(f'Deleted {change.collection.value} record {change.record_id}.')
    return [PendingOperation(RemoteAction.Delete, change.collection, change.record_id)]


def _set_period(state: AppState, change: Change) -> List[PendingOperation]:
    if change.collection not in CHECKLISTS:
        raise status.ValidationFailedException(f'"{change.collection.value}" has no completion periods.')

    key = _clean_text(change.fields.get('key'))
    if not PERIOD_KEY_PATTERNS[change.collection].match(key):
        raise status.ValidationFailedException(f'Invalid {change.collection.value} period key "{key}".')

    record = find_record(state.collection(change.collection), change.record_id)
    if record is None:
        logging.warning(f'No {change.collection.value} record with id {change.record_id}; period change ignored.')
        return []

    period_field = PERIOD_FIELDS[change.collection]
    periods = record.setdefault(period_field, {})
    if change.fields.get('checked'):
        periods[key] = True
    else:
        periods.pop(key, None)
    record['updated_at'] = now_str()

    return [PendingOperation(
        RemoteAction.Update, change.collection, change.record_id, {period_field: dict(periods)}
    )]


def _category_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    name = _clean_text(fields.get('name'))
    category_type = _clean_text(fields.get('type'))
    if not name or not category_type:
        raise status.ValidationFailedException('Category name and type are required.')
    if category_type not in CATEGORY_TYPES:
        raise status.ValidationFailedException(f'Category type must be one of {CATEGORY_TYPES}, got "{category_type}".')
    return {'name': name, 'type': category_type, 'limit': parse_amount(fields.get('limit'), 'limit')}


def _verify_unique_category(categories: List[Dict[str, Any]], values: Dict[str, Any], exclude_id: Any = None) -> None:
    for category in categories:
        if exclude_id is not None and category.get('id') == exclude_id:
            continue
        if (str(category.get('name', '')).lower() == values['name'].lower()
                and category.get('type') == values['type']):
            raise status.ValidationFailedException(
                f'A {values["type"]} category named "{values["name"]}" already exists.'
            )


def _push() -> List[PendingOperation]:
    return [PendingOperation(RemoteAction.Push, Collection.Settings)]


def _add_category(state: AppState, change: Change) -> List[PendingOperation]:
    categories = state.settings.setdefault('categories', [])
    values = _category_fields(change.fields)
    _verify_unique_category(categories, values)

    category = {'id': next_id(categories)}
    category.update(values)
    categories.append(category)
    return _push()


def _update_category(state: AppState, change: Change) -> List[PendingOperation]:
    categories = state.settings.setdefault('categories', [])
    values = _category_fields(change.fields)
    _verify_unique_category(categories, values, exclude_id=change.record_id)

    category = find_record(categories, change.record_id)
    if category is None:
        logging.warning(f'No category with id {change.record_id}; update ignored.')
        return []
    category.update(values)
    return _push()


def _remove_category(state: AppState, change: Change) -> List[PendingOperation]:
    categories = state.settings.setdefault('categories', [])
    category = find_record(categories, change.record_id)
    if category is None:
        logging.warning(f'No category with id {change.record_id}; remove ignored.')
        return []
    categories.remove(category)
    return _push()


def _save_settings(state: AppState, change: Change) -> List[PendingOperation]:
    values: Dict[str, Any] = {'storageMode': 'online'}
    if 'activeMonth' in change.fields:
        month = _clean_text(change.fields['activeMonth'])
        if not MONTH_PATTERN.match(month):
            raise status.ValidationFailedException(f'Active month must be YYYY-MM, got "{month}".')
        values['activeMonth'] = month
    if 'monthlyBudget' in change.fields:
        values['monthlyBudget'] = parse_amount(change.fields['monthlyBudget'], 'monthlyBudget')

    state.settings.update(values)
    return _push()


_HANDLERS = {
    Action.Add: _add_record,
    Action.Update: _update_record,
    Action.Delete: _delete_record,
    Action.SetPeriod: _set_period,
    Action.AddCategory: _add_category,
    Action.UpdateCategory: _update_category,
    Action.RemoveCategory: _remove_category,
    Action.SaveSettings: _save_settings,
}

_SETTINGS_ACTIONS = (Action.AddCategory, Action.UpdateCategory, Action.RemoveCategory, Action.SaveSettings)


def apply_change(state: AppState, change: Change) -> List[PendingOperation]:
    """Validate and apply ``change`` to ``state`` in place.

    Validation happens before anything is written, so a rejected change leaves the
    state untouched.

    Args:
        state: The state to mutate.
        change: The change to apply.

    Returns:
        The remote operations required to mirror the change. Empty when the change
        targeted a record that does not exist.

    Raises:
        status.ValidationFailedException: If required fields are missing or invalid.
    """
    action = Action(change.action)
    collection = Collection(change.collection)
    if (action in _SETTINGS_ACTIONS) != (collection == Collection.Settings):
        raise status.ValidationFailedException(f'Action "{action}" cannot target "{collection}".')

    change = Change(action, collection, change.record_id, change.fields)
    logging.debug(f'Applying change: {action.value} {collection.value} id={change.record_id}')
    return _HANDLERS[action](state, change)
