"""Starter records used for collections that have no data locally or remotely."""
import datetime
from typing import Any, Dict, List, Optional

from ..core.state import Collection, PERIOD_FIELDS, RECORD_COLLECTIONS, now_str

DAILY_ITEMS = (
    'Morning exercise',
    'Drink 8 glasses of water',
    'Read for 30 minutes',
    'Meditate for 10 minutes',
    'Write a journal entry',
)
WEEKLY_ITEMS = (
    'Grocery shopping',
    'Clean the house',
    'Back up the computer',
)
MONTHLY_ITEMS = (
    'Pay monthly bills',
    'Review finances',
    'Routine health check',
)

# (day, category id, description, income, outcome)
FINANCE_ROWS = (
    (1, 6, 'Monthly salary', 8_000_000, 0),
    (3, 1, 'Groceries', 0, 750_000),
    (5, 2, 'Fuel', 0, 150_000),
    (7, 3, 'Cinema', 0, 100_000),
    (10, 5, 'Electricity and water', 0, 300_000),
)

# (day, type, income, outcome, note)
BUSINESS_ROWS = (
    (2, 'Design services', 2_500_000, 0, 'Logo for client A'),
    (4, 'Design services', 0, 200_000, 'Design software licence'),
    (8, 'Consulting', 1_500_000, 0, 'IT consulting, 3 hours'),
)


def _checklist(kind: Collection, names, timestamp: str) -> List[Dict[str, Any]]:
    return [
        {
            'id': i,
            'name': name,
            PERIOD_FIELDS[kind]: {},
            'created_at': timestamp,
            'updated_at': timestamp,
        }
        for i, name in enumerate(names, start=1)
    ]


def get_sample_data(kind: str, today: Optional[datetime.date] = None) -> List[Dict[str, Any]]:
    """Return a fresh list of sample records for ``kind``.

    Transaction dates fall in the month of ``today``. ``settings`` yields an empty list.
    """
    today = today or datetime.date.today()
    month = today.strftime('%Y-%m')
    timestamp = now_str()

    kind = Collection(kind)
    if kind == Collection.Daily:
        return _checklist(kind, DAILY_ITEMS, timestamp)
    if kind == Collection.Weekly:
        return _checklist(kind, WEEKLY_ITEMS, timestamp)
    if kind == Collection.Monthly:
        return _checklist(kind, MONTHLY_ITEMS, timestamp)
    if kind == Collection.Finance:
        return [
            {
                'id': i,
                'date': f'{month}-{day:02d}',
                'category': category,
                'description': description,
                'income': income,
                'outcome': outcome,
                'created_at': timestamp,
                'updated_at': timestamp,
            }
            for i, (day, category, description, income, outcome) in enumerate(FINANCE_ROWS, start=1)
        ]
    if kind == Collection.Business:
        return [
            {
                'id': i,
                'date': f'{month}-{day:02d}',
                'type': business_type,
                'income': income,
                'outcome': outcome,
                'note': note,
                'created_at': timestamp,
                'updated_at': timestamp,
            }
            for i, (day, business_type, income, outcome, note) in enumerate(BUSINESS_ROWS, start=1)
        ]
    return []


def get_sample_snapshot(today: Optional[datetime.date] = None) -> Dict[str, Any]:
    """Return sample records for every record collection."""
    return {
        kind.value: get_sample_data(kind, today=today) for kind in RECORD_COLLECTIONS
    }
