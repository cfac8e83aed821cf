"""Summaries over the application collections.

Provides month and category filters for the transaction ledgers, income and
outcome totals, per-category budget usage and checklist completion
percentages. Percentages are whole numbers rounded half up.
"""
import calendar
import datetime
import logging
import re
from typing import Any, Dict, List, Optional

import pandas as pd

from ..core.state import AppState

DAY_KEY = re.compile(r'^\d{4}-\d{2}-\d{2}$')

WEEKS_PER_MONTH = 4
MONTHS_TRACKED = 4

USAGE_COLUMNS = ['id', 'name', 'type', 'limit', 'amount', 'remaining', 'percentage']


def percentage(done: int, total: int) -> int:
    """Return ``done / total`` as a whole percentage rounded half up, 0 when ``total`` is 0."""
    if total <= 0:
        return 0
    return (200 * done + total) // (2 * total)


def _amounts(transactions: List[Dict[str, Any]], column: str) -> pd.Series:
    values = [t.get(column) for t in transactions]
    return pd.to_numeric(pd.Series(values, dtype='object'), errors='coerce').fillna(0)


def _filter(transactions: List[Dict[str, Any]], month: Optional[str], field: str, value: Any) -> List[Dict[str, Any]]:
    """Filter by ``date`` prefix and an exact field value, newest first."""
    if not transactions:
        return []

    df = pd.DataFrame({
        'date': [str(t.get('date') or '') for t in transactions],
        field: [t.get(field) for t in transactions],
    })
    mask = pd.Series(True, index=df.index)
    if month:
        mask &= df['date'].str.startswith(month)
    if value is not None and value != '':
        mask &= df[field].apply(lambda v: v == value)

    df = df[mask].copy()
    df['sort_key'] = pd.to_datetime(df['date'], errors='coerce', format='mixed')
    df = df.sort_values(by='sort_key', ascending=False, kind='stable', na_position='last')
    return [transactions[i] for i in df.index]


def filter_finance(transactions: List[Dict[str, Any]], month: Optional[str] = None,
                   category: Any = None) -> List[Dict[str, Any]]:
    """Finance transactions whose date starts with ``month`` and whose category equals ``category``.

    Either filter is skipped when empty. The result is sorted by date, newest first.
    """
    return _filter(transactions, month, 'category', category)


def filter_business(transactions: List[Dict[str, Any]], month: Optional[str] = None,
                    business_type: Optional[str] = None) -> List[Dict[str, Any]]:
    """Business transactions whose date starts with ``month`` and whose type equals ``business_type``."""
    return _filter(transactions, month, 'type', business_type)


def summarize(transactions: List[Dict[str, Any]]) -> Dict[str, int]:
    """Total income, outcome and their balance."""
    if not transactions:
        return {'income': 0, 'outcome': 0, 'balance': 0}

    income = int(_amounts(transactions, 'income').sum())
    outcome = int(_amounts(transactions, 'outcome').sum())
    return {'income': income, 'outcome': outcome, 'balance': income - outcome}


def overview(state: AppState) -> Dict[str, int]:
    """Totals across both the finance and the business ledgers."""
    return summarize(list(state.finance) + list(state.business))


def category_usage(transactions: List[Dict[str, Any]], categories: List[Dict[str, Any]],
                   month: Optional[str] = None) -> pd.DataFrame:
    """Amount booked against each category compared with its limit.

    Spending categories count outcome, income categories count income.
    Transactions reference categories by id, or by name for legacy records.

    Returns:
        A DataFrame with the columns ``id, name, type, limit, amount, remaining, percentage``,
        one row per category in category order.
    """
    categories = [c for c in categories or [] if isinstance(c, dict)]
    if not categories:
        return pd.DataFrame(columns=USAGE_COLUMNS)

    lookup: Dict[Any, int] = {}
    for position, category in enumerate(categories):
        lookup.setdefault(category.get('id'), position)
    for position, category in enumerate(categories):
        lookup.setdefault(category.get('name'), position)

    selected = filter_finance(transactions, month=month) if month else list(transactions or [])
    df = pd.DataFrame({
        'position': [lookup.get(t.get('category')) for t in selected],
        'income': _amounts(selected, 'income'),
        'outcome': _amounts(selected, 'outcome'),
    }, columns=['position', 'income', 'outcome'])
    unmatched = int(df['position'].isna().sum())
    if unmatched:
        logging.debug(f'{unmatched} transaction(s) reference an unknown category.')
    matched = df.dropna(subset=['position']).astype({'position': int})
    totals = matched.groupby('position')[['income', 'outcome']].sum()

    rows = []
    for position, category in enumerate(categories):
        column = 'income' if category.get('type') == 'income' else 'outcome'
        amount = int(totals[column].get(position, 0)) if not totals.empty else 0
        limit = _to_int(category.get('limit'))
        rows.append({
            'id': category.get('id'),
            'name': category.get('name'),
            'type': category.get('type'),
            'limit': limit,
            'amount': amount,
            'remaining': limit - amount,
            'percentage': percentage(amount, limit),
        })
    return pd.DataFrame(rows, columns=USAGE_COLUMNS)


def _to_int(value: Any) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def _completed(items: List[Dict[str, Any]], field: str, keys: List[str]) -> int:
    done = 0
    for item in items:
        periods = item.get(field) or {}
        done += sum(1 for key in keys if periods.get(key))
    return done


def daily_progress(items: List[Dict[str, Any]], month: str) -> int:
    """Share of item-days completed in ``month`` (``YYYY-MM``)."""
    if not month or not items:
        return 0
    year, month_number = (int(p) for p in month.split('-'))
    days = calendar.monthrange(year, month_number)[1]
    keys = [f'{month}-{day:02d}' for day in range(1, days + 1)]
    return percentage(_completed(items, 'days', keys), len(items) * days)


def weekly_progress(items: List[Dict[str, Any]], month: str) -> int:
    """Share of item-weeks completed in the four weeks of ``month``."""
    if not month or not items:
        return 0
    keys = [f'{month}-W{week}' for week in range(1, WEEKS_PER_MONTH + 1)]
    return percentage(_completed(items, 'weeks', keys), len(items) * WEEKS_PER_MONTH)


def tracked_months(year: int, today: Optional[datetime.date] = None) -> List[str]:
    """The four months counted by :func:`monthly_progress`.

    For the current year these are the current month and the three after it,
    rolling into the next year. For any other year they are January to April.
    """
    today = today or datetime.date.today()
    year = int(year)
    if year != today.year:
        return [f'{year}-{m:02d}' for m in range(1, MONTHS_TRACKED + 1)]

    months = []
    for i in range(MONTHS_TRACKED):
        index = today.month - 1 + i
        months.append(f'{year + index // 12}-{index % 12 + 1:02d}')
    return months


def monthly_progress(items: List[Dict[str, Any]], year: Any, today: Optional[datetime.date] = None) -> int:
    """Share of item-months completed over :func:`tracked_months`."""
    if not year or not items:
        return 0
    keys = tracked_months(int(year), today=today)
    return percentage(_completed(items, 'months', keys), len(items) * MONTHS_TRACKED)


def has_data_for_month(items: List[Dict[str, Any]], month: str) -> bool:
    """Whether any daily item has a completion recorded in ``month``."""
    if not isinstance(items, list) or not month:
        return False
    return any(
        key.startswith(month)
        for item in items
        for key in (item.get('days') or {})
    )


def most_recent_data_month(items: List[Dict[str, Any]]) -> Optional[str]:
    """The ``YYYY-MM`` of the latest daily completion, or None."""
    if not isinstance(items, list):
        return None
    keys = [
        key
        for item in items
        for key in (item.get('days') or {})
        if DAY_KEY.match(key)
    ]
    if not keys:
        return None
    return max(keys)[:7]
