"""One-time upgrade of legacy string categories to category records.

Older settings stored ``categories`` as a plain list of names and transactions
referenced categories by name. :func:`parse_categories` decides once which of the
two layouts a settings record uses; :func:`migrate_legacy_categories` upgrades a
legacy layout in place and rewrites every transaction reference.
"""
import datetime
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from .state import TRANSACTIONS, AppState

LEGACY_CATEGORY_TYPE = 'spending'
LEGACY_CATEGORY_LIMIT = 1_000_000


@dataclass(frozen=True)
class LegacyCategoryList:
    """Categories stored in the legacy layout.

    ``entries`` keeps the original order. Plain strings are category names;
    records already in the upgraded layout are carried through unchanged.
    """
    entries: Tuple[Any, ...]


@dataclass(frozen=True)
class CategoryList:
    """Categories already stored as ``{id, name, type, limit}`` records."""
    categories: Tuple[Dict[str, Any], ...]


Categories = Union[LegacyCategoryList, CategoryList]


def parse_categories(raw: Any) -> Categories:
    """Classify a raw ``categories`` value.

    Any plain string entry marks the list as legacy. Missing or malformed
    values are treated as an empty upgraded list.
    """
    if not isinstance(raw, list):
        if raw is not None:
            logging.warning(f'Ignoring categories of type {type(raw).__name__}; expected a list.')
        return CategoryList(())
    if any(isinstance(entry, str) for entry in raw):
        return LegacyCategoryList(tuple(raw))
    return CategoryList(tuple(entry for entry in raw if isinstance(entry, dict)))


def _new_category(category_id: str, name: str) -> Dict[str, Any]:
    return {
        'id': category_id,
        'name': name,
        'type': LEGACY_CATEGORY_TYPE,
        'limit': LEGACY_CATEGORY_LIMIT,
    }


def _now_ms() -> int:
    return int(datetime.datetime.now(datetime.timezone.utc).timestamp() * 1000)


def migrate_legacy_categories(state: AppState, now_ms: Optional[int] = None) -> bool:
    """Upgrade legacy string categories in ``state`` in place.

    Every category name becomes a record with id ``cat_<ms>_<index>``. Finance and
    business transactions whose ``category`` is a string are rewritten to the new
    id. A name used by a transaction but absent from the category list gets one
    fallback record, id ``cat_fallback_<ms>_<n>``, shared by all its transactions.

    Args:
        state: The application state to upgrade.
        now_ms: Millisecond timestamp used in the minted ids. Defaults to now.

    Returns:
        True if anything was changed. Always False for upgraded settings.
    """
    categories = parse_categories(state.settings.get('categories'))
    if isinstance(categories, CategoryList):
        return False

    logging.info(f'Migrating {len(categories.entries)} legacy categories to category records.')
    now_ms = _now_ms() if now_ms is None else now_ms

    lookup: Dict[str, str] = {}
    known_ids = set()
    upgraded: List[Dict[str, Any]] = []
    for index, entry in enumerate(categories.entries):
        if not isinstance(entry, str):
            if isinstance(entry, dict):
                known_ids.add(entry.get('id'))
                upgraded.append(entry)
            continue
        if entry in lookup:
            continue
        category_id = f'cat_{now_ms}_{index}'
        lookup[entry] = category_id
        upgraded.append(_new_category(category_id, entry))

    fallback_count = 0
    rewritten = 0
    for kind in TRANSACTIONS:
        for transaction in state.collection(kind):
            name = transaction.get('category')
            if not name or not isinstance(name, str) or name in known_ids:
                continue
            if name not in lookup:
                category_id = f'cat_fallback_{now_ms}_{fallback_count}'
                fallback_count += 1
                lookup[name] = category_id
                upgraded.append(_new_category(category_id, name))
                logging.debug(f'Created fallback category "{name}" ({category_id}).')
            transaction['category'] = lookup[name]
            rewritten += 1

    state.settings['categories'] = upgraded
    logging.info(
        f'Category migration completed: {len(upgraded)} categories, '
        f'{rewritten} transactions rewritten, {fallback_count} fallback categories.'
    )
    return True
