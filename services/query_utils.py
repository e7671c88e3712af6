"""
Query helpers shared by the entity services.

Pagination, text search, date-range filtering and goal percentages are the
same for every entity, so they live here.
"""

from datetime import date, datetime, time, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Query, Session


def paginate(query: Query, page: int, page_size: int) -> Tuple[List, int]:
    """
    Apply offset pagination to a query.

    Args:
        query: Ordered query
        page: 1-based page number
        page_size: Items per page

    Returns:
        (items for the page, total number of matching rows)
    """
    total = query.order_by(None).count()
    items = query.offset((page - 1) * page_size).limit(page_size).all()
    return items, total


def search_clause(search: Optional[str], *columns):
    """Case-insensitive substring match over any of `columns`, or None."""
    if not search or not search.strip():
        return None
    escaped = search.strip().replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')
    pattern = f"%{escaped}%"
    return or_(*[column.ilike(pattern, escape='\\') for column in columns])


def apply_date_range(query: Query, column, date_from: Optional[date], date_to: Optional[date]) -> Query:
    """Filter `column` to the inclusive day range [date_from, date_to]."""
    if date_from:
        query = query.filter(column >= datetime.combine(date_from, time.min))
    if date_to:
        query = query.filter(column < datetime.combine(date_to + timedelta(days=1), time.min))
    return query


def round_half_up(value: float) -> int:
    return int(Decimal(str(value)).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def goal_percentage(current: int, meta: int) -> int:
    """Percentage of `meta` reached by `current`, 0 when there is no goal."""
    if not meta:
        return 0
    return round_half_up(current / meta * 100)


def average(total: int, count: int) -> float:
    return round(total / count, 2) if count else 0.0


def count_by(session: Session, key_column, ids: Iterable[int], *joins) -> Dict[int, int]:
    """
    Count rows grouped by `key_column` restricted to `ids`.

    Returns a dict {id: count}; ids with no rows are absent.
    """
    ids = list(ids)
    if not ids:
        return {}
    query = session.query(key_column, func.count())
    for target, onclause in joins:
        query = query.join(target, onclause)
    rows = query.filter(key_column.in_(ids)).group_by(key_column).all()
    return {key: count for key, count in rows}


def label_counts(rows, default_label: str) -> Dict[str, int]:
    """Turn (label, count) rows into a dict, naming empty labels `default_label`."""
    result: Dict[str, int] = {}
    for label, count in rows:
        key = label if label else default_label
        result[key] = result.get(key, 0) + count
    return result
