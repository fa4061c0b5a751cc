import json
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from .exceptions import MergeError
from .schemas import JOIN_MERGE_TYPES, QueryResult

Row = Dict[str, Any]


def _key_value(value: Any) -> Any:
    """
    Numbers compare by value across backends: an INT column on one side
    matches a FLOAT or NUMERIC column holding the same integral value.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, Decimal):
        value = float(value)
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _row_key(row: Row) -> str:
    return json.dumps({k: _key_value(v) for k, v in row.items()}, default=str)


def _join_key(row: Row, join_keys: Sequence[str]) -> str:
    values = (_key_value(row.get(k)) for k in join_keys)
    return '|'.join('' if v is None else str(v) for v in values)


def union(tables: Sequence[List[Row]]) -> List[Row]:
    """Concatenates the tables and drops repeated rows, keeping first occurrences."""
    seen = set()
    merged = []
    for table in tables:
        for row in table:
            key = _row_key(row)
            if key in seen:
                continue
            seen.add(key)
            merged.append(row)
    return merged


def union_all(tables: Sequence[List[Row]]) -> List[Row]:
    return [row for table in tables for row in table]


def join(left: List[Row], right: List[Row], join_keys: Sequence[str], join_type: str) -> List[Row]:
    """
    Hash join: indexes `right` on the composite join key and probes it with
    each row of `left`. Matching rows are combined with right-hand values
    winning on shared columns. For a left join, unmatched left rows are kept
    once with the right table's non-key columns set to None.
    """
    right_index: Dict[str, List[Row]] = {}
    for row in right:
        right_index.setdefault(_join_key(row, join_keys), []).append(row)

    right_nulls = {}
    if right:
        right_nulls = {col: None for col in right[0] if col not in join_keys}

    result = []
    for left_row in left:
        matches = right_index.get(_join_key(left_row, join_keys))
        if matches:
            for right_row in matches:
                result.append({**left_row, **right_row})
        elif join_type == 'left_join':
            result.append({**left_row, **right_nulls})
    return result


def merge_tables(tables: Sequence[Optional[List[Row]]], merge_type: Optional[str],
                 join_keys: Optional[Sequence[str]] = None) -> QueryResult:
    """
    Combines previously produced row sets. `tables` must hold at least two
    non-empty row sets, in the order the step lists its source tables.
    """
    if len(tables) < 2:
        raise MergeError('Merge step requires at least 2 source tables')
    if any(not table for table in tables):
        raise MergeError('One or more source tables are empty or not found')

    if merge_type == 'union':
        rows = union(tables)
    elif merge_type == 'union_all':
        rows = union_all(tables)
    elif merge_type in JOIN_MERGE_TYPES:
        if not join_keys:
            raise MergeError('Join operations require join keys')
        rows = join(tables[0], tables[1], join_keys, merge_type)
    else:
        raise MergeError(f"Unknown merge type: {merge_type}")

    columns = list(rows[0].keys()) if rows else []
    return QueryResult(columns=columns, rows=rows, row_count=len(rows))
