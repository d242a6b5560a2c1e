"""Append-only change log of local field edits."""

from typing import Any, List, Optional

from core.models import ChangeLogEntry


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def log_change(store, post_id: int, field: str, old_value: Any, new_value: Any) -> None:
    store.execute(
        "INSERT INTO change_log (post_id, field, old_value, new_value) VALUES (?, ?, ?, ?)",
        (post_id, field, _as_text(old_value), _as_text(new_value)),
    )


def get_change_log(
    store,
    post_id: Optional[int] = None,
    field: Optional[str] = None,
    limit: int = 100,
) -> List[ChangeLogEntry]:
    """Most recent changes first, optionally filtered by record and field."""
    clauses = []
    params: List[Any] = []
    if post_id is not None:
        clauses.append("post_id = ?")
        params.append(post_id)
    if field is not None:
        clauses.append("field = ?")
        params.append(field)

    sql = "SELECT * FROM change_log"
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    sql += " ORDER BY id DESC LIMIT ?"
    params.append(limit)

    return [
        ChangeLogEntry(
            id=row["id"],
            post_id=row["post_id"],
            field=row["field"],
            old_value=row["old_value"],
            new_value=row["new_value"],
            changed_at=row["changed_at"],
        )
        for row in store.query(sql, params)
    ]
