"""Taxonomy term storage."""

from typing import Iterable, List, Optional

from core.models import Term
from local_store.db import LocalStore


def save_terms(store: LocalStore, terms: Iterable[Term]) -> int:
    """Insert or refresh terms in one transaction.

    Returns:
        Number of terms written
    """
    rows = [(t.id, t.taxonomy, t.name, t.slug, t.parent_id) for t in terms]
    with store.transaction() as conn:
        conn.executemany(
            """
            INSERT OR REPLACE INTO terms (id, taxonomy, name, slug, parent_id)
            VALUES (?, ?, ?, ?, ?)
            """,
            rows,
        )
    return len(rows)


def get_terms(store: LocalStore, taxonomy: Optional[str] = None) -> List[Term]:
    if taxonomy is None:
        rows = store.query("SELECT * FROM terms ORDER BY taxonomy, name")
    else:
        rows = store.query("SELECT * FROM terms WHERE taxonomy = ? ORDER BY name", (taxonomy,))
    return [
        Term(
            id=row["id"],
            taxonomy=row["taxonomy"],
            name=row["name"],
            slug=row["slug"],
            parent_id=row["parent_id"] or 0,
        )
        for row in rows
    ]
