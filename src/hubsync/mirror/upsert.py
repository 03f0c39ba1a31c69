"""Idempotent batch persistence for mirror rows."""

import logging
from typing import Any, Iterable, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from hubsync.common.models import generate_uuid
from hubsync.mirror.models import NATURAL_KEY

logger = logging.getLogger(__name__)

BATCH_SIZE = 50


def chunked(rows: Sequence[dict[str, Any]], size: int) -> Iterable[Sequence[dict[str, Any]]]:
    for start in range(0, len(rows), size):
        yield rows[start:start + size]


def _insert_for(session: AsyncSession, model):
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise NotImplementedError(f"Upsert is not supported on dialect '{dialect}'")


def build_upsert(session: AsyncSession, model, rows: Sequence[dict[str, Any]],
                 conflict_cols: Sequence[str] = NATURAL_KEY):
    """INSERT ... ON CONFLICT (natural key) DO UPDATE every other column."""
    rows = [row if "id" in row else {"id": generate_uuid(), **row} for row in rows]
    stmt = _insert_for(session, model).values(rows)
    # Surrogate id and natural key keep their original values.
    skip = set(conflict_cols) | {"id"}
    columns = {key for row in rows for key in row} - skip
    return stmt.on_conflict_do_update(
        index_elements=list(conflict_cols),
        set_={col: stmt.excluded[col] for col in sorted(columns)},
    )


def dedupe_rows(rows: Sequence[dict[str, Any]], conflict_cols: Sequence[str] = NATURAL_KEY) -> list[dict[str, Any]]:
    """Collapse rows sharing a conflict key; the last occurrence wins.

    PostgreSQL rejects an ON CONFLICT DO UPDATE statement that touches the
    same row twice, and paginating by ``updatedAt`` can return an entity
    edited mid-fetch on two pages.
    """
    latest: dict[tuple, dict[str, Any]] = {}
    for row in rows:
        key = tuple(row.get(col) for col in conflict_cols)
        latest.pop(key, None)
        latest[key] = row
    return list(latest.values())


async def batch_upsert(
    session: AsyncSession,
    model,
    rows: Sequence[dict[str, Any]],
    conflict_cols: Sequence[str] = NATURAL_KEY,
    batch_size: int = BATCH_SIZE,
) -> int:
    """Upsert rows in fixed-size batches, committing after each one.

    Duplicate keys are collapsed first. A failing batch raises and aborts
    the remaining ones; batches already committed stay committed. Returns
    the number of rows written.
    """
    written = 0
    for batch in chunked(dedupe_rows(rows, conflict_cols), batch_size):
        try:
            await session.execute(build_upsert(session, model, batch, conflict_cols))
            await session.commit()
        except Exception:
            await session.rollback()
            logger.error(
                "Upsert into %s failed after %d rows", model.__tablename__, written
            )
            raise
        written += len(batch)
    return written


async def upsert_one(session: AsyncSession, model, row: dict[str, Any]) -> None:
    await session.execute(build_upsert(session, model, [row]))
    await session.flush()


async def delete_by_natural_key(
    session: AsyncSession, model, workspace_id: str, linear_id: str,
) -> int:
    result = await session.execute(
        delete(model).where(
            model.workspace_id == workspace_id,
            model.linear_id == linear_id,
        )
    )
    await session.flush()
    return result.rowcount or 0


async def count_rows(session: AsyncSession, model, workspace_id: str | None = None) -> int:
    query = select(func.count()).select_from(model)
    if workspace_id is not None:
        query = query.where(model.workspace_id == workspace_id)
    result = await session.execute(query)
    return result.scalar_one()
