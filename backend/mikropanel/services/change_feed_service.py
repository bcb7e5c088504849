# Overview: Service-layer operations for the change feed; append and read.

from __future__ import annotations

from typing import Any, Optional

from ..extensions import db
from ..models import ChangeEvent
"""
Change feed invariants:

- Append-only: events are never updated or deleted by the application.
- Events are written inside the same DB transaction as the change they record,
  so a rolled-back change never shows up in the feed.
- Readers page with an exclusive cursor: id > cursor, ascending.
"""

MAX_PAGE_SIZE = 500


def record_change(
    *,
    entity_type: str,
    entity_id: Any,
    action: str,
    actor: str | None = None,
    payload: Optional[dict] = None,
) -> ChangeEvent:
    ev = ChangeEvent(
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        actor=actor,
        payload=payload,
    )
    db.session.add(ev)
    db.session.flush()
    return ev


def list_changes(*, cursor: int = 0, limit: int = 100, entity_type: str | None = None) -> dict:
    """
    Events after cursor, oldest first.

    next_cursor is the last id returned, or the input cursor when there is
    nothing new, so clients can poll with it unconditionally.
    """
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    q = db.session.query(ChangeEvent).filter(ChangeEvent.id > cursor)
    if entity_type:
        q = q.filter(ChangeEvent.entity_type == entity_type)
    rows = q.order_by(ChangeEvent.id.asc()).limit(limit).all()
    next_cursor = rows[-1].id if rows else cursor
    return {
        "items": [r.to_dict() for r in rows],
        "next_cursor": next_cursor,
        "limit": limit,
    }


def latest_cursor() -> int:
    return db.session.query(db.func.max(ChangeEvent.id)).scalar() or 0
