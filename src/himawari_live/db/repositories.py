from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, Mapping

from sqlalchemy import select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.orm import Session

from .orm import Setting


class SettingsRepository:
    """Key/value preference rows, values stored as JSON text."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def load(self) -> Dict[str, Any]:
        rows = self.session.scalars(select(Setting).order_by(Setting.key)).all()
        values: Dict[str, Any] = {}
        for row in rows:
            try:
                values[row.key] = json.loads(row.value_json)
            except json.JSONDecodeError:
                # unreadable rows fall back to defaults
                continue
        return values

    def save_many(self, values: Mapping[str, Any]) -> int:
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        rows = [
            {"key": key, "value_json": json.dumps(value), "updated_at": now}
            for key, value in values.items()
        ]
        if not rows:
            return 0

        stmt = insert(Setting).values(rows)
        stmt = stmt.on_conflict_do_update(
            index_elements=[Setting.key],
            set_={
                "value_json": stmt.excluded.value_json,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        self.session.execute(stmt)
        return len(rows)
