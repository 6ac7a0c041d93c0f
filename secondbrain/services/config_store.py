"""
Key/value settings persisted in the config table.

Values are stored wrapped as {"data": value} so scalars and lists survive
JSON columns that expect an object.
"""

from __future__ import annotations

from typing import Any

import secondbrain.config as config
from secondbrain.db import Database
from secondbrain.models import ConfigEntry, utcnow
from secondbrain.validators import validate_content_size, validate_required_text


class ConfigStore:
    def __init__(self, database: Database):
        self.database = database

    def get(self, key: str, default: Any = None) -> Any:
        validate_required_text(key, "key", config.MAX_SHORT_TEXT_LENGTH)
        with self.database.session() as db:
            row = db.query(ConfigEntry).filter(ConfigEntry.key == key).first()
            if row is None or not isinstance(row.value, dict):
                return default
            return row.value.get("data", default)

    def set(self, key: str, value: Any) -> None:
        validate_required_text(key, "key", config.MAX_SHORT_TEXT_LENGTH)
        wrapped = {"data": value}
        validate_content_size(wrapped, field="value")
        with self.database.session() as db:
            row = db.query(ConfigEntry).filter(ConfigEntry.key == key).first()
            if row is None:
                db.add(ConfigEntry(key=key, value=wrapped, updated_at=utcnow()))
            else:
                row.value = wrapped
                row.updated_at = utcnow()
            db.commit()

    def delete(self, key: str) -> bool:
        validate_required_text(key, "key", config.MAX_SHORT_TEXT_LENGTH)
        with self.database.session() as db:
            deleted = db.query(ConfigEntry).filter(ConfigEntry.key == key).delete()
            db.commit()
        return bool(deleted)
