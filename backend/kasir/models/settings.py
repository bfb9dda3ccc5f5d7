from __future__ import annotations

from ..extensions import db


class Setting(db.Model):
    """Key/value store setting. Values are JSON (bool, number, string)."""
    __tablename__ = "settings"

    key = db.Column(db.String(64), primary_key=True)
    value = db.Column(db.JSON, nullable=True)

    def to_dict(self) -> dict:
        return {"key": self.key, "value": self.value}
