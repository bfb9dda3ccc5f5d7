from __future__ import annotations

from ..extensions import db
from kasir.time_utils import to_utc_z


class SyncQueueItem(db.Model):
    """
    Outbox of local mutations waiting to be pushed to the remote backend.

    STATUS: PENDING until the sync transport confirms delivery, then SENT.
    Payloads are plain record dicts (the model's to_dict()).
    """
    __tablename__ = "sync_queue"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    action = db.Column(db.String(32), nullable=False, index=True)
    payload = db.Column(db.JSON, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "action": self.action,
            "payload": self.payload,
            "status": self.status,
            "createdAt": to_utc_z(self.created_at),
            "sentAt": to_utc_z(self.sent_at) if self.sent_at else None,
        }
