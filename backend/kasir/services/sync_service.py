# Overview: Sync collaborator; queues local mutations into the sync_queue outbox.

"""
Sync outbox

WHY: The POS works offline-first. Every local mutation is recorded in
sync_queue so an external transport can replay it to the remote backend.

RULES:
- Fire-and-forget: queue_action never raises. A failure to enqueue is
  logged and the local flow continues.
- Callers commit their own record first, then queue. queue_action commits
  only the outbox row.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import SyncQueueItem
from kasir.time_utils import utcnow


CREATE_TRANSACTION = "CREATE_TRANSACTION"
UPDATE_TRANSACTION = "UPDATE_TRANSACTION"
DELETE_TRANSACTION = "DELETE_TRANSACTION"
CREATE_PRODUCT = "CREATE_PRODUCT"
UPDATE_PRODUCT = "UPDATE_PRODUCT"
DELETE_PRODUCT = "DELETE_PRODUCT"
CREATE_LEDGER = "CREATE_LEDGER"
UPDATE_LEDGER = "UPDATE_LEDGER"
DELETE_LEDGER = "DELETE_LEDGER"
CREATE_CONTACT = "CREATE_CONTACT"
UPDATE_CONTACT = "UPDATE_CONTACT"
DELETE_CONTACT = "DELETE_CONTACT"
CREATE_STOCK_LOG = "CREATE_STOCK_LOG"
CREATE_FEE = "CREATE_FEE"
DELETE_FEE = "DELETE_FEE"

VALID_ACTIONS = {
    CREATE_TRANSACTION, UPDATE_TRANSACTION, DELETE_TRANSACTION,
    CREATE_PRODUCT, UPDATE_PRODUCT, DELETE_PRODUCT,
    CREATE_LEDGER, UPDATE_LEDGER, DELETE_LEDGER,
    CREATE_CONTACT, UPDATE_CONTACT, DELETE_CONTACT,
    CREATE_STOCK_LOG,
    CREATE_FEE, DELETE_FEE,
}

STATUS_PENDING = "PENDING"
STATUS_SENT = "SENT"


def queue_action(action: str, payload: dict) -> SyncQueueItem | None:
    """Append one mutation to the outbox. Returns None if it could not be queued."""
    if action not in VALID_ACTIONS:
        current_app.logger.warning("Ignoring unknown sync action %s", action)
        return None
    try:
        item = SyncQueueItem(action=action, payload=payload, status=STATUS_PENDING, created_at=utcnow())
        db.session.add(item)
        db.session.commit()
        return item
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to queue sync action %s", action)
        return None


def list_pending(limit: int | None = None) -> list[SyncQueueItem]:
    q = (
        db.session.query(SyncQueueItem)
        .filter_by(status=STATUS_PENDING)
        .order_by(SyncQueueItem.id.asc())
    )
    if limit:
        q = q.limit(limit)
    return q.all()


def mark_sent(item_ids: list[int]) -> int:
    """Mark outbox rows as delivered. Returns number of rows updated."""
    if not item_ids:
        return 0
    now = utcnow()
    items = db.session.query(SyncQueueItem).filter(SyncQueueItem.id.in_(item_ids)).all()
    for item in items:
        item.status = STATUS_SENT
        item.sent_at = now
    db.session.commit()
    return len(items)
