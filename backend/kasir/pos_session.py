# Overview: In-process POS sessions; each owns one cart, its cashier and the open settlement.

"""
POS sessions

A PosSession is the single owner of a cart and of the settlement in
progress for it. Services take the session (or its cart) as an explicit
argument; there is no ambient cart state.

Sessions are process-local and kept in a SessionRegistry stored on
app.extensions. One caller drives a session at a time; there is no locking.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from flask import current_app

from .services import cart_service
from .services.cart_service import Cart
from .services.errors import NotFoundError
from .time_utils import utcnow, to_utc_z

if TYPE_CHECKING:
    from datetime import datetime
    from .services.settlement_service import Settlement


REGISTRY_KEY = "kasir_sessions"


@dataclass
class PosSession:
    id: str
    user_id: int | None = None
    user_name: str | None = None
    cart: Cart = field(default_factory=Cart)
    settlement: "Settlement | None" = None
    last_transaction_id: int | None = None
    opened_at: "datetime" = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "userName": self.user_name,
            "cart": self.cart.to_dict(),
            "totals": cart_service.compute_totals(self.cart).to_dict(),
            "settlement": self.settlement.to_dict() if self.settlement else None,
            "lastTransactionId": self.last_transaction_id,
            "openedAt": to_utc_z(self.opened_at),
        }


class SessionRegistry:
    def __init__(self):
        self._sessions: dict[str, PosSession] = {}

    def open(self, user_id: int | None = None, user_name: str | None = None) -> PosSession:
        """New session with an empty cart carrying the default fees."""
        session = PosSession(id=uuid.uuid4().hex, user_id=user_id, user_name=user_name)
        cart_service.apply_default_fees(session.cart)
        self._sessions[session.id] = session
        return session

    def get(self, session_id: str) -> PosSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise NotFoundError(f"Session {session_id} not found")
        return session

    def close(self, session_id: str) -> None:
        if self._sessions.pop(session_id, None) is None:
            raise NotFoundError(f"Session {session_id} not found")

    def __len__(self) -> int:
        return len(self._sessions)


def get_registry() -> SessionRegistry:
    registry = current_app.extensions.get(REGISTRY_KEY)
    if registry is None:
        registry = SessionRegistry()
        current_app.extensions[REGISTRY_KEY] = registry
    return registry
