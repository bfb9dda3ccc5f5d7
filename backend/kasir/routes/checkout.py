# Overview: Flask API routes for POS sessions; cart mutations, hold/resume and settlement.

# backend/kasir/routes/checkout.py
"""
Checkout API routes

A client opens a session, mutates its cart, then drives the settlement
state machine to confirmation. Sessions are process-local.
"""

from flask import Blueprint, request, jsonify, current_app

from ..pos_session import get_registry
from ..services import cart_service, settlement_service
from ..services.errors import NotFoundError, ValidationError, InsufficientStockError


checkout_bp = Blueprint("checkout", __name__, url_prefix="/api")


def _cart_payload(session) -> dict:
    return {
        "cart": session.cart.to_dict(),
        "totals": cart_service.compute_totals(session.cart).to_dict(),
    }


def _error(e, status: int):
    return jsonify({"error": e.message, "details": e.details}), status


# =============================================================================
# Sessions
# =============================================================================

@checkout_bp.post("/sessions")
def open_session_route():
    try:
        data = request.get_json(silent=True) or {}
        session = get_registry().open(user_id=data.get("userId"), user_name=data.get("userName"))
        return jsonify({"session": session.to_dict()}), 201
    except Exception:
        current_app.logger.exception("Failed to open session")
        return jsonify({"error": "Internal server error"}), 500


@checkout_bp.get("/sessions/<sid>")
def get_session_route(sid: str):
    try:
        session = get_registry().get(sid)
        return jsonify({"session": session.to_dict()}), 200
    except NotFoundError as e:
        return _error(e, 404)


@checkout_bp.delete("/sessions/<sid>")
def close_session_route(sid: str):
    try:
        get_registry().close(sid)
        return jsonify({"closed": True}), 200
    except NotFoundError as e:
        return _error(e, 404)


# =============================================================================
# Cart
# =============================================================================

@checkout_bp.get("/sessions/<sid>/cart")
def get_cart_route(sid: str):
    try:
        session = get_registry().get(sid)
        return jsonify(_cart_payload(session)), 200
    except NotFoundError as e:
        return _error(e, 404)


@checkout_bp.post("/sessions/<sid>/cart/lines")
def add_line_route(sid: str):
    """
    Add a product (or one variation) to the cart.

    Body: {"productId": int, "variationIndex": int|null, "quantity": int=1}
    """
    try:
        data = request.get_json(silent=True) or {}
        product_id = data.get("productId")
        if not product_id:
            return jsonify({"error": "productId required"}), 400

        session = get_registry().get(sid)
        line = cart_service.add_line(
            session.cart,
            int(product_id),
            variation_index=data.get("variationIndex"),
            quantity=int(data.get("quantity") or 1),
        )
        return jsonify({"line": line.to_dict(), **_cart_payload(session)}), 201

    except InsufficientStockError as e:
        return jsonify({"error": e.message, "details": e.details}), 409
    except NotFoundError as e:
        return _error(e, 404)
    except ValidationError as e:
        return _error(e, 400)
    except Exception:
        current_app.logger.exception("Failed to add cart line")
        return jsonify({"error": "Internal server error"}), 500


@checkout_bp.patch("/sessions/<sid>/cart/lines/<line_id>")
def update_line_route(sid: str, line_id: str):
    """Body: {"delta": int}. A quantity reaching zero removes the line."""
    session = None
    try:
        data = request.get_json(silent=True) or {}
        delta = data.get("delta")
        if delta is None:
            return jsonify({"error": "delta required"}), 400

        session = get_registry().get(sid)
        line = cart_service.update_quantity(session.cart, line_id, int(delta))
        return jsonify({"line": line.to_dict() if line else None, **_cart_payload(session)}), 200

    except InsufficientStockError as e:
        return jsonify({"error": e.message, "details": e.details}), 409
    except NotFoundError as e:
        # a stale line has already been dropped; return the cart so the client can refresh
        body = {"error": e.message, "details": e.details}
        if session is not None:
            body.update(_cart_payload(session))
        return jsonify(body), 404
    except Exception:
        current_app.logger.exception("Failed to update cart line")
        return jsonify({"error": "Internal server error"}), 500


@checkout_bp.delete("/sessions/<sid>/cart/lines/<line_id>")
def remove_line_route(sid: str, line_id: str):
    try:
        session = get_registry().get(sid)
        cart_service.remove_line(session.cart, line_id)
        return jsonify(_cart_payload(session)), 200
    except NotFoundError as e:
        return _error(e, 404)


@checkout_bp.post("/sessions/<sid>/cart/clear")
def clear_cart_route(sid: str):
    try:
        session = get_registry().get(sid)
        cart_service.clear_cart(session.cart)
        return jsonify(_cart_payload(session)), 200
    except NotFoundError as e:
        return _error(e, 404)
    except Exception:
        current_app.logger.exception("Failed to clear cart")
        return jsonify({"error": "Internal server error"}), 500


@checkout_bp.put("/sessions/<sid>/cart/fees")
def set_fees_route(sid: str):
    """Body: {"feeIds": [int, ...]}"""
    try:
        data = request.get_json(silent=True) or {}
        fee_ids = data.get("feeIds")
        if not isinstance(fee_ids, list):
            return jsonify({"error": "feeIds must be a list"}), 400

        session = get_registry().get(sid)
        cart_service.set_fees(session.cart, fee_ids)
        return jsonify(_cart_payload(session)), 200
    except NotFoundError as e:
        return _error(e, 404)
    except Exception:
        current_app.logger.exception("Failed to set cart fees")
        return jsonify({"error": "Internal server error"}), 500


@checkout_bp.post("/sessions/<sid>/cart/fees/reconcile")
def reconcile_fees_route(sid: str):
    try:
        session = get_registry().get(sid)
        cart_service.reconcile_fees(session.cart)
        return jsonify(_cart_payload(session)), 200
    except NotFoundError as e:
        return _error(e, 404)
    except Exception:
        current_app.logger.exception("Failed to reconcile cart fees")
        return jsonify({"error": "Internal server error"}), 500


@checkout_bp.put("/sessions/<sid>/cart/customer")
def attach_customer_route(sid: str):
    """Body: {"customerId": int}"""
    try:
        data = request.get_json(silent=True) or {}
        customer_id = data.get("customerId")
        if not customer_id:
            return jsonify({"error": "customerId required"}), 400

        session = get_registry().get(sid)
        cart_service.attach_customer(session.cart, int(customer_id))
        return jsonify(_cart_payload(session)), 200
    except NotFoundError as e:
        return _error(e, 404)
    except ValidationError as e:
        return _error(e, 400)


@checkout_bp.delete("/sessions/<sid>/cart/customer")
def detach_customer_route(sid: str):
    try:
        session = get_registry().get(sid)
        cart_service.detach_customer(session.cart)
        return jsonify(_cart_payload(session)), 200
    except NotFoundError as e:
        return _error(e, 404)


# =============================================================================
# Hold / resume
# =============================================================================

@checkout_bp.post("/sessions/<sid>/hold")
def hold_route(sid: str):
    try:
        session = get_registry().get(sid)
        pending = cart_service.hold_cart(session.cart)
        return jsonify({"pending": pending.to_dict(), **_cart_payload(session)}), 201
    except NotFoundError as e:
        return _error(e, 404)
    except ValidationError as e:
        return _error(e, 400)
    except Exception:
        current_app.logger.exception("Failed to hold cart")
        return jsonify({"error": "Internal server error"}), 500


@checkout_bp.get("/pending")
def list_pending_route():
    return jsonify({"pending": cart_service.list_pending()}), 200


@checkout_bp.post("/sessions/<sid>/resume/<int:pending_id>")
def resume_route(sid: str, pending_id: int):
    """
    Restore a held cart into the session.

    Body: {"replace": bool} to overwrite a cart that still has items.
    Any settlement in progress is dropped.
    """
    try:
        session = get_registry().get(sid)
        data = request.get_json(silent=True) or {}
        cart_service.resume_pending(session.cart, pending_id, replace=bool(data.get("replace")))
        session.settlement = None
        return jsonify(_cart_payload(session)), 200
    except NotFoundError as e:
        return _error(e, 404)
    except ValidationError as e:
        return _error(e, 400)
    except Exception:
        current_app.logger.exception("Failed to resume pending transaction")
        return jsonify({"error": "Internal server error"}), 500


@checkout_bp.delete("/pending/<int:pending_id>")
def delete_pending_route(pending_id: int):
    try:
        cart_service.delete_pending(pending_id)
        return jsonify({"deleted": True}), 200
    except NotFoundError as e:
        return _error(e, 404)


# =============================================================================
# Settlement
# =============================================================================

@checkout_bp.post("/sessions/<sid>/settlement")
def open_settlement_route(sid: str):
    try:
        session = get_registry().get(sid)
        q = settlement_service.open_settlement(session)
        return jsonify({"settlement": session.settlement.to_dict(), "quote": q.to_dict()}), 201
    except NotFoundError as e:
        return _error(e, 404)
    except ValidationError as e:
        return _error(e, 400)


@checkout_bp.get("/sessions/<sid>/settlement")
def quote_route(sid: str):
    try:
        session = get_registry().get(sid)
        q = settlement_service.quote(session)
        return jsonify({"settlement": session.settlement.to_dict(), "quote": q.to_dict()}), 200
    except NotFoundError as e:
        return _error(e, 404)
    except ValidationError as e:
        return _error(e, 400)


@checkout_bp.post("/sessions/<sid>/settlement/method")
def select_method_route(sid: str):
    """Body: {"method": "TUNAI"|"QRIS"|"PIUTANG"} (cash/qris/debt also accepted)"""
    try:
        data = request.get_json(silent=True) or {}
        session = get_registry().get(sid)
        q = settlement_service.select_method(session, data.get("method"))
        return jsonify({"settlement": session.settlement.to_dict(), "quote": q.to_dict()}), 200
    except NotFoundError as e:
        return _error(e, 404)
    except ValidationError as e:
        return _error(e, 400)


@checkout_bp.post("/sessions/<sid>/settlement/amount")
def set_amount_route(sid: str):
    """Body: {"cashPaid": number}"""
    try:
        data = request.get_json(silent=True) or {}
        session = get_registry().get(sid)
        q = settlement_service.set_amount(session, data.get("cashPaid"))
        return jsonify({"settlement": session.settlement.to_dict(), "quote": q.to_dict()}), 200
    except NotFoundError as e:
        return _error(e, 404)
    except ValidationError as e:
        return _error(e, 400)


@checkout_bp.post("/sessions/<sid>/settlement/donation")
def toggle_donation_route(sid: str):
    """Body: {"enabled": bool} or empty to flip."""
    try:
        data = request.get_json(silent=True) or {}
        session = get_registry().get(sid)
        q = settlement_service.toggle_donation(session, data.get("enabled"))
        return jsonify({"settlement": session.settlement.to_dict(), "quote": q.to_dict()}), 200
    except NotFoundError as e:
        return _error(e, 404)
    except ValidationError as e:
        return _error(e, 400)


@checkout_bp.post("/sessions/<sid>/settlement/confirm")
def confirm_route(sid: str):
    try:
        session = get_registry().get(sid)
        outcome = settlement_service.confirm(session)
        return jsonify(outcome.to_dict()), 201
    except NotFoundError as e:
        return _error(e, 404)
    except ValidationError as e:
        return _error(e, 400)
    except Exception:
        current_app.logger.exception("Failed to confirm settlement")
        return jsonify({"error": settlement_service.GENERIC_FAILURE}), 500


@checkout_bp.delete("/sessions/<sid>/settlement")
def cancel_settlement_route(sid: str):
    try:
        session = get_registry().get(sid)
        settlement_service.cancel_settlement(session)
        return jsonify({"cancelled": True}), 200
    except NotFoundError as e:
        return _error(e, 404)
