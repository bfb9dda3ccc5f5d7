# Overview: Flask API routes for settled transactions; history, returns, voids and effect retries.

from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..models import Transaction
from ..services import effects_service, return_service
from ..services.errors import NotFoundError, ValidationError
from ..time_utils import parse_range_bound


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


@transactions_bp.get("")
def list_transactions_route():
    """
    List transactions, newest first.

    Query: date_from, date_to (ISO-8601), customer_id, limit
    """
    try:
        date_from = parse_range_bound(request.args.get("date_from"))
        date_to = parse_range_bound(request.args.get("date_to"), upper=True)
    except ValueError:
        return jsonify({"error": "Dates must be ISO-8601"}), 400

    q = db.session.query(Transaction)
    if date_from:
        q = q.filter(Transaction.date >= date_from)
    if date_to:
        q = q.filter(Transaction.date <= date_to)
    customer_id = request.args.get("customer_id", type=int)
    if customer_id:
        q = q.filter(Transaction.customer_id == customer_id)
    q = q.order_by(Transaction.date.desc(), Transaction.id.desc())
    limit = request.args.get("limit", type=int)
    if limit:
        q = q.limit(limit)

    return jsonify({
        "transactions": [return_service.normalize_transaction(t.to_dict()) for t in q.all()]
    }), 200


@transactions_bp.get("/<int:transaction_id>")
def get_transaction_route(transaction_id: int):
    try:
        transaction = return_service.get_transaction(transaction_id)
    except NotFoundError as e:
        return jsonify({"error": e.message}), 404

    return jsonify({
        "transaction": return_service.normalize_transaction(transaction.to_dict()),
        "effects": [e.to_dict() for e in effects_service.list_effects(transaction_id)],
    }), 200


@transactions_bp.post("/<int:transaction_id>/returns")
def return_line_route(transaction_id: int):
    """
    Return one line of a transaction and restock it.

    Body: {"lineIndex": int, "userId": int|null, "userName": str|null}
    """
    try:
        data = request.get_json(silent=True) or {}
        line_index = data.get("lineIndex")
        if line_index is None:
            return jsonify({"error": "lineIndex required"}), 400

        outcome = return_service.return_line(
            transaction_id,
            int(line_index),
            user_id=data.get("userId"),
            user_name=data.get("userName"),
        )
        return jsonify(outcome.to_dict()), 200

    except NotFoundError as e:
        return jsonify({"error": e.message, "details": e.details}), 404
    except ValidationError as e:
        return jsonify({"error": e.message, "details": e.details}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to return transaction line")
        return jsonify({"error": "Gagal memproses pengembalian."}), 500


@transactions_bp.post("/<int:transaction_id>/void")
def void_transaction_route(transaction_id: int):
    try:
        data = request.get_json(silent=True) or {}
        result = return_service.void_transaction(
            transaction_id,
            user_id=data.get("userId"),
            user_name=data.get("userName"),
        )
        return jsonify(result), 200

    except NotFoundError as e:
        return jsonify({"error": e.message}), 404
    except ValidationError as e:
        return jsonify({"error": e.message, "details": e.details}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to void transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.post("/<int:transaction_id>/effects/retry")
def retry_effects_route(transaction_id: int):
    """Re-run the post-settlement pipeline; steps already applied are skipped."""
    try:
        report = effects_service.retry_effects(transaction_id)
        return jsonify({"effects": report.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": e.message}), 404
