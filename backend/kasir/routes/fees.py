# Overview: Flask API routes for fee and tax definitions.

from flask import Blueprint, request, jsonify, current_app

from ..services import fee_service
from ..services.errors import NotFoundError, ValidationError


fees_bp = Blueprint("fees", __name__, url_prefix="/api/fees")


@fees_bp.get("")
def list_fees_route():
    return jsonify({"fees": [f.to_dict() for f in fee_service.list_fees()]}), 200


@fees_bp.post("")
def create_fee_route():
    """Body: {"name": str, "type": "percentage"|"fixed", "value": number, "isDefault": bool, "isTax": bool|null}"""
    try:
        data = request.get_json(silent=True) or {}
        fee = fee_service.create_fee(
            name=data.get("name"),
            type=data.get("type"),
            value=data.get("value"),
            is_default=bool(data.get("isDefault")),
            is_tax=data.get("isTax"),
        )
        return jsonify({"fee": fee.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": e.message, "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to create fee")
        return jsonify({"error": "Internal server error"}), 500


@fees_bp.delete("/<int:fee_id>")
def delete_fee_route(fee_id: int):
    try:
        fee_service.delete_fee(fee_id)
        return jsonify({"deleted": True}), 200
    except NotFoundError as e:
        return jsonify({"error": e.message}), 404
