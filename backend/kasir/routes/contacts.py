# Overview: Flask API routes for contacts and the debt ledger; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..services import contact_service, ledger_service
from ..services.errors import NotFoundError, ValidationError
from ..time_utils import parse_iso_datetime


contacts_bp = Blueprint("contacts", __name__, url_prefix="/api")


@contacts_bp.get("/contacts")
def list_contacts_route():
    contacts = contact_service.list_contacts(
        type=request.args.get("type"),
        query=request.args.get("q"),
    )
    return jsonify({"contacts": [c.to_dict() for c in contacts]}), 200


@contacts_bp.get("/customers/search")
def search_customers_route():
    customers = contact_service.search_customers(request.args.get("q"))
    return jsonify({"customers": [c.to_dict() for c in customers]}), 200


@contacts_bp.get("/contacts/<int:contact_id>")
def get_contact_route(contact_id: int):
    try:
        contact = contact_service.get_contact(contact_id)
    except NotFoundError as e:
        return jsonify({"error": e.message}), 404
    return jsonify({
        "contact": contact.to_dict(),
        "balance": ledger_service.get_balance(contact_id),
    }), 200


@contacts_bp.post("/contacts")
def create_contact_route():
    try:
        contact = contact_service.create_contact(request.get_json(silent=True) or {})
        return jsonify({"contact": contact.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": e.message, "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to create contact")
        return jsonify({"error": "Internal server error"}), 500


@contacts_bp.patch("/contacts/<int:contact_id>")
def update_contact_route(contact_id: int):
    try:
        contact = contact_service.update_contact(contact_id, request.get_json(silent=True) or {})
        return jsonify({"contact": contact.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": e.message}), 404
    except ValidationError as e:
        return jsonify({"error": e.message, "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to update contact")
        return jsonify({"error": "Internal server error"}), 500


@contacts_bp.delete("/contacts/<int:contact_id>")
def delete_contact_route(contact_id: int):
    try:
        contact_service.delete_contact(contact_id)
        return jsonify({"deleted": True}), 200
    except NotFoundError as e:
        return jsonify({"error": e.message}), 404


@contacts_bp.post("/contacts/<int:contact_id>/points/reset")
def reset_points_route(contact_id: int):
    try:
        contact = contact_service.reset_points(contact_id)
        return jsonify({"contact": contact.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": e.message}), 404


# =============================================================================
# Ledger
# =============================================================================

@contacts_bp.get("/contacts/<int:contact_id>/ledger")
def list_ledger_route(contact_id: int):
    try:
        contact_service.get_contact(contact_id)
    except NotFoundError as e:
        return jsonify({"error": e.message}), 404
    entries = ledger_service.list_entries(contact_id)
    return jsonify({
        "entries": [e.to_dict() for e in entries],
        "balance": ledger_service.get_balance(contact_id),
    }), 200


@contacts_bp.post("/contacts/<int:contact_id>/ledger")
def add_ledger_route(contact_id: int):
    """
    Body: {"amount": number, "type": "debit"|"credit", "description": str,
           "dueDate": ISO-8601|null, "userId": int|null}
    """
    try:
        data = request.get_json(silent=True) or {}
        try:
            due_date = parse_iso_datetime(data.get("dueDate"))
        except ValueError:
            return jsonify({"error": "dueDate must be ISO-8601"}), 400

        entry = ledger_service.add_ledger_entry(
            contact_id=contact_id,
            amount=data.get("amount"),
            type=data.get("type"),
            description=data.get("description"),
            due_date=due_date,
            user_id=data.get("userId"),
        )
        return jsonify({"entry": entry.to_dict(), "balance": ledger_service.get_balance(contact_id)}), 201

    except NotFoundError as e:
        return jsonify({"error": e.message}), 404
    except ValidationError as e:
        return jsonify({"error": e.message, "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to add ledger entry")
        return jsonify({"error": "Internal server error"}), 500


@contacts_bp.put("/ledger/<int:entry_id>/due-date")
def update_due_date_route(entry_id: int):
    try:
        data = request.get_json(silent=True) or {}
        try:
            due_date = parse_iso_datetime(data.get("dueDate"))
        except ValueError:
            return jsonify({"error": "dueDate must be ISO-8601"}), 400
        entry = ledger_service.update_due_date(entry_id, due_date)
        return jsonify({"entry": entry.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": e.message}), 404
    except ValidationError as e:
        return jsonify({"error": e.message}), 400


@contacts_bp.delete("/ledger/<int:entry_id>")
def delete_ledger_route(entry_id: int):
    try:
        ledger_service.delete_ledger_entry(entry_id)
        return jsonify({"deleted": True}), 200
    except NotFoundError as e:
        return jsonify({"error": e.message}), 404


@contacts_bp.get("/ledger/due-soon")
def due_soon_route():
    days = request.args.get("days", type=int)
    return jsonify({"entries": ledger_service.list_due_soon(days)}), 200
