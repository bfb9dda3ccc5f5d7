# Overview: Flask API routes for store settings.

from flask import Blueprint, request, jsonify

from ..services import settings_service


settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("")
def get_settings_route():
    return jsonify({"settings": settings_service.get_all_settings()}), 200


@settings_bp.put("")
def update_settings_route():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Body must be an object of key/value pairs"}), 400
    return jsonify({"settings": settings_service.update_settings(data)}), 200


@settings_bp.post("/donation/reset")
def reset_donation_route():
    stamp = settings_service.reset_donation_counter()
    return jsonify({settings_service.LAST_DONATION_RESET_DATE: stamp}), 200
