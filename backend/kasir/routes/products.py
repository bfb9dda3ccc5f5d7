# Overview: Flask API routes for products and stock; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..services import inventory_service, products_service
from ..services.errors import NotFoundError, ValidationError


products_bp = Blueprint("products", __name__, url_prefix="/api")


@products_bp.get("/products")
def list_products_route():
    products = products_service.list_products(
        search=request.args.get("search"),
        category=request.args.get("category"),
        low_stock_threshold=request.args.get("low_stock", type=int),
    )
    return jsonify({"products": [p.to_dict() for p in products]}), 200


@products_bp.get("/products/<int:product_id>")
def get_product_route(product_id: int):
    try:
        return jsonify({"product": products_service.get_product(product_id).to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": e.message}), 404


@products_bp.get("/products/barcode/<barcode>")
def find_by_barcode_route(barcode: str):
    product = products_service.find_by_barcode(barcode)
    if not product:
        return jsonify({"error": "Produk tidak ditemukan."}), 404
    return jsonify({"product": product.to_dict()}), 200


@products_bp.post("/products")
def create_product_route():
    try:
        data = request.get_json(silent=True) or {}
        product = products_service.create_product(
            data, user_id=data.get("userId"), user_name=data.get("userName")
        )
        return jsonify({"product": product.to_dict()}), 201

    except ValidationError as e:
        return jsonify({"error": e.message, "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.patch("/products/<int:product_id>")
def update_product_route(product_id: int):
    try:
        data = request.get_json(silent=True) or {}
        user_id = data.pop("userId", None)
        user_name = data.pop("userName", None)
        product = products_service.update_product(product_id, data, user_id=user_id, user_name=user_name)
        return jsonify({"product": product.to_dict()}), 200

    except NotFoundError as e:
        return jsonify({"error": e.message}), 404
    except ValidationError as e:
        return jsonify({"error": e.message, "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/products/<int:product_id>")
def delete_product_route(product_id: int):
    try:
        products_service.delete_product(product_id)
        return jsonify({"deleted": True}), 200
    except NotFoundError as e:
        return jsonify({"error": e.message}), 404


@products_bp.post("/products/<int:product_id>/stock/adjust")
def adjust_stock_route(product_id: int):
    """
    Quick stock adjustment (clamped at zero).

    Body: {"delta": int, "variationIndex": int|null, "reason": str|null}
    """
    try:
        data = request.get_json(silent=True) or {}
        delta = data.get("delta")
        if delta is None:
            return jsonify({"error": "delta required"}), 400

        product = inventory_service.adjust_stock(
            product_id,
            int(delta),
            variation_index=data.get("variationIndex"),
            reason=data.get("reason"),
            user_id=data.get("userId"),
            user_name=data.get("userName"),
        )
        return jsonify({"product": product.to_dict()}), 200

    except NotFoundError as e:
        return jsonify({"error": e.message, "details": e.details}), 404
    except ValidationError as e:
        return jsonify({"error": e.message, "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/stock-history")
def stock_history_route():
    entries = inventory_service.list_stock_history(
        product_id=request.args.get("product_id", type=int),
        limit=request.args.get("limit", type=int),
    )
    return jsonify({"history": [e.to_dict() for e in entries]}), 200
