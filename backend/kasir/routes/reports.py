from flask import Blueprint, jsonify, request

from ..services import report_service


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/summary")
def summary_report():
    try:
        report = report_service.summarize_sales(
            date_from=request.args.get("date_from"),
            date_to=request.args.get("date_to"),
        )
        return jsonify(report), 200
    except report_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400


@reports_bp.get("/top-products")
def top_products_report():
    try:
        products = report_service.top_selling_products(
            date_from=request.args.get("date_from"),
            date_to=request.args.get("date_to"),
            limit=request.args.get("limit", 5, type=int),
        )
        return jsonify({"products": products}), 200
    except report_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400
