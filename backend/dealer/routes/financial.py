# Overview: Flask API routes exposing financial obligations emitted by sales and stock intake.

# backend/dealer/routes/financial.py
"""Financial transaction API routes"""

from flask import Blueprint, current_app, jsonify, request

from ..services import financial_service
from ..time_utils import parse_iso_date


financial_bp = Blueprint("financial", __name__, url_prefix="/api/financial")


@financial_bp.get("/transactions")
def list_transactions_route():
    """
    List receivables/payables.

    Query params: kind, status, sale_id, due_from, due_to (YYYY-MM-DD)
    """
    kind = request.args.get("kind")
    if kind and kind not in financial_service.VALID_KINDS:
        return jsonify({"error": f"Invalid kind: {kind}", "field": "kind"}), 400
    status = request.args.get("status")
    if status and status not in financial_service.VALID_STATUSES:
        return jsonify({"error": f"Invalid status: {status}", "field": "status"}), 400

    try:
        due_from = parse_iso_date(request.args.get("due_from"))
        due_to = parse_iso_date(request.args.get("due_to"))
    except ValueError:
        return jsonify({"error": "due_from/due_to must be YYYY-MM-DD dates"}), 400

    try:
        rows = financial_service.list_financial_transactions(
            kind=kind,
            status=status,
            sale_id=request.args.get("sale_id", type=int),
            due_from=due_from,
            due_to=due_to,
        )
        return jsonify({"transactions": [r.to_dict() for r in rows]}), 200
    except Exception:
        current_app.logger.exception("Failed to list financial transactions")
        return jsonify({"error": "Internal server error"}), 500
