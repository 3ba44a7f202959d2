# Overview: Flask API routes for stock intake and stock exits; parses input and returns JSON responses.

# backend/dealer/routes/stock.py
"""Stock item API routes"""

from flask import Blueprint, current_app, jsonify, request

from ..services import quota_service, settlement_service, stock_service
from ..validation import ConflictError, NotFoundError, ValidationError


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("")
def list_stock_route():
    """
    List live stock items.

    Query params:
        search: matches brand, model or plate
        include_media: "1" to embed media blobs (heavy)
    """
    try:
        include_media = request.args.get("include_media") in ("1", "true")
        items = stock_service.list_stock_items(request.args.get("search"))
        return jsonify({"stock_items": [i.to_dict(include_media=include_media) for i in items]}), 200
    except Exception:
        current_app.logger.exception("Failed to list stock items")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("")
def create_stock_route():
    """
    Register a stock item.

    Returns:
        201: created
        400: invalid payload or storage budget exceeded
    """
    try:
        item = stock_service.create_stock_item(request.get_json(silent=True))
        return jsonify({"stock_item": item.to_dict(include_media=False)}), 201
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except ConflictError as e:
        return jsonify(e.to_dict()), 409
    except Exception:
        current_app.logger.exception("Failed to create stock item")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/storage")
def storage_route():
    """Media storage usage against the budget."""
    try:
        return jsonify(quota_service.storage_info()), 200
    except Exception:
        current_app.logger.exception("Failed to compute storage info")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/<int:stock_item_id>")
def get_stock_route(stock_item_id: int):
    try:
        item = stock_service.get_stock_item(stock_item_id)
        return jsonify({"stock_item": item.to_dict(include_media=True)}), 200
    except NotFoundError as e:
        return jsonify(e.to_dict()), 404
    except Exception:
        current_app.logger.exception("Failed to load stock item")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.patch("/<int:stock_item_id>")
def update_stock_route(stock_item_id: int):
    """Partial update. media_blobs, when present, replaces the whole media list."""
    try:
        item = stock_service.update_stock_item(stock_item_id, request.get_json(silent=True))
        return jsonify({"stock_item": item.to_dict(include_media=False)}), 200
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except NotFoundError as e:
        return jsonify(e.to_dict()), 404
    except ConflictError as e:
        return jsonify(e.to_dict()), 409
    except Exception:
        current_app.logger.exception("Failed to update stock item")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.delete("/<int:stock_item_id>")
def delete_stock_route(stock_item_id: int):
    try:
        stock_service.delete_stock_item(stock_item_id)
        return jsonify({"deleted": True, "id": stock_item_id}), 200
    except NotFoundError as e:
        return jsonify(e.to_dict()), 404
    except ConflictError as e:
        return jsonify(e.to_dict()), 409
    except Exception:
        current_app.logger.exception("Failed to delete stock item")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/<int:stock_item_id>/exit")
def exit_stock_route(stock_item_id: int):
    """
    Settle a stock item as a sale, pre-sale or transfer.

    Request body:
    {
        "exit_kind": "sale" | "presale" | "transfer",
        "customer_id": int, "seller_id": int,          (sale, presale)
        "trade_in_id": int, "vehicle_id": int,          (optional)
        "sale_value_cents": int, "table_value_cents": int, "discount_cents": int,
        "payment_instruments": [{"kind", "amount_cents", "date", ...}],
        "transfer_destination": str, "transfer_notes": str   (transfer)
    }

    Returns:
        201: {"sale", "vehicle"} or {"transfer_record"}
        400: validation error
        404: stock item or referenced record not found
        409: concurrent modification, retry
    """
    try:
        data = request.get_json(silent=True)
        if data is None:
            data = {}
        if not isinstance(data, dict):
            return jsonify({"error": "Invalid JSON payload"}), 400
        details = dict(data)
        exit_kind = details.pop("exit_kind", None)
        if not exit_kind:
            return jsonify({"error": "exit_kind required", "field": "exit_kind"}), 400

        result = settlement_service.settle_stock_item(stock_item_id, exit_kind, details)

        if "transfer_record" in result:
            return jsonify({"transfer_record": result["transfer_record"].to_dict()}), 201
        return jsonify({
            "sale": result["sale"].to_dict(),
            "vehicle": result["vehicle"].to_dict(),
        }), 201

    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except NotFoundError as e:
        return jsonify(e.to_dict()), 404
    except ConflictError as e:
        return jsonify(e.to_dict()), 409
    except Exception:
        current_app.logger.exception("Failed to settle stock item %s", stock_item_id)
        return jsonify({"error": "Internal server error"}), 500
