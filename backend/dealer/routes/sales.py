# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/dealer/routes/sales.py
"""Sales API routes"""

from flask import Blueprint, current_app, jsonify, request

from ..services import sales_service
from ..time_utils import parse_iso_date
from ..validation import ConflictError, NotFoundError, ValidationError


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
def list_sales_route():
    """
    List sales.

    Query params: status, seller_id, customer_id, start, end (YYYY-MM-DD)
    """
    try:
        start = parse_iso_date(request.args.get("start"))
        end = parse_iso_date(request.args.get("end"))
    except ValueError:
        return jsonify({"error": "start/end must be YYYY-MM-DD dates"}), 400

    try:
        sales = sales_service.list_sales(
            status=request.args.get("status"),
            seller_id=request.args.get("seller_id", type=int),
            customer_id=request.args.get("customer_id", type=int),
            start=start,
            end=end,
        )
        return jsonify({"sales": [s.to_dict(include_instruments=False) for s in sales]}), 200
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("")
def create_sale_route():
    """
    Create a sale for a vehicle already in the fleet.

    Request body mirrors the sale fields plus vehicle_id and an optional
    payment_instruments list.
    """
    try:
        sale = sales_service.create_sale(request.get_json(silent=True))
        return jsonify({"sale": sale.to_dict()}), 201
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except NotFoundError as e:
        return jsonify(e.to_dict()), 404
    except ConflictError as e:
        return jsonify(e.to_dict()), 409
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        return jsonify({"sale": sale.to_dict()}), 200
    except NotFoundError as e:
        return jsonify(e.to_dict()), 404
    except Exception:
        current_app.logger.exception("Failed to load sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.patch("/<int:sale_id>")
def update_sale_route(sale_id: int):
    """
    Partial update.

    payment_instruments, when present, replaces the whole instrument list.
    """
    try:
        sale = sales_service.update_sale(sale_id, request.get_json(silent=True))
        return jsonify({"sale": sale.to_dict()}), 200
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except NotFoundError as e:
        return jsonify(e.to_dict()), 404
    except ConflictError as e:
        return jsonify(e.to_dict()), 409
    except Exception:
        current_app.logger.exception("Failed to update sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.delete("/<int:sale_id>")
def delete_sale_route(sale_id: int):
    """Delete a sale; its vehicle goes back to available."""
    try:
        sales_service.delete_sale(sale_id)
        return jsonify({"deleted": True, "id": sale_id}), 200
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except NotFoundError as e:
        return jsonify(e.to_dict()), 404
    except ConflictError as e:
        return jsonify(e.to_dict()), 409
    except Exception:
        current_app.logger.exception("Failed to delete sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.patch("/<int:sale_id>/instruments/<int:instrument_id>/installments/<int:index>")
def edit_installment_route(sale_id: int, instrument_id: int, index: int):
    """
    Edit one installment.

    Request body: {"amount_cents": int?, "document_number": str?}
    """
    try:
        row = sales_service.edit_installment(sale_id, instrument_id, index, request.get_json(silent=True))
        return jsonify({"installment": row.to_dict()}), 200
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except NotFoundError as e:
        return jsonify(e.to_dict()), 404
    except ConflictError as e:
        return jsonify(e.to_dict()), 409
    except Exception:
        current_app.logger.exception("Failed to edit installment")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/instruments/<int:instrument_id>/installments/regenerate")
def regenerate_installments_route(sale_id: int, instrument_id: int):
    """
    Regenerate a schedule.

    Request body (all optional): plan fields to change, plus
    "discard_edits": true to drop manual edits.
    """
    try:
        data = request.get_json(silent=True)
        if data is not None and not isinstance(data, dict):
            return jsonify({"error": "Invalid JSON payload"}), 400
        instrument = sales_service.regenerate_installments(sale_id, instrument_id, data)
        return jsonify({"payment_instrument": instrument.to_dict()}), 200
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except NotFoundError as e:
        return jsonify(e.to_dict()), 404
    except ConflictError as e:
        return jsonify(e.to_dict()), 409
    except Exception:
        current_app.logger.exception("Failed to regenerate installments")
        return jsonify({"error": "Internal server error"}), 500
