# Overview: Flask API routes for the vehicle fleet (read side); returns JSON responses.

# backend/dealer/routes/vehicles.py
"""Vehicle API routes (read-only: status changes happen through sales)"""

from flask import Blueprint, current_app, jsonify, request

from ..services import vehicle_service
from ..validation import NotFoundError, ValidationError


vehicles_bp = Blueprint("vehicles", __name__, url_prefix="/api/vehicles")


@vehicles_bp.get("")
def list_vehicles_route():
    try:
        vehicles = vehicle_service.list_vehicles(
            status=request.args.get("status"),
            search=request.args.get("search"),
        )
        return jsonify({"vehicles": [v.to_dict() for v in vehicles]}), 200
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except Exception:
        current_app.logger.exception("Failed to list vehicles")
        return jsonify({"error": "Internal server error"}), 500


@vehicles_bp.get("/stats")
def vehicle_stats_route():
    try:
        return jsonify(vehicle_service.vehicle_stats()), 200
    except Exception:
        current_app.logger.exception("Failed to compute vehicle stats")
        return jsonify({"error": "Internal server error"}), 500


@vehicles_bp.get("/<int:vehicle_id>")
def get_vehicle_route(vehicle_id: int):
    try:
        vehicle = vehicle_service.get_vehicle(vehicle_id)
        return jsonify({"vehicle": vehicle.to_dict(include_media=True)}), 200
    except NotFoundError as e:
        return jsonify(e.to_dict()), 404
    except Exception:
        current_app.logger.exception("Failed to load vehicle")
        return jsonify({"error": "Internal server error"}), 500
