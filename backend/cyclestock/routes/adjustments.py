# Overview: Flask API routes for manual stock adjustments; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request

from ..errors import StockEngineError, ValidationError
from ..services import adjustment_service


adjustments_bp = Blueprint("adjustments", __name__, url_prefix="/api/adjustments")


@adjustments_bp.post("")
def post_adjustment_route():
    """
    Post a stock adjustment.

    Full request:
    {
        "client_request_id": "7c0e...",
        "adjustment_type": "manual",
        "remarks": "Cycle count",
        "details": [{"product_id": 1, "quantity": -2}, {"product_id": 4, "quantity": 3}]
    }

    Single-product shorthand:
    {"client_request_id": "7c0e...", "product_id": 1, "net_delta": -2, "remarks": "Damaged"}

    Returns:
        201: adjustment posted
        200: client_request_id already applied (duplicate ignored)
        400: invalid input or "No changes detected"
        404: unknown product
    """
    data = request.get_json(silent=True) or {}
    try:
        if "details" not in data and "product_id" in data:
            if not isinstance(data.get("client_request_id"), str) or not data["client_request_id"].strip():
                raise ValidationError("client_request_id is required")
            data = {
                **data,
                "details": [{"product_id": data.get("product_id"), "quantity": data.get("net_delta")}],
            }
        adjustment_request = adjustment_service.AdjustmentRequest.from_payload(data)
        result = adjustment_service.post_adjustment(adjustment_request)
        return jsonify(result.to_dict()), 200 if result.duplicate else 201
    except StockEngineError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to post adjustment")
        return jsonify({"error": "Internal server error"}), 500


@adjustments_bp.get("")
def list_adjustments_route():
    product_id = request.args.get("product_id", type=int)
    page = request.args.get("page", 1, type=int)
    page_size = request.args.get("page_size", 20, type=int)
    try:
        result = adjustment_service.list_adjustments(product_id=product_id, page=page, page_size=page_size)
        return jsonify(result), 200
    except StockEngineError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list adjustments")
        return jsonify({"error": "Internal server error"}), 500
