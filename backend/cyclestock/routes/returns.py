# Overview: Flask API routes for the return / replacement workflow; parses input and returns JSON responses.

# backend/cyclestock/routes/returns.py
"""
Return API Routes

DESIGN:
- POST /api/returns creates PEND returns, either for one sold line
  ({"sale_detail_id", "quantity"}) or for a whole sale ({"sale_id", "lines"})
- approve / post / reject move a return through its lifecycle
- post requires an idempotency_key; repeating it is answered 200 with
  "duplicate": true
"""

from flask import Blueprint, current_app, jsonify, request

from ..errors import StockEngineError, ValidationError
from ..services import return_service


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


# =============================================================================
# RETURN CREATION
# =============================================================================

@returns_bp.post("")
def create_return_route():
    """
    Request body (single line):
    {
        "sale_detail_id": 12,
        "quantity": 1,
        "replacement_product_id": 7,   (optional)
        "remarks": "Wrong size"         (optional)
    }

    Request body (counter flow):
    {
        "sale_id": 5,
        "lines": [{"sale_detail_id": 12, "quantity": 1}],
        "replacement_product_id": 7,   (optional)
        "reason": "Wrong size",
        "auto_post": false
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        if "sale_id" in data:
            records = return_service.submit_return(
                data.get("sale_id"),
                data.get("lines"),
                replacement_product_id=data.get("replacement_product_id"),
                reason=data.get("reason") or "",
                auto_post=bool(data.get("auto_post", False)),
            )
            return jsonify({"returns": [r.to_dict() for r in records]}), 201

        if data.get("sale_detail_id") is None:
            raise ValidationError("sale_detail_id or sale_id is required")
        record = return_service.create_return(
            data.get("sale_detail_id"),
            data.get("quantity"),
            replacement_product_id=data.get("replacement_product_id"),
            remarks=data.get("remarks"),
            transaction_date=data.get("transaction_date"),
        )
        return jsonify({"return": record.to_dict()}), 201
    except StockEngineError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create return")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# LIFECYCLE
# =============================================================================

@returns_bp.post("/<int:return_id>/approve")
def approve_return_route(return_id: int):
    try:
        record = return_service.approve_return(return_id)
        return jsonify({"return": record.to_dict()}), 200
    except StockEngineError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to approve return %s", return_id)
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.post("/<int:return_id>/post")
def post_return_route(return_id: int):
    """Request body: {"idempotency_key": "b1f3..."}"""
    data = request.get_json(silent=True) or {}
    try:
        result = return_service.post_return(return_id, data.get("idempotency_key"))
        return jsonify({"return": result.to_dict(), "duplicate": result.duplicate}), 200
    except StockEngineError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to post return %s", return_id)
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.post("/<int:return_id>/reject")
def reject_return_route(return_id: int):
    data = request.get_json(silent=True) or {}
    try:
        record = return_service.reject_return(return_id, data.get("reason"))
        return jsonify({"return": record.to_dict()}), 200
    except StockEngineError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reject return %s", return_id)
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# QUERIES
# =============================================================================

@returns_bp.get("")
def list_returns_route():
    try:
        result = return_service.list_returns(
            status=request.args.get("status"),
            query=request.args.get("q"),
            start=request.args.get("start"),
            end=request.args.get("end"),
            page=request.args.get("page", 1, type=int),
            page_size=request.args.get("page_size", 20, type=int),
        )
        return jsonify(result), 200
    except StockEngineError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list returns")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("/<int:return_id>")
def get_return_route(return_id: int):
    try:
        record = return_service.get_return(return_id)
        return jsonify({"return": record.to_dict()}), 200
    except StockEngineError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get return %s", return_id)
        return jsonify({"error": "Internal server error"}), 500
