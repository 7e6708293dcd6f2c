# Overview: Flask API routes for stock levels, movement history, low-stock alerts and reordering.

# backend/cyclestock/routes/stock.py
"""
Stock API Routes

- GET  /api/stock/<product_id>           derived QOH + status (optional ?as_of=)
- GET  /api/stock/<product_id>/history   newest-first movements with running balance
- GET  /api/stock/alerts                 OUT/LOW products, lowest stock first
- GET  /api/stock/<product_id>/reorder   pre-filled purchase order
- POST /api/stock/<product_id>/reorder   open a Pending supply from the draft
- POST /api/supplies/<supply_id>/receive mark a Pending supply Received
"""

from flask import Blueprint, current_app, jsonify, request

from ..errors import StockEngineError
from ..services import history_service, reorder_service, stock_service


stock_bp = Blueprint("stock", __name__, url_prefix="/api")


@stock_bp.get("/stock/<int:product_id>")
def get_stock_route(product_id: int):
    try:
        summary = stock_service.get_stock_summary(product_id, as_of=request.args.get("as_of"))
        return jsonify(summary), 200
    except StockEngineError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get stock for product %s", product_id)
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/stock/<int:product_id>/history")
def get_history_route(product_id: int):
    page = request.args.get("page", 1, type=int)
    page_size = request.args.get("page_size", type=int)
    try:
        result = history_service.history(product_id, page=page, page_size=page_size)
        return jsonify(result.to_dict()), 200
    except StockEngineError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get history for product %s", product_id)
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/stock/alerts")
def low_stock_alerts_route():
    limit = request.args.get("limit", type=int)
    try:
        alerts = reorder_service.low_stock_alerts(limit=limit)
        return jsonify({"alerts": alerts, "count": len(alerts)}), 200
    except StockEngineError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build low-stock alerts")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/stock/<int:product_id>/reorder")
def reorder_draft_route(product_id: int):
    try:
        return jsonify(reorder_service.reorder_draft(product_id)), 200
    except StockEngineError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build reorder draft for product %s", product_id)
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/stock/<int:product_id>/reorder")
def create_purchase_order_route(product_id: int):
    """
    Request body (all optional; missing values come from the draft):
    {
        "supplier_id": 3,
        "quantity": 10,
        "supply_date": "2024-03-01T09:00:00Z",
        "remarks": "Restock before weekend"
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        supply = reorder_service.create_purchase_order(
            product_id,
            quantity=data.get("quantity"),
            supplier_id=data.get("supplier_id"),
            supply_date=data.get("supply_date"),
            remarks=data.get("remarks"),
        )
        return jsonify({"supply": supply.to_dict()}), 201
    except StockEngineError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create purchase order for product %s", product_id)
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/supplies/<int:supply_id>/receive")
def receive_supply_route(supply_id: int):
    data = request.get_json(silent=True) or {}
    try:
        supply = reorder_service.receive_supply(supply_id, received_at=data.get("received_at"))
        return jsonify({"supply": supply.to_dict()}), 200
    except StockEngineError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to receive supply %s", supply_id)
        return jsonify({"error": "Internal server error"}), 500
