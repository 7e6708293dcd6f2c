from flask import Blueprint, current_app, jsonify, request

from ..errors import StockEngineError
from ..services import reporting_service


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _date_range_arg():
    """?start=&end= wins over ?range=<name>."""
    start = request.args.get("start")
    end = request.args.get("end")
    if start or end:
        return {"start": start, "end": end}
    return request.args.get("range")


@reports_bp.get("/aggregate")
def aggregate_report():
    try:
        report = reporting_service.get_aggregate_report(
            date_range=_date_range_arg(),
            bucketing=request.args.get("bucketing", "daily"),
            dimension=request.args.get("dimension", "none"),
            metric=request.args.get("metric", "sales"),
        )
        return jsonify(report), 200
    except StockEngineError as exc:
        return jsonify({"error": exc.message}), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to build aggregate report")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/kpis")
def kpis_report():
    try:
        return jsonify(reporting_service.sales_kpis(_date_range_arg())), 200
    except StockEngineError as exc:
        return jsonify({"error": exc.message}), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to build KPIs")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/best-sellers")
def best_sellers_report():
    limit = request.args.get("limit", 5, type=int)
    try:
        rows = reporting_service.best_sellers(_date_range_arg(), limit)
        return jsonify({"rows": rows}), 200
    except StockEngineError as exc:
        return jsonify({"error": exc.message}), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to build best sellers")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/peak-hours")
def peak_hours_report():
    try:
        return jsonify(reporting_service.peak_hours(_date_range_arg())), 200
    except StockEngineError as exc:
        return jsonify({"error": exc.message}), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to build peak hours")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/stock-movements")
def stock_movements_report():
    try:
        return jsonify(reporting_service.stock_movement_report(_date_range_arg())), 200
    except StockEngineError as exc:
        return jsonify({"error": exc.message}), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to build stock movement report")
        return jsonify({"error": "Internal server error"}), 500
