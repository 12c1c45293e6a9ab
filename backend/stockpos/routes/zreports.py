from flask import Blueprint, jsonify, g

from stockpos.decorators import require_auth, require_role
from stockpos.services import zreport_service
from stockpos.services.zreport_service import NoNewSalesError, serialize_zreport


zreports_bp = Blueprint("zreports", __name__, url_prefix="/api/zreports")


@zreports_bp.post("/")
@require_auth
@require_role("admin")
def generate_zreport_route():
    try:
        result = zreport_service.generate_zreport(g.session_context.username)
    except NoNewSalesError as exc:
        return jsonify({"generated": False, "message": str(exc)}), 200

    return jsonify({
        "generated": True,
        "sales_count": result.sales_count,
        "zreport": serialize_zreport(result.report),
        "message": f"Z-report generated successfully with {result.sales_count} sales.",
    }), 201


@zreports_bp.get("/")
@require_auth
@require_role("admin")
def list_zreports_route():
    return jsonify(zreport_service.zreport_summary()), 200


@zreports_bp.get("/<report_id>")
@require_auth
@require_role("admin")
def get_zreport_route(report_id: str):
    report = zreport_service.get_zreport(report_id)
    return jsonify({"zreport": serialize_zreport(report)}), 200
