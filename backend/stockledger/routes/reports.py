from io import BytesIO

from flask import Blueprint, jsonify, request, send_file

from ..decorators import require_auth, require_permission
from ..services import export_service, reporting_service
from ..services.ledger_service import get_ledger
from ..time_utils import parse_report_window, to_utc_z


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _window():
    return parse_report_window(request.args.get("startDate"), request.args.get("endDate"))


def _window_dict(start, end) -> dict:
    return {"start": to_utc_z(start), "end": to_utc_z(end)}


@reports_bp.get("/inventory")
@require_auth
@require_permission("VIEW_REPORTS")
def detailed_report():
    try:
        start, end = _window()
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400

    rows = get_ledger().get_detailed_movements_report(start, end)
    for row in rows:
        row["unit_price"] = reporting_service.movement_unit_price(row)
    return jsonify({"window": _window_dict(start, end), "items": rows, "count": len(rows)}), 200


@reports_bp.get("/summary")
@require_auth
@require_permission("VIEW_REPORTS")
def summary_report():
    try:
        start, end = _window()
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400

    rows = get_ledger().get_detailed_movements_report(start, end)
    summary = reporting_service.summarize_movements(rows)
    summary["window"] = _window_dict(start, end)
    return jsonify(summary), 200


@reports_bp.get("/stock")
@require_auth
@require_permission("VIEW_REPORTS")
def stock_report():
    try:
        start, end = _window()
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400

    rows = get_ledger().get_inventory_report(start, end)
    return jsonify({"window": _window_dict(start, end), "items": rows, "count": len(rows)}), 200


@reports_bp.get("/export/<report_type>")
@require_auth
@require_permission("EXPORT_REPORTS")
def export_report(report_type: str):
    if report_type not in export_service.EXPORT_TYPES:
        return jsonify({"error": f"report type must be one of {', '.join(export_service.EXPORT_TYPES)}"}), 400

    try:
        start, end = _window()
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400

    ledger = get_ledger()
    rows = ledger.get_detailed_movements_report(start, end)

    if report_type == "detailed":
        content = export_service.build_detailed_workbook(rows, start, end)
    else:
        summary = reporting_service.summarize_movements(rows)
        content = export_service.build_summary_workbook(
            summary, ledger.get_inventory_report(start, end), start, end
        )

    return send_file(
        BytesIO(content),
        mimetype=export_service.XLSX_MIMETYPE,
        as_attachment=True,
        download_name=export_service.export_filename(report_type, start, end),
    )
