from flask import Blueprint, jsonify, request

from elhamd.services import payment_service, reporting_service
from elhamd.time_utils import parse_iso_datetime
from elhamd.validation import ValidationError


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _date_arg(name: str):
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return parse_iso_datetime(raw)
    except ValueError:
        raise reporting_service.ReportError(f"{name} must be an ISO-8601 date", details={"field": name})


def _branch_arg():
    raw = request.args.get("branch_id")
    if raw in (None, "", "all"):
        return None
    try:
        return int(raw)
    except ValueError:
        raise reporting_service.ReportError("branch_id must be an integer", details={"field": "branch_id"})


@reports_bp.get("/financial-overview")
def financial_overview_report():
    try:
        report = reporting_service.financial_overview(
            start=_date_arg("start"),
            end=_date_arg("end"),
            branch_id=_branch_arg(),
            period=request.args.get("period"),
        )
        return jsonify(report), 200
    except ValidationError as exc:
        return jsonify(exc.to_dict()), exc.status_code


@reports_bp.get("/invoices")
def invoice_summary_report():
    try:
        report = reporting_service.invoice_summary(
            start=_date_arg("start"),
            end=_date_arg("end"),
            branch_id=_branch_arg(),
        )
        return jsonify(report), 200
    except ValidationError as exc:
        return jsonify(exc.to_dict()), exc.status_code


@reports_bp.get("/payment-methods")
def payment_method_report():
    try:
        rows = payment_service.get_payment_method_summary(
            start=_date_arg("start"),
            end=_date_arg("end"),
            branch_id=_branch_arg(),
        )
        return jsonify({"rows": rows}), 200
    except ValidationError as exc:
        return jsonify(exc.to_dict()), exc.status_code
