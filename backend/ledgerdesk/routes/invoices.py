# Overview: Flask API routes for invoices; parses input and returns JSON responses.

# backend/ledgerdesk/routes/invoices.py
"""Invoice API routes"""

from flask import Blueprint, request, jsonify, g, current_app
from sqlalchemy.exc import IntegrityError

from ..models import Invoice
from ..services import invoice_service
from ..services.invoice_service import InvoiceError
from ..validation import ModelValidationPolicy, ValidationError, validate_payload, validate_invoice_items
from ..decorators import require_user, require_role


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")

INVOICE_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"customer_id", "currency_id", "due_date", "created_at"},
    required_on_create={"customer_id", "currency_id"},
)


@invoices_bp.post("/")
@require_user
def create_invoice_route():
    """
    Create an invoice and consume stock for its items.

    Body: customer_id, currency_id, optional due_date, items[{product_id, quantity, unit_price}]
    """
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    header = dict(payload)
    raw_items = header.pop("items", None)

    try:
        patch = validate_payload(
            model=Invoice,
            payload=header,
            policy=INVOICE_CREATE_POLICY,
            partial=False,
        )
        items = validate_invoice_items(raw_items)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        invoice = invoice_service.create_invoice(
            customer_id=patch["customer_id"],
            currency_id=patch["currency_id"],
            items=items,
            created_by_user_id=g.current_user.id,
            due_date=patch.get("due_date"),
            created_at=patch.get("created_at"),
        )
        return jsonify({"invoice": invoice.to_dict(include_items=True)}), 201

    except InvoiceError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except IntegrityError as e:
        return jsonify({"error": str(e.orig)}), 409
    except Exception:
        current_app.logger.exception("Failed to create invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/")
@require_user
def list_invoices_route():
    """
    List invoices, newest first.

    Query: optional status (draft|sent|paid|overdue). Attendants never see paid invoices.
    """
    status = request.args.get("status") or None
    try:
        invoices = invoice_service.list_invoices(role=g.current_user.role, status=status)
    except InvoiceError as e:
        return jsonify({"error": str(e), "details": e.details}), 400

    return jsonify({
        "invoices": [inv.to_dict() for inv in invoices],
        "count": len(invoices),
    }), 200


@invoices_bp.get("/overdue-summary")
@require_user
def overdue_summary_route():
    summary = invoice_service.get_overdue_summary()
    return jsonify({"count": summary["count"], "total": str(summary["total"])}), 200


@invoices_bp.get("/<int:invoice_id>")
@require_user
def get_invoice_route(invoice_id: int):
    """Get invoice with items."""
    invoice = invoice_service.get_invoice(invoice_id)
    if not invoice:
        return jsonify({"error": "Invoice not found"}), 404

    return jsonify({"invoice": invoice.to_dict(include_items=True)}), 200


@invoices_bp.patch("/<int:invoice_id>/status")
@require_user
def update_status_route(invoice_id: int):
    """Set an invoice's status. No stock effect."""
    data = request.get_json(silent=True) or {}
    status = data.get("status") if isinstance(data, dict) else None
    if not status:
        return jsonify({"error": "status required"}), 400

    try:
        invoice = invoice_service.update_status(invoice_id, status)
    except InvoiceError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to update invoice status")
        return jsonify({"error": "Internal server error"}), 500

    if not invoice:
        return jsonify({"error": "Invoice not found"}), 404

    current_app.logger.info("Invoice %s status set to %s", invoice.invoice_number, status)
    return jsonify({"invoice": invoice.to_dict()}), 200


@invoices_bp.delete("/<int:invoice_id>")
@require_user
@require_role("admin")
def delete_invoice_route(invoice_id: int):
    """
    Delete an invoice and restore the stock it consumed.

    Available to: admin
    """
    try:
        deleted = invoice_service.delete_invoice(invoice_id, deleted_by_user_id=g.current_user.id)
    except InvoiceError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except IntegrityError as e:
        return jsonify({"error": str(e.orig)}), 409
    except Exception:
        current_app.logger.exception("Failed to delete invoice")
        return jsonify({"error": "Internal server error"}), 500

    if not deleted:
        return jsonify({"error": "Invoice not found"}), 404

    return jsonify({"deleted": True}), 200
