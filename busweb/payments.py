from flask import Blueprint, request, jsonify, url_for
from flask_login import current_user
from .client import ApiError, error_message
from .services import PaymentsService
from .state import api_client, get_booking_context, update_booking_context

payments = Blueprint("payments", __name__, url_prefix="/payments")


# hands the booking to the payment provider; the context is mirrored in the
# session so the status page still knows the booking after the redirect
@payments.route("/session", methods=["POST"])
def create_session():
    data = request.get_json(silent=True) or {}
    ctx = get_booking_context()
    reference = data.get("bookingReference") or ctx.get("booking_reference")
    if not reference:
        return jsonify({"ok": False, "error": "Please confirm your booking before paying."}), 400

    is_guest = not current_user.is_authenticated
    contact = (ctx.get("review") or {}).get("contact") or data.get("contact")
    success_url = data.get("successUrl") or url_for(
        "payments.payment_status", bookingReference=reference, _external=True
    )
    try:
        session_info = PaymentsService(api_client()).create_session(
            reference,
            success_url,
            cancel_url=data.get("cancelUrl"),
            contact=contact,
            is_guest=is_guest,
        )
    except ApiError as exc:
        return jsonify({"ok": False, "error": error_message(exc, "Unable to start the payment.")}), exc.status_code or 502

    update_booking_context({
        "booking_reference": reference,
        "payment": {
            "paymentId": session_info.get("paymentId"),
            "bookingReference": reference,
            "contact": contact,
            "isGuest": is_guest,
        },
    })
    return jsonify({"ok": True, "payment": session_info, "checkoutUrl": session_info.get("checkoutUrl")}), 201


@payments.route("/status", methods=["GET"])
def payment_status():
    ctx = get_booking_context()
    mirrored = ctx.get("payment") or {}
    payment_id = request.args.get("paymentId") or mirrored.get("paymentId")
    reference = request.args.get("bookingReference") or mirrored.get("bookingReference")
    if not payment_id:
        return jsonify({"ok": False, "error": "Unknown payment."}), 404

    try:
        latest = PaymentsService(api_client()).get_status(payment_id)
    except ApiError as exc:
        return jsonify({"ok": False, "error": error_message(exc, "Unable to refresh payment status.")}), exc.status_code or 502

    status = latest.get("status") or "processing"
    return jsonify({
        "ok": True,
        "payment": latest,
        "status": status,
        "final": status in PaymentsService.FINAL_STATUSES,
        "bookingReference": reference or latest.get("bookingReference"),
        "context": mirrored if mirrored.get("bookingReference") == (reference or latest.get("bookingReference")) else None,
    })


payments_bp = payments
