from flask import Blueprint, request, jsonify
from flask_login import login_required
from .client import ApiError, error_message
from .services import BookingsService
from .state import api_client

bookings_bp = Blueprint("bookings", __name__, url_prefix="/bookings")


# builds the My Tickets list, split the way the page shows it
@bookings_bp.route("/")
@login_required
def my_bookings():
    records = BookingsService(api_client()).list_bookings()

    upcoming, cancelled, other = [], [], []
    for rec in records:
        status = (rec.get("status") or "").lower()
        if status in ("cancelled", "expired"):
            cancelled.append(rec)
        elif status in ("pending", "confirmed"):
            upcoming.append(rec)
        else:
            other.append(rec)

    return jsonify({
        "ok": True,
        "bookings": {"upcoming": upcoming, "cancelled": cancelled, "other": other},
        "total": len(records),
    })


@bookings_bp.route("/<reference>/cancel", methods=["POST"])
@login_required
def cancel_booking(reference):
    reference = (reference or "").strip()
    if not reference:
        return jsonify({"ok": False, "error": "Missing booking reference"}), 400
    try:
        record = BookingsService(api_client()).cancel_booking(reference)
    except ApiError as exc:
        return jsonify({"ok": False, "error": error_message(exc, "Booking not found")}), exc.status_code or 502
    return jsonify({"ok": True, "booking": record})


# guest lookup: reference plus the phone or email used when booking
@bookings_bp.route("/lookup", methods=["POST"])
def lookup_guest_booking():
    data = request.get_json(silent=True) or request.form or {}
    reference = (data.get("bookingReference") or "").strip()
    phone = (data.get("phone") or "").strip() or None
    email = (data.get("email") or "").strip() or None
    if not reference:
        return jsonify({"ok": False, "error": "Please enter your booking reference."}), 400
    if not phone and not email:
        return jsonify({"ok": False, "error": "Please enter the phone or email used for the booking."}), 400

    try:
        record = BookingsService(api_client()).lookup_guest_booking(reference, phone=phone, email=email)
    except ApiError as exc:
        return jsonify({"ok": False, "error": error_message(exc, "Booking not found")}), exc.status_code or 502
    return jsonify({"ok": True, "booking": record})
