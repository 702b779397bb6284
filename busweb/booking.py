from typing import Any, Dict, Tuple
from flask import Blueprint, jsonify
from flask_login import current_user
from .client import ApiError, error_message
from .services import BookingsService
from .state import api_client, get_booking_context, update_booking_context

booking_bp = Blueprint("booking", __name__, url_prefix="/booking")

# flat fees per booking, in VND
SERVICE_FEE = 25000
INSURANCE_FEE = 15000
CURRENCY = "VND"

BOOKING_FIELDS = (
    "route", "travelDate", "arrival", "seatType", "seatCount", "pricePerTicket",
    "contact", "passengers", "terminal", "company", "busPlate",
)


# ticket price times seats, plus the flat service and insurance fees
def compute_total(review: Dict[str, Any]) -> Tuple[float, Dict[str, Any]]:
    passengers = review.get("passengers") or []
    seat_count = review.get("seatCount") or 0
    if seat_count <= 0:
        seat_count = len(passengers)
    ticket_price = review.get("pricePerTicket") or 0

    tickets = ticket_price * seat_count
    total = tickets + SERVICE_FEE + INSURANCE_FEE
    return total, {
        "seatCount": seat_count,
        "ticketPrice": ticket_price,
        "tickets": tickets,
        "serviceFee": SERVICE_FEE,
        "insurance": INSURANCE_FEE,
        "total": total,
        "currency": CURRENCY,
    }


def _review_or_404():
    review = get_booking_context().get("review")
    if not review or not review.get("passengers"):
        return None, (jsonify({"ok": False, "error": "Nothing to review. Please choose your seats first."}), 404)
    return review, None


@booking_bp.route("/review")
def review_booking():
    review, missing = _review_or_404()
    if missing:
        return missing
    _total, pricing = compute_total(review)
    ctx = get_booking_context()
    return jsonify({
        "ok": True,
        "review": review,
        "pricing": pricing,
        "guest": not current_user.is_authenticated,
        "bookingReference": ctx.get("booking_reference"),
    })


# creates the booking upstream, as the signed-in user or as a guest
@booking_bp.route("/confirm", methods=["POST"])
def confirm_booking():
    review, missing = _review_or_404()
    if missing:
        return missing

    _total, pricing = compute_total(review)
    payload = {key: review.get(key) for key in BOOKING_FIELDS if review.get(key) is not None}
    payload["seatCount"] = pricing["seatCount"]
    payload["pricePerTicket"] = pricing["ticketPrice"]

    bookings = BookingsService(api_client())
    is_guest = not current_user.is_authenticated
    try:
        created = bookings.create_guest_booking(payload) if is_guest else bookings.create_booking(payload)
    except ApiError as exc:
        message = error_message(exc, "We could not confirm your booking. Please try again.")
        return jsonify({"ok": False, "error": message}), exc.status_code or 502

    created = created or {}
    update_booking_context({
        "booking_reference": created.get("bookingReference"),
        "booking": created,
        "guest": is_guest,
    })
    return jsonify({"ok": True, "booking": created, "pricing": pricing}), 201
