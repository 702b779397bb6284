from flask import Blueprint, current_app, jsonify, request
from .passenger_details import PassengerDetailsScreen, TripContext
from .seats import ContactInfo, PassengerFormState
from .services import BookingsService
from .state import flow_key, get_booking_context, make_api_client, api_client, update_booking_context

bp = Blueprint("seats", __name__, url_prefix="/passengers")


def _screens():
    return current_app.extensions["passenger_screens"]


def _current_screen():
    return _screens().get(flow_key())


def _no_screen():
    return jsonify({"ok": False, "error": "No booking in progress. Please pick a trip first."}), 404


def _screen_response(screen: PassengerDetailsScreen, status: int = 200):
    view = screen.view()
    view["notices"] = screen.pop_notices()
    return jsonify({"ok": True, **view}), status


def _open_screen(trip: TripContext, passengers, contact) -> PassengerDetailsScreen:
    # the poller runs outside any request, so it gets its own anonymous client
    client = make_api_client()
    bookings = BookingsService(client)
    cfg = current_app.config

    def fetch(t: TripContext):
        return bookings.get_seat_availability(t.route, t.travel_date, t.bus_plate, t.seat_type)

    screen = PassengerDetailsScreen(
        trip,
        fetch,
        passengers=passengers,
        contact=contact,
        interval=cfg["SEAT_SYNC_INTERVAL"],
        timer_factory=cfg.get("SEAT_SYNC_TIMER"),
        on_unmount=client.close,
    )
    return _screens().mount(flow_key(), screen)


# opens the passenger step for a trip (or resumes it when coming back from review)
@bp.post("/start")
def start():
    payload = request.get_json(silent=True) or {}
    try:
        trip = TripContext.from_payload(payload)
    except (TypeError, ValueError):
        return jsonify({"ok": False, "error": "Missing or invalid trip details."}), 400

    existing = _current_screen()
    if existing is not None and existing.trip == trip and not payload.get("passengers"):
        return _screen_response(existing)

    passengers = payload.get("passengers")
    if passengers is not None:
        passengers = [PassengerFormState.from_payload(p) for p in passengers if isinstance(p, dict)]
    contact = ContactInfo.from_payload(payload.get("contact"))
    screen = _open_screen(trip, passengers, contact)
    return _screen_response(screen, 201)


# the browser polls this; it also carries one-time notices
@bp.get("/")
def current():
    screen = _current_screen()
    if screen is None:
        return _no_screen()
    return _screen_response(screen)


@bp.post("/refresh")
def refresh():
    screen = _current_screen()
    if screen is None:
        return _no_screen()
    screen.refresh()
    return _screen_response(screen)


@bp.post("/seats/<seat_id>/toggle")
def toggle(seat_id):
    screen = _current_screen()
    if screen is None:
        return _no_screen()
    # full coach or taken seat: the click is ignored
    screen.toggle_seat(seat_id.upper())
    return _screen_response(screen)


@bp.delete("/seats/<seat_label>")
def remove_passenger(seat_label):
    screen = _current_screen()
    if screen is None:
        return _no_screen()
    screen.remove_passenger(seat_label.upper())
    return _screen_response(screen)


@bp.patch("/<passenger_id>")
def update_passenger(passenger_id):
    screen = _current_screen()
    if screen is None:
        return _no_screen()
    changes = request.get_json(silent=True) or {}
    if screen.update_passenger(passenger_id, changes) is None:
        return jsonify({"ok": False, "error": "Passenger not found."}), 404
    return _screen_response(screen)


@bp.put("/contact")
def update_contact():
    screen = _current_screen()
    if screen is None:
        return _no_screen()
    data = request.get_json(silent=True) or {}
    screen.update_contact(phone=data.get("phone"), email=data.get("email"))
    return _screen_response(screen)


# validates the forms and hands the booking over to the review step
@bp.post("/continue")
def continue_to_review():
    screen = _current_screen()
    if screen is None:
        return _no_screen()
    problem = screen.validate()
    if problem:
        return jsonify({"ok": False, "error": problem}), 400

    review = screen.review_payload()
    update_booking_context({"review": review, "booking_reference": None, "payment": None})
    _screens().unmount(flow_key())
    return jsonify({"ok": True, "review": review})


@bp.post("/leave")
def leave():
    closed = _screens().unmount(flow_key())
    return jsonify({"ok": True, "closed": closed})


# direct passthrough of the latest reservation snapshot for a trip
@bp.get("/api/availability")
def availability():
    route = (request.args.get("route") or "").strip()
    travel_date = (request.args.get("travelDate") or "").strip()
    if not route or not travel_date:
        review = get_booking_context().get("review") or {}
        route = route or review.get("route") or ""
        travel_date = travel_date or review.get("travelDate") or ""
    if not route or not travel_date:
        return jsonify({"ok": False, "error": "route and travelDate are required"}), 400

    snapshot = BookingsService(api_client()).get_seat_availability(
        route,
        travel_date,
        bus_plate=request.args.get("busPlate") or None,
        seat_type=request.args.get("seatType") or None,
    )
    return jsonify({"ok": True, "data": snapshot.to_payload()})
