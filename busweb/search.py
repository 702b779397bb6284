# busweb/search.py
from datetime import date
from flask import Blueprint, request, jsonify
from .services import TripsService
from .state import api_client

search_bp = Blueprint("search", __name__)

NUMERIC_FILTERS = ("minPrice", "maxPrice", "page", "limit")


@search_bp.route("/search", methods=["GET"], endpoint="search")
def search_page():
    origin = (request.args.get("origin") or "").strip()
    destination = (request.args.get("destination") or "").strip()
    depart_str = (request.args.get("date") or "").strip()

    if depart_str:
        try:
            date.fromisoformat(depart_str)
        except ValueError:
            return jsonify({"ok": False, "error": "Please enter the travel date as YYYY-MM-DD."}), 400

    params = {
        "origin": origin or None,
        "destination": destination or None,
        "date": depart_str or None,
        "timeFrom": request.args.get("timeFrom"),
        "timeTo": request.args.get("timeTo"),
        "busType": request.args.get("busType"),
        "sortBy": request.args.get("sortBy"),
        "amenities": request.args.getlist("amenities") or None,
    }
    for name in NUMERIC_FILTERS:
        value = request.args.get(name, type=float if name.endswith("Price") else int)
        params[name] = value

    result = TripsService(api_client()).search_trips(**params)
    return jsonify({"ok": True, **result})


@search_bp.route("/trips/<int:trip_id>")
def trip_details(trip_id: int):
    trip = TripsService(api_client()).get_trip(trip_id)
    return jsonify({"ok": True, "trip": trip})
