from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .client import ApiClient, ApiSession


# reserved seat as reported by the booking service
@dataclass(frozen=True)
class ReservedSeat:
    seat_label: str
    status: str  # "locked" or "confirmed"
    booking_reference: str = ""
    expires_at: Optional[str] = None

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "ReservedSeat":
        return cls(
            seat_label=str(data.get("seatLabel") or ""),
            status=data.get("status") or "locked",
            booking_reference=data.get("bookingReference") or "",
            expires_at=data.get("expiresAt"),
        )


@dataclass(frozen=True)
class SeatAvailabilitySnapshot:
    """Point-in-time view of which seats are held for one route/date/bus.

    Always replaced wholesale, never merged with a previous snapshot.
    """

    route: str
    travel_date: str
    bus_plate: Optional[str] = None
    seat_type: Optional[str] = None
    seats: List[ReservedSeat] = field(default_factory=list)
    reserved_seat_ids: List[str] = field(default_factory=list)

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "SeatAvailabilitySnapshot":
        seats = [ReservedSeat.from_payload(s) for s in (data.get("seats") or [])]
        reserved = data.get("reservedSeatIds")
        if reserved is None:
            reserved = [s.seat_label for s in seats]
        return cls(
            route=data.get("route") or "",
            travel_date=data.get("travelDate") or "",
            bus_plate=data.get("busPlate"),
            seat_type=data.get("seatType"),
            seats=seats,
            reserved_seat_ids=[str(seat_id) for seat_id in reserved],
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "route": self.route,
            "travelDate": self.travel_date,
            "busPlate": self.bus_plate,
            "seatType": self.seat_type,
            "seats": [
                {
                    "seatLabel": s.seat_label,
                    "status": s.status,
                    "bookingReference": s.booking_reference,
                    "expiresAt": s.expires_at,
                }
                for s in self.seats
            ],
            "reservedSeatIds": list(self.reserved_seat_ids),
        }


class BookingsService:
    def __init__(self, client: ApiClient):
        self.client = client

    def create_booking(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self.client.post("/bookings", json=payload)

    def create_guest_booking(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self.client.post("/bookings/guest", json=payload)

    def list_bookings(self) -> List[Dict[str, Any]]:
        return self.client.get("/bookings") or []

    def cancel_booking(self, reference: str) -> Dict[str, Any]:
        return self.client.patch(f"/bookings/{reference}/cancel")

    def lookup_guest_booking(self, reference: str, phone: Optional[str] = None,
                             email: Optional[str] = None) -> Dict[str, Any]:
        contact = {k: v for k, v in (("phone", phone), ("email", email)) if v}
        return self.client.post("/bookings/lookup", json={"bookingReference": reference, "contact": contact})

    def get_seat_availability(self, route: str, travel_date: str, bus_plate: Optional[str] = None,
                              seat_type: Optional[str] = None) -> SeatAvailabilitySnapshot:
        """Ask which seats are locked or confirmed. Raises ApiError on failure."""
        if not route or not travel_date:
            raise ValueError("route and travel_date are required")
        data = self.client.get(
            "/bookings/availability",
            params={
                "route": route,
                "travelDate": travel_date,
                "busPlate": bus_plate,
                "seatType": seat_type,
            },
        )
        return SeatAvailabilitySnapshot.from_payload(data or {})


class TripsService:
    SORT_OPTIONS = ("price_asc", "price_desc", "time_asc", "time_desc", "duration_asc", "duration_desc")

    def __init__(self, client: ApiClient):
        self.client = client

    def search_trips(self, **params) -> Dict[str, Any]:
        if params.get("sortBy") and params["sortBy"] not in self.SORT_OPTIONS:
            params["sortBy"] = None
        if params.get("amenities") == []:
            params["amenities"] = None
        # {trips, total, page, limit, totalPages}
        return self.client.get("/trips/search", params=params) or {}

    def get_trip(self, trip_id: int) -> Dict[str, Any]:
        return self.client.get(f"/trips/{trip_id}")


class PaymentsService:
    FINAL_STATUSES = ("succeeded", "failed", "cancelled")

    def __init__(self, client: ApiClient):
        self.client = client

    def create_session(self, booking_reference: str, success_url: str, cancel_url: Optional[str] = None,
                       contact: Optional[Dict[str, str]] = None, is_guest: bool = False) -> Dict[str, Any]:
        body = {
            "bookingReference": booking_reference,
            "successUrl": success_url,
            "cancelUrl": cancel_url,
        }
        if is_guest:
            body["contact"] = contact
            return _normalize_payment(self.client.post("/payments/session/guest", json=body))
        return _normalize_payment(self.client.post("/payments/session", json=body))

    def get_status(self, payment_id: str) -> Dict[str, Any]:
        return _normalize_payment(self.client.get(f"/payments/{payment_id}"))


def _normalize_payment(session: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    session = dict(session or {})
    if session.get("status") == "pending":
        session["status"] = "processing"
    return session


class AuthService:
    def __init__(self, client: ApiClient):
        self.client = client

    @property
    def session(self) -> ApiSession:
        return self.client.session

    def login(self, identifier: str, password: str) -> Dict[str, Any]:
        data = self.client.post("/user/login", json={"identifier": identifier, "password": password}) or {}
        self.session.set_tokens(data.get("accessToken"), data.get("refreshToken"))
        return data

    def register(self, email: str, phone: str, password: str, full_name: str) -> Dict[str, Any]:
        return self.client.post(
            "/user/register",
            json={"email": email, "phone": phone, "password": password, "fullName": full_name},
        )

    def logout(self) -> None:
        try:
            if self.session.is_authenticated:
                self.client.post("/user/logout")
        finally:
            self.session.clear()

    def current_user(self) -> Dict[str, Any]:
        return self.client.get("/user/me")

    def forgot_password(self, email: str) -> Dict[str, Any]:
        return self.client.post("/user/forgot-password", json={"email": email})
