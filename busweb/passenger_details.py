import threading
import time
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional, Sequence

from loguru import logger

from .availability import AvailabilitySync, DEFAULT_SYNC_INTERVAL
from .seats import (
    DEFAULT_SEAT_LAYOUT,
    ContactInfo,
    PassengerFormState,
    SeatLayoutRow,
    build_passengers_from_seats,
    reconcile_selection,
    reserved_seat_ids,
    seat_map_view,
    seat_order,
    sort_seats,
    toggle_seat,
    validate_passengers,
)
from .services import SeatAvailabilitySnapshot

SEATS_TAKEN_MESSAGE = "Some seats you selected were just reserved. Please choose again."
DEFAULT_TICKET_LIMIT = 2

EDITABLE_FIELDS = {"name": "name", "idNumber": "id_number", "phone": "phone", "email": "email"}


@dataclass(frozen=True)
class TripContext:
    """The trip the user picked on the search/trip pages."""

    route: str
    travel_date: str
    bus_plate: Optional[str] = None
    seat_type: Optional[str] = None
    seat_count: Optional[int] = None
    price_per_ticket: Optional[float] = None
    terminal: Optional[str] = None
    company: Optional[str] = None
    arrival: Optional[str] = None

    _payload_keys = {
        "route": "route",
        "travel_date": "travelDate",
        "bus_plate": "busPlate",
        "seat_type": "seatType",
        "seat_count": "seatCount",
        "price_per_ticket": "pricePerTicket",
        "terminal": "terminal",
        "company": "company",
        "arrival": "arrival",
    }

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "TripContext":
        values = {attr: data.get(key) for attr, key in cls._payload_keys.items()}
        if not values["route"] or not values["travel_date"]:
            raise ValueError("route and travelDate are required")
        if values["seat_count"] is not None:
            values["seat_count"] = int(values["seat_count"])
        if values["price_per_ticket"] is not None:
            values["price_per_ticket"] = float(values["price_per_ticket"])
        return cls(**values)

    def to_payload(self) -> Dict[str, Any]:
        return {key: getattr(self, attr) for attr, key in self._payload_keys.items()}


class PassengerDetailsScreen:
    """Seat choice and passenger forms for one booking in progress.

    Selection, passenger forms and contact live here for as long as the user
    stays on the passenger-details step. A background AvailabilitySync feeds
    fresh reservation snapshots, and every snapshot drops selected seats that
    someone else has taken.
    """

    def __init__(
        self,
        trip: TripContext,
        fetch_snapshot: Callable[[TripContext], SeatAvailabilitySnapshot],
        layout: Sequence[SeatLayoutRow] = DEFAULT_SEAT_LAYOUT,
        passengers: Optional[Sequence[PassengerFormState]] = None,
        contact: Optional[ContactInfo] = None,
        interval: float = DEFAULT_SYNC_INTERVAL,
        timer_factory: Optional[Callable] = None,
        on_unmount: Optional[Callable[[], None]] = None,
    ):
        self.trip = trip
        self.layout = layout
        if trip.seat_count is not None:
            limit = trip.seat_count
        elif passengers is not None:
            limit = len(passengers)
        else:
            limit = DEFAULT_TICKET_LIMIT
        self.max_selectable = max(1, limit)
        self.contact = contact or ContactInfo()
        self.reserved: List[str] = []
        self._lock = threading.RLock()
        self._notices: List[str] = []
        self._on_unmount = on_unmount

        passengers = passengers or ()
        on_layout = set(seat_order(layout))
        seat_labels = [p.seat_label for p in passengers if p.seat_label in on_layout]
        if seat_labels:
            self.selected = sort_seats(seat_labels, layout)[: self.max_selectable]
        else:
            taken = reserved_seat_ids(layout)
            free = [s for s in seat_order(layout) if s not in taken]
            self.selected = free[: self.max_selectable]
        self.passengers = build_passengers_from_seats(self.selected, passengers)

        sync_kwargs = {"interval": interval}
        if timer_factory is not None:
            sync_kwargs["timer_factory"] = timer_factory
        self.sync = AvailabilitySync(lambda: fetch_snapshot(self.trip), self._apply_snapshot, **sync_kwargs)

    def mount(self) -> None:
        logger.debug(f"passenger screen mounted for {self.trip.route} on {self.trip.travel_date}")
        self.sync.start()

    def unmount(self) -> None:
        self.sync.stop()
        if self._on_unmount is not None:
            self._on_unmount()

    def refresh(self) -> bool:
        return self.sync.refresh(manual=True)

    def toggle_seat(self, seat_id: str) -> bool:
        with self._lock:
            live_and_static = reserved_seat_ids(self.layout, self.reserved)
            selection = toggle_seat(self.selected, seat_id, self.max_selectable, live_and_static, self.layout)
            if selection == self.selected:
                return False
            self._set_selection(selection)
            return True

    def remove_passenger(self, seat_label: str) -> bool:
        with self._lock:
            if len(self.passengers) <= 1 or seat_label not in self.selected:
                return False
            self._set_selection([s for s in self.selected if s != seat_label])
            return True

    def update_passenger(self, passenger_id: str, changes: Dict[str, Any]) -> Optional[PassengerFormState]:
        updates = {EDITABLE_FIELDS[k]: str(v or "") for k, v in changes.items() if k in EDITABLE_FIELDS}
        with self._lock:
            for i, passenger in enumerate(self.passengers):
                if passenger.id == passenger_id:
                    self.passengers[i] = replace(passenger, **updates)
                    return self.passengers[i]
        return None

    def update_contact(self, phone: Optional[str] = None, email: Optional[str] = None) -> ContactInfo:
        with self._lock:
            self.contact = ContactInfo(
                phone=self.contact.phone if phone is None else phone,
                email=self.contact.email if email is None else email,
            )
            return self.contact

    def pop_notices(self) -> List[str]:
        with self._lock:
            notices, self._notices = self._notices, []
            return notices

    def validate(self) -> Optional[str]:
        with self._lock:
            return validate_passengers(self.passengers, self.contact)

    def review_payload(self) -> Dict[str, Any]:
        """State handed to the booking review step."""
        with self._lock:
            payload = self.trip.to_payload()
            payload.update(
                {
                    "passengers": [p.to_payload() for p in self.passengers],
                    "contact": self.contact.to_payload(),
                    "seatCount": len(self.passengers),
                }
            )
            return payload

    def view(self) -> Dict[str, Any]:
        # the sync lock is always taken before the screen lock
        sync_status = self.sync.status()
        with self._lock:
            return {
                "trip": self.trip.to_payload(),
                "seatMap": seat_map_view(self.layout, self.selected, self.max_selectable, self.reserved),
                "reservedSeatIds": list(self.reserved),
                "passengers": [p.to_payload() for p in self.passengers],
                "contact": self.contact.to_payload(),
                "seatCount": len(self.passengers),
                "sync": sync_status,
            }

    def _set_selection(self, selection: List[str]) -> None:
        self.selected = selection
        self.passengers = build_passengers_from_seats(selection, self.passengers)

    def _apply_snapshot(self, snapshot: SeatAvailabilitySnapshot) -> None:
        with self._lock:
            self.reserved = list(snapshot.reserved_seat_ids)
            kept, removed = reconcile_selection(self.selected, self.reserved)
            if not removed:
                return
            logger.info(f"seats {', '.join(removed)} were taken on {self.trip.route}, dropped from selection")
            self._set_selection(kept)
            self._notices.append(SEATS_TAKEN_MESSAGE)


class ScreenRegistry:
    """Passenger screens that are currently open, one per browser flow.

    A screen nobody has looked at for ``idle_timeout`` seconds is unmounted,
    either by its own next sync tick or on the next registry access.
    """

    def __init__(self, idle_timeout: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self.idle_timeout = idle_timeout
        self._clock = clock
        self._lock = threading.Lock()
        self._screens: Dict[str, PassengerDetailsScreen] = {}
        self._last_used: Dict[str, float] = {}

    def mount(self, key: str, screen: PassengerDetailsScreen) -> PassengerDetailsScreen:
        self.expire_idle()
        with self._lock:
            previous = self._screens.pop(key, None)
            self._screens[key] = screen
            self._last_used[key] = self._clock()
        if previous is not None:
            previous.unmount()
        screen.sync.before_tick = lambda: self._expire(key, screen)
        screen.mount()
        return screen

    def get(self, key: str) -> Optional[PassengerDetailsScreen]:
        self.expire_idle()
        with self._lock:
            screen = self._screens.get(key)
            if screen is not None:
                self._last_used[key] = self._clock()
            return screen

    def unmount(self, key: str) -> bool:
        with self._lock:
            screen = self._screens.pop(key, None)
            self._last_used.pop(key, None)
        if screen is None:
            return False
        screen.unmount()
        return True

    def expire_idle(self) -> int:
        if self.idle_timeout is None:
            return 0
        with self._lock:
            idle = [(key, screen) for key, screen in self._screens.items() if self._is_idle(key)]
        return sum(1 for key, screen in idle if self._expire(key, screen))

    def shutdown(self) -> None:
        with self._lock:
            screens, self._screens = list(self._screens.values()), {}
            self._last_used.clear()
        for screen in screens:
            screen.unmount()

    def _is_idle(self, key: str) -> bool:
        return self._clock() - self._last_used.get(key, 0.0) > self.idle_timeout

    def _expire(self, key: str, screen: PassengerDetailsScreen) -> bool:
        with self._lock:
            if self.idle_timeout is None or self._screens.get(key) is not screen or not self._is_idle(key):
                return False
            del self._screens[key]
            self._last_used.pop(key, None)
        logger.info(f"passenger screen for {screen.trip.route} idle for over {self.idle_timeout:g}s, closed")
        screen.unmount()
        return True

    def __len__(self):
        with self._lock:
            return len(self._screens)
