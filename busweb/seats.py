from dataclasses import dataclass, replace, asdict
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

SEAT_TYPE_LABELS = {"standard": "Standard", "vip": "VIP", "sleeper": "Sleeper"}

RESERVED = "reserved"


@dataclass(frozen=True)
class SeatDefinition:
    id: str
    label: str
    type: str = "standard"
    status: Optional[str] = None


# a coach row; None marks the aisle
SeatLayoutRow = List[Optional[SeatDefinition]]


def _base_row(row: int, reserved: Iterable[str] = ()) -> SeatLayoutRow:
    reserved = set(reserved)
    seats: SeatLayoutRow = []
    for letter in "ABCD":
        if letter == "C":
            seats.append(None)
        seat_type = "vip" if letter in "CD" and row <= 2 else "standard"
        seats.append(
            SeatDefinition(
                id=f"{row}{letter}",
                label=f"{row}{letter}",
                type=seat_type,
                status=RESERVED if letter in reserved else None,
            )
        )
    return seats


DEFAULT_SEAT_LAYOUT: List[SeatLayoutRow] = [
    _base_row(1, reserved="B"),
    _base_row(2, reserved="C"),
    _base_row(3),
    _base_row(4),
    _base_row(5, reserved="D"),
    _base_row(6),
]


def seat_order(layout: Sequence[SeatLayoutRow] = DEFAULT_SEAT_LAYOUT) -> List[str]:
    """Seat ids in physical order, row by row, left to right."""
    return [seat.id for row in layout for seat in row if seat is not None]


DEFAULT_SEAT_ORDER = seat_order(DEFAULT_SEAT_LAYOUT)


def sort_seats(seat_ids: Iterable[str], layout: Sequence[SeatLayoutRow] = DEFAULT_SEAT_LAYOUT) -> List[str]:
    """Sort by layout position; ids not on the layout go last in their given order."""
    index = {seat_id: i for i, seat_id in enumerate(seat_order(layout))}
    last = len(index)
    return sorted(seat_ids, key=lambda seat_id: index.get(seat_id, last))


def reserved_seat_ids(layout: Sequence[SeatLayoutRow], live_reserved: Iterable[str] = ()) -> set:
    """Static reservations from the layout plus the live ones from the server."""
    reserved = set(live_reserved)
    reserved.update(seat.id for row in layout for seat in row if seat is not None and seat.status == RESERVED)
    return reserved


def overlay_reservations(layout: Sequence[SeatLayoutRow], live_reserved: Iterable[str]) -> List[SeatLayoutRow]:
    """Mark live-reserved seats as reserved. A reserved seat is never shown as available."""
    live = set(live_reserved)
    return [
        [
            replace(seat, status=RESERVED) if seat is not None and seat.id in live else seat
            for seat in row
        ]
        for row in layout
    ]


def toggle_seat(
    selected: Sequence[str],
    seat_id: str,
    max_selectable: int,
    reserved: Iterable[str] = (),
    layout: Sequence[SeatLayoutRow] = DEFAULT_SEAT_LAYOUT,
) -> List[str]:
    """Return the selection after a click on ``seat_id``.

    Seats not on the layout, reserved seats the user does not already hold and
    clicks beyond capacity leave the selection as it was. The result is always
    in layout order.
    """
    current = list(selected)
    if seat_id in current:
        return sort_seats([s for s in current if s != seat_id], layout)
    if seat_id not in seat_order(layout):
        return sort_seats(current, layout)
    if seat_id in set(reserved):
        return sort_seats(current, layout)
    if len(current) >= max_selectable:
        return sort_seats(current, layout)
    return sort_seats(current + [seat_id], layout)


def reconcile_selection(selected: Sequence[str], reserved: Iterable[str]) -> Tuple[List[str], List[str]]:
    """Split the selection into seats still free and seats someone else took."""
    reserved = set(reserved)
    kept = [s for s in selected if s not in reserved]
    removed = [s for s in selected if s in reserved]
    return kept, removed


@dataclass(frozen=True)
class PassengerFormState:
    id: str
    seat_label: str
    name: str = ""
    id_number: str = ""
    phone: str = ""
    email: str = ""

    def to_payload(self) -> Dict[str, str]:
        return {
            "id": self.id,
            "name": self.name,
            "idNumber": self.id_number,
            "phone": self.phone,
            "email": self.email,
            "seatLabel": self.seat_label,
        }

    @classmethod
    def from_payload(cls, data: dict) -> "PassengerFormState":
        seat_label = str(data.get("seatLabel") or "")
        return cls(
            id=data.get("id") or passenger_id_for(seat_label),
            seat_label=seat_label,
            name=data.get("name") or "",
            id_number=data.get("idNumber") or "",
            phone=data.get("phone") or "",
            email=data.get("email") or "",
        )


@dataclass(frozen=True)
class ContactInfo:
    phone: str = ""
    email: str = ""

    def to_payload(self) -> Dict[str, str]:
        return asdict(self)

    @classmethod
    def from_payload(cls, data: Optional[dict]) -> "ContactInfo":
        data = data or {}
        return cls(phone=data.get("phone") or "", email=data.get("email") or "")


def passenger_id_for(seat_label: str) -> str:
    return f"pax-{seat_label}"


def build_passengers_from_seats(
    seat_ids: Sequence[str],
    existing: Sequence[PassengerFormState] = (),
) -> List[PassengerFormState]:
    """One passenger form per seat, in seat order.

    A form already keyed to a seat is reused as is, so typed data survives
    changes elsewhere in the selection; forms for dropped seats disappear.
    """
    by_seat = {p.seat_label: p for p in existing}
    passengers = []
    for seat_label in seat_ids:
        current = by_seat.get(seat_label)
        if current is None:
            current = PassengerFormState(id=passenger_id_for(seat_label), seat_label=seat_label)
        elif not current.id:
            current = replace(current, id=passenger_id_for(seat_label))
        passengers.append(current)
    return passengers


def validate_passengers(passengers: Sequence[PassengerFormState], contact: ContactInfo) -> Optional[str]:
    """First thing blocking the next step, or None."""
    if not passengers:
        return "Please select at least one seat."
    for passenger in passengers:
        if not passenger.name.strip():
            return "Please enter the full name of every passenger."
        if not passenger.id_number.strip():
            return "Please enter the ID number of every passenger."
        if not passenger.phone.strip():
            return "Please enter a phone number for every passenger."
    if not contact.phone.strip():
        return "Please enter a contact phone number."
    return None


def seat_map_view(
    layout: Sequence[SeatLayoutRow],
    selected: Sequence[str],
    max_selectable: int,
    live_reserved: Iterable[str] = (),
) -> dict:
    """What the browser needs to draw the coach: one cell per seat or aisle gap."""
    chosen = set(selected)
    at_capacity = len(selected) >= max_selectable
    rows = []
    for row in overlay_reservations(layout, live_reserved):
        cells = []
        for seat in row:
            if seat is None:
                cells.append({"gap": True})
                continue
            is_selected = seat.id in chosen
            is_reserved = seat.status == RESERVED and not is_selected
            cells.append(
                {
                    "id": seat.id,
                    "label": seat.label,
                    "type": seat.type,
                    "typeLabel": SEAT_TYPE_LABELS.get(seat.type, seat.type),
                    "selected": is_selected,
                    "reserved": is_reserved,
                    "disabled": is_reserved or (not is_selected and at_capacity),
                }
            )
        rows.append(cells)
    return {
        "rows": rows,
        "selectedSeatIds": list(selected),
        "selectedCount": len(selected),
        "maxSelectable": max_selectable,
    }
