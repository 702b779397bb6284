import json

import httpx
import pytest

from busweb.client import ApiClient, ApiError, ApiSession, ApiUnavailable, error_message
from busweb.services import AuthService, BookingsService, PaymentsService

from tests.conftest import API_BASE, FakeApi, availability_payload


@pytest.fixture
def fake():
    return FakeApi()


def make_client(fake, session=None):
    return ApiClient(API_BASE, session=session, transport=fake.transport)


def test_unwraps_envelope_and_sends_request_id(fake):
    fake.on("GET", "/user/me", data={"userId": "u1"})
    with make_client(fake) as client:
        assert client.get("/user/me") == {"userId": "u1"}

    request = fake.calls[0]
    assert request.headers["X-Request-ID"]
    assert request.headers["Content-Type"] == "application/json"
    assert "Authorization" not in request.headers


def test_bearer_token_from_session(fake):
    fake.on("GET", "/bookings", data=[])
    with make_client(fake, ApiSession("tok-1", "ref-1")) as client:
        client.get("/bookings")
    assert fake.calls[0].headers["Authorization"] == "Bearer tok-1"


def test_each_request_gets_its_own_request_id(fake):
    fake.on("GET", "/bookings", data=[])
    with make_client(fake) as client:
        client.get("/bookings")
        client.get("/bookings")
    assert fake.calls[0].headers["X-Request-ID"] != fake.calls[1].headers["X-Request-ID"]


def test_error_response_raises_api_error(fake):
    fake.fail("POST", "/bookings/lookup", status=404, message="Booking not found")
    with make_client(fake) as client:
        with pytest.raises(ApiError) as info:
            client.post("/bookings/lookup", json={})
    assert info.value.status_code == 404
    assert error_message(info.value) == "Booking not found"


def test_error_message_fallbacks():
    assert error_message(ApiError("", payload={"message": "top-level"})) == "top-level"
    assert error_message(ApiError("plain")) == "plain"
    assert error_message(ApiError(""), fallback="nope") == "nope"


def test_transport_failure_is_api_unavailable():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    with ApiClient(API_BASE, transport=httpx.MockTransport(refuse)) as client:
        with pytest.raises(ApiUnavailable) as info:
            client.get("/bookings/availability")
    assert info.value.status_code is None


def test_expired_token_is_refreshed_once(fake):
    def bookings(request):
        if request.headers.get("Authorization") == "Bearer new-token":
            return httpx.Response(200, json={"success": True, "data": [{"bookingReference": "BK1"}]})
        return httpx.Response(401, json={"success": False, "message": "expired"})

    fake.on("GET", "/bookings", handler=bookings)
    fake.on("POST", "/user/refresh", data={"accessToken": "new-token"})
    session = ApiSession("old-token", "refresh-1")

    with make_client(fake, session) as client:
        assert client.get("/bookings") == [{"bookingReference": "BK1"}]

    assert session.access_token == "new-token"
    assert session.refresh_token == "refresh-1"
    assert len(fake.calls_to("POST", "/user/refresh")) == 1
    assert len(fake.calls_to("GET", "/bookings")) == 2


def test_failed_refresh_signs_session_out(fake):
    fake.fail("GET", "/bookings", status=401, message="expired")
    fake.fail("POST", "/user/refresh", status=401, message="refresh expired")
    session = ApiSession("old-token", "refresh-1")

    with make_client(fake, session) as client:
        with pytest.raises(ApiError) as info:
            client.get("/bookings")

    assert info.value.status_code == 401
    assert not session.is_authenticated
    assert session.refresh_token is None


def test_login_failure_does_not_try_refresh(fake):
    fake.fail("POST", "/user/login", status=401, message="Invalid credentials")
    session = ApiSession("stale", "refresh-1")
    with make_client(fake, session) as client:
        with pytest.raises(ApiError):
            AuthService(client).login("a@example.com", "bad")
    assert fake.calls_to("POST", "/user/refresh") == []


def test_login_and_logout_manage_session_tokens(fake):
    fake.on("POST", "/user/login", data={"accessToken": "a1", "refreshToken": "r1", "user": {"userId": "u1"}})
    fake.on("POST", "/user/logout", data=None)
    with make_client(fake) as client:
        auth = AuthService(client)
        auth.login("a@example.com", "secret")
        assert client.session.to_dict() == {"access_token": "a1", "refresh_token": "r1"}
        auth.logout()
    assert not client.session.is_authenticated


def test_seat_availability_query_and_parsing(fake):
    fake.on("GET", "/bookings/availability", data=availability_payload(["1B", "4C"]))
    with make_client(fake) as client:
        snapshot = BookingsService(client).get_seat_availability("Ha Noi -> Da Nang", "2026-11-02",
                                                                 bus_plate="29B-123.45")

    params = fake.calls[0].url.params
    assert params["route"] == "Ha Noi -> Da Nang"
    assert params["travelDate"] == "2026-11-02"
    assert params["busPlate"] == "29B-123.45"
    assert "seatType" not in params
    assert snapshot.reserved_seat_ids == ["1B", "4C"]
    assert snapshot.seats[0].booking_reference == "BK-1B"
    assert snapshot.seats[0].status == "locked"


def test_seat_availability_requires_route_and_date(fake):
    with make_client(fake) as client:
        with pytest.raises(ValueError):
            BookingsService(client).get_seat_availability("", "2026-11-02")
    assert fake.calls == []


def test_guest_payment_session_sends_contact_and_normalizes_status(fake):
    fake.on("POST", "/payments/session/guest",
            data={"paymentId": "pay-1", "bookingReference": "BK1", "status": "pending", "checkoutUrl": "https://pay"})
    with make_client(fake) as client:
        session = PaymentsService(client).create_session("BK1", "https://app/ok", contact={"phone": "1"},
                                                         is_guest=True)
    assert session["status"] == "processing"
    sent = json.loads(fake.calls[0].content)
    assert sent["contact"] == {"phone": "1"}
    assert sent["bookingReference"] == "BK1"
