"""Shared fixtures: a fake booking API behind httpx.MockTransport and a manual timer."""

import httpx
import pytest

from busweb import create_app


API_BASE = "http://api.test/api/v1"
API_PREFIX = "/api/v1"


class FakeApi:
    """Answers the app's outgoing HTTP calls from a table of canned replies."""

    def __init__(self):
        self.routes = {}
        self.calls = []

    def on(self, method, path, data=None, status=200, body=None, handler=None):
        self.routes[(method.upper(), path)] = (data, status, body, handler)

    def fail(self, method, path, status=500, message="boom"):
        self.on(method, path, status=status, body={"success": False, "error": {"message": message}})

    def calls_to(self, method, path):
        return [r for r in self.calls if r.method == method and r.url.path == API_PREFIX + path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        path = request.url.path[len(API_PREFIX):] if request.url.path.startswith(API_PREFIX) else request.url.path
        entry = self.routes.get((request.method, path))
        if entry is None:
            return httpx.Response(404, json={"success": False, "message": f"no route {request.method} {path}"})
        data, status, body, handler = entry
        if handler is not None:
            return handler(request)
        if body is None:
            body = {"success": status < 400, "data": data}
        return httpx.Response(status, json=body)

    @property
    def transport(self):
        return httpx.MockTransport(self)


class FakeTimer:
    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.function()


class TimerFactory:
    """Stands in for threading.Timer; tests fire ticks by hand."""

    def __init__(self):
        self.timers = []

    def __call__(self, interval, function):
        timer = FakeTimer(interval, function)
        self.timers.append(timer)
        return timer

    @property
    def last(self):
        return self.timers[-1]

    @property
    def active(self):
        return [t for t in self.timers if t.started and not t.cancelled]


def availability_payload(reserved, route="Ha Noi -> Da Nang", travel_date="2026-11-02"):
    return {
        "route": route,
        "travelDate": travel_date,
        "seats": [
            {"seatLabel": seat, "status": "locked", "bookingReference": f"BK-{seat}", "expiresAt": None}
            for seat in reserved
        ],
        "reservedSeatIds": list(reserved),
    }


@pytest.fixture
def api():
    return FakeApi()


@pytest.fixture
def timers():
    return TimerFactory()


@pytest.fixture
def app(api, timers):
    app = create_app(
        {
            "TESTING": True,
            "SECRET_KEY": "test-secret",
            "API_BASE_URL": API_BASE,
            "API_TRANSPORT": api.transport,
            "SEAT_SYNC_TIMER": timers,
            "SEAT_SYNC_INTERVAL": 15,
        }
    )
    yield app
    app.extensions["passenger_screens"].shutdown()


@pytest.fixture
def client(app):
    return app.test_client()
