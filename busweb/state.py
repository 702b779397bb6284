import uuid

from flask import current_app, g, session

from .client import ApiClient, ApiSession

BOOKING_SESSION_KEY = "booking_context"
FLOW_SESSION_KEY = "booking_flow"
TOKENS_SESSION_KEY = "api_tokens"
USER_SESSION_KEY = "api_user"


def get_booking_context() -> dict:
    return session.get(BOOKING_SESSION_KEY) or {}


def update_booking_context(data: dict) -> dict:
    """
    This keeps all steps (passengers → review → payment → status) in sync,
    including across the payment provider redirect.
    """
    ctx = get_booking_context()
    ctx.update(data or {})
    session[BOOKING_SESSION_KEY] = ctx
    session.modified = True
    return ctx


def clear_booking_context():
    session.pop(BOOKING_SESSION_KEY, None)


# stable id for this browser's booking flow; keys its passenger screen
def flow_key() -> str:
    key = session.get(FLOW_SESSION_KEY)
    if not key:
        key = uuid.uuid4().hex
        session[FLOW_SESSION_KEY] = key
    return key


def load_api_session() -> ApiSession:
    return ApiSession.from_dict(session.get(TOKENS_SESSION_KEY))


def save_api_session(api_session: ApiSession) -> None:
    if api_session.is_authenticated:
        session[TOKENS_SESSION_KEY] = api_session.to_dict()
    else:
        session.pop(TOKENS_SESSION_KEY, None)
        session.pop(USER_SESSION_KEY, None)


def make_api_client(api_session: ApiSession = None) -> ApiClient:
    cfg = current_app.config
    return ApiClient(
        base_url=cfg["API_BASE_URL"],
        session=api_session,
        timeout=cfg["API_TIMEOUT"],
        transport=cfg.get("API_TRANSPORT"),
    )


def api_client() -> ApiClient:
    """Client for the current request, signed in as the browser's user if there is one.

    Closed at teardown; refreshed tokens are written back to the session.
    """
    if "api_client" not in g:
        g.api_client = make_api_client(load_api_session())
    return g.api_client


def release_api_client(exc=None):
    client = g.pop("api_client", None)
    if client is not None:
        client.close()


def persist_api_session(response):
    client = g.get("api_client")
    if client is not None:
        save_api_session(client.session)
    return response
