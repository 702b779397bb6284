import uuid
from typing import Any, Dict, Optional

import httpx
from loguru import logger

DEFAULT_API_BASE_URL = "http://localhost:3000/api/v1"

# endpoints that must never trigger a token refresh
AUTH_ENDPOINTS = ("/user/login", "/user/register", "/user/forgot-password", "/user/refresh")


class ApiError(Exception):
    """Non-2xx answer (or no answer at all) from the booking API."""

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload


class ApiUnavailable(ApiError):
    """The API could not be reached (connect error, timeout)."""


def error_message(exc: BaseException, fallback: str = "Something went wrong") -> str:
    """Best user-facing text for a failed call."""
    payload = getattr(exc, "payload", None)
    if isinstance(payload, dict):
        err = payload.get("error")
        if isinstance(err, dict) and err.get("message"):
            return err["message"]
        if payload.get("message"):
            return payload["message"]
    text = getattr(exc, "message", None) or str(exc)
    return text or fallback


class ApiSession:
    """Tokens for one signed-in browser session.

    Lives as long as the login: built from the Flask session at the start of a
    request, written back at the end, cleared on logout.
    """

    def __init__(self, access_token: Optional[str] = None, refresh_token: Optional[str] = None):
        self.access_token = access_token
        self.refresh_token = refresh_token

    def set_tokens(self, access_token: Optional[str] = None, refresh_token: Optional[str] = None):
        if access_token:
            self.access_token = access_token
        if refresh_token:
            self.refresh_token = refresh_token

    def clear(self):
        self.access_token = None
        self.refresh_token = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.access_token)

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {"access_token": self.access_token, "refresh_token": self.refresh_token}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "ApiSession":
        data = data or {}
        return cls(data.get("access_token"), data.get("refresh_token"))


class ApiClient:
    def __init__(
        self,
        base_url: str = DEFAULT_API_BASE_URL,
        session: Optional[ApiSession] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or ApiSession()
        self._http = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def close(self):
        self._http.close()

    def get(self, path: str, params: Optional[dict] = None) -> Any:
        return self.request("GET", path, params=params)

    def post(self, path: str, json: Any = None) -> Any:
        return self.request("POST", path, json=json)

    def patch(self, path: str, json: Any = None) -> Any:
        return self.request("PATCH", path, json=json)

    def request(self, method: str, path: str, params: Optional[dict] = None, json: Any = None) -> Any:
        """Send a request and return the unwrapped ``data`` of the response envelope."""
        if params:
            params = {k: v for k, v in params.items() if v is not None}

        response = self._send(method, path, params=params, json=json)
        if response.status_code == 401 and self._should_refresh(path):
            if self._refresh_access_token():
                response = self._send(method, path, params=params, json=json)

        if response.is_error:
            payload = _json_or_none(response)
            message = error_message(ApiError("", payload=payload), fallback=response.reason_phrase)
            logger.warning(f"{method} {path} failed with {response.status_code}: {message}")
            raise ApiError(message or response.reason_phrase, response.status_code, payload)

        body = _json_or_none(response)
        if isinstance(body, dict) and "data" in body:
            return body["data"]
        return body

    def _send(self, method: str, path: str, params=None, json=None) -> httpx.Response:
        headers = {"X-Request-ID": str(uuid.uuid4())}
        if self.session.access_token:
            headers["Authorization"] = f"Bearer {self.session.access_token}"
        try:
            return self._http.request(method, path, params=params, json=json, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning(f"{method} {path} did not reach the API: {exc}")
            raise ApiUnavailable(str(exc) or exc.__class__.__name__) from exc

    def _should_refresh(self, path: str) -> bool:
        if any(endpoint in path for endpoint in AUTH_ENDPOINTS):
            return False
        return bool(self.session.access_token and self.session.refresh_token)

    def _refresh_access_token(self) -> bool:
        try:
            response = self._http.post(
                "/user/refresh",
                json={"refreshToken": self.session.refresh_token},
                headers={"X-Request-ID": str(uuid.uuid4())},
            )
        except httpx.HTTPError as exc:
            logger.warning(f"token refresh did not reach the API: {exc}")
            self.session.clear()
            return False

        body = _json_or_none(response)
        data = body.get("data") if isinstance(body, dict) else None
        if response.is_error or not isinstance(data, dict) or not data.get("accessToken"):
            logger.info("token refresh rejected, signing the session out")
            self.session.clear()
            return False

        self.session.set_tokens(access_token=data["accessToken"], refresh_token=data.get("refreshToken"))
        return True


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None
