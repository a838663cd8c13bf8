"""Shared fixtures: settings objects and an in-memory fake of the portal."""

from __future__ import annotations

from collections import defaultdict
from typing import Callable, Union

import httpx
import pytest

from rebooker.config import LoginDetails, PortalDetails

BASE_PATH = "/pt-br/niv"
SIGN_IN_PATH = f"{BASE_PATH}/users/sign_in"
APPOINTMENT_PATH = f"{BASE_PATH}/schedule/42/appointment"

EXPIRED_MESSAGE = "Your session expired, please sign in again to continue."

PORTAL_ORIGIN = "https://ais.usvisa-info.com"

Route = Union[httpx.Response, Callable[[httpx.Request], httpx.Response]]


def days_path(facility_id: str) -> str:
    return f"{APPOINTMENT_PATH}/days/{facility_id}.json"


def times_path(facility_id: str) -> str:
    return f"{APPOINTMENT_PATH}/times/{facility_id}.json"


def html_page(
    token: str | None = "page-token",
    cookie: str | None = "page-cookie",
    status_code: int = 200,
    body: str = "<p>Schedule appointment</p>",
) -> httpx.Response:
    """Build an HTML page response the way the portal sends one."""
    head = f'<meta name="csrf-token" content="{token}" />' if token else ""
    headers = []
    if cookie:
        headers.append(("set-cookie", f"_yatri_session={cookie}; path=/; secure; HttpOnly"))
    return httpx.Response(
        status_code,
        headers=headers,
        text=f"<html><head>{head}</head><body>{body}</body></html>",
        request=httpx.Request("GET", f"{PORTAL_ORIGIN}{APPOINTMENT_PATH}"),
    )


def session_cookie_response(cookie: str, status_code: int = 302) -> httpx.Response:
    headers = [("set-cookie", f"_yatri_session={cookie}; path=/; secure; HttpOnly")]
    if status_code in (301, 302, 303):
        headers.append(("location", "https://ais.usvisa-info.com/pt-br/niv/account"))
    return httpx.Response(
        status_code, headers=headers, request=httpx.Request("POST", f"{PORTAL_ORIGIN}{SIGN_IN_PATH}")
    )


def days_response(*dates: str) -> httpx.Response:
    return httpx.Response(200, json=[{"date": d, "business_day": True} for d in dates])


def times_response(business: list[str] | None = None, available: list[str] | None = None) -> httpx.Response:
    return httpx.Response(
        200, json={"business_times": business or [], "available_times": available or []}
    )


def expired_json_response() -> httpx.Response:
    return httpx.Response(401, json={"error": EXPIRED_MESSAGE})


class FakePortal:
    """
    Routes requests by method and path to queued responses.

    The last queued response for a route keeps being served once the queue is
    down to one entry. Unknown routes answer 404.
    """

    def __init__(self):
        self.routes: dict[tuple[str, str], list[Route]] = defaultdict(list)
        self.requests: list[httpx.Request] = []

    def on(self, method: str, path: str, *responses: Route) -> FakePortal:
        self.routes[(method, path)] = list(responses)
        return self

    def requests_to(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def handle(self, request: httpx.Request):
        self.requests.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, text="Not found")
        route = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(route) and not isinstance(route, httpx.Response):
            return route(request)
        return httpx.Response(route.status_code, headers=route.headers, content=route.content)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handle))

    def with_login(self, cookie: str = "logged-in") -> FakePortal:
        self.on("GET", SIGN_IN_PATH, html_page(token="anon-token", cookie="anon-cookie"))
        self.on("POST", SIGN_IN_PATH, session_cookie_response(cookie))
        return self


def make_portal(**overrides) -> PortalDetails:
    values = {
        "SCHEDULE_ID": "42",
        "FACILITY_ID": "89",
        "LOCALE": "pt-br",
        "REFRESH_DELAY": 3,
        "LEAD_TIME_DAYS": 2,
    }
    values.update(overrides)
    return PortalDetails(_env_file=None, **values)


@pytest.fixture
def portal_details() -> PortalDetails:
    return make_portal()


@pytest.fixture
def login_details() -> LoginDetails:
    return LoginDetails(_env_file=None, EMAIL="user@example.com", PASSWORD="hunter2")


@pytest.fixture
def fake_portal() -> FakePortal:
    return FakePortal()
