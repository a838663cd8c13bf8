"""
Session handling for the scheduling portal.

The portal signals a dead session in several ways: a missing session cookie,
a page without a CSRF meta tag, a redirect back to the sign-in page, or an
ordinary HTTP 200 page that carries the "session expired" flash message. All
of them are classified here, once, as ``SessionExpiredError``; anything else
that goes wrong is a ``PortalError``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

import httpx
from bs4 import BeautifulSoup

from rebooker.config import PortalConstants

logger = logging.getLogger(__name__)


# --- Custom Exceptions ---


class RebookerError(Exception):
    """Base class for failures raised while talking to the portal."""


class SessionExpiredError(RebookerError):
    """The session cookie or CSRF token is missing, stale, or rejected."""


class PortalError(RebookerError):
    """Network-independent portal failure unrelated to the session."""


class AuthenticationError(PortalError):
    """Custom exception for authentication failures."""


class BookingError(PortalError):
    """Custom exception for booking-related errors."""


# --- Data Classes ---


@dataclass(frozen=True)
class SessionTokens:
    """Cookie and anti-forgery token read from a single response."""

    cookie: str
    csrf_token: str


@dataclass(frozen=True)
class Session:
    """Authenticated request context. Replaced wholesale, never mutated."""

    cookie: str
    csrf_token: str | None = None
    referer: str = ""
    user_agent: str = PortalConstants.USER_AGENT
    referrer_policy: str = PortalConstants.REFERRER_POLICY
    cache_control: str = PortalConstants.CACHE_CONTROL

    @classmethod
    def from_tokens(cls, tokens: SessionTokens, referer: str) -> Session:
        return cls(cookie=tokens.cookie, csrf_token=tokens.csrf_token, referer=referer)

    def with_tokens(self, tokens: SessionTokens) -> Session:
        return replace(self, cookie=tokens.cookie, csrf_token=tokens.csrf_token)

    @property
    def headers(self) -> dict[str, str]:
        headers = {
            "Cookie": self.cookie,
            "Referer": self.referer,
            "Referrer-Policy": self.referrer_policy,
            "User-Agent": self.user_agent,
            "Cache-Control": self.cache_control,
            "Connection": PortalConstants.CONNECTION,
        }
        if self.csrf_token:
            headers["X-CSRF-Token"] = self.csrf_token
        return headers


# --- Classification ---


def is_session_expired(text: str | None) -> bool:
    """Check whether a body or message carries the portal's expiry marker."""
    if not text:
        return False
    return PortalConstants.SESSION_EXPIRED_MARKER in text.lower()


def check_portal_message(message: str, action: str) -> None:
    """
    Raise for an error message the portal reported inside a JSON body.

    Raises:
        SessionExpiredError: If the message reports an expired session
        PortalError: For any other reported error
    """
    if is_session_expired(message):
        raise SessionExpiredError(f"{action}: {message}")
    raise PortalError(f"{action}: {message}")


def raise_for_portal_error(response: httpx.Response, action: str) -> None:
    """
    Classify an unsuccessful response.

    A redirect to the sign-in page or a body containing the expiry marker
    means the session died; any other non-2xx status is a generic failure.

    Args:
        response: Response to inspect
        action: Short description of the request, used in error messages

    Raises:
        SessionExpiredError: If the response indicates an expired session
        PortalError: If the status is not successful for another reason
    """
    if response.is_success:
        return

    if response.is_redirect and "sign_in" in response.headers.get("location", ""):
        raise SessionExpiredError(f"{action}: redirected to sign in")

    if is_session_expired(response.text):
        raise SessionExpiredError(f"{action}: session expired")

    raise PortalError(f"{action} failed with status: {response.status_code}")


def raise_for_sign_in_redirect(response: httpx.Response, action: str) -> None:
    """
    Raise if a followed redirect chain ended at, or passed through, sign-in.

    Raises:
        SessionExpiredError: If the portal sent the client back to sign in
    """
    if response.url.path.endswith("/users/sign_in"):
        raise SessionExpiredError(f"{action}: redirected to sign in")

    for hop in response.history:
        if "sign_in" in hop.headers.get("location", ""):
            raise SessionExpiredError(f"{action}: redirected to sign in")


# --- Extraction ---


def extract_session_cookie(response: httpx.Response) -> str:
    """
    Extract the portal session cookie from a response.

    Returns:
        The ``Cookie`` header value carrying only the session cookie

    Raises:
        SessionExpiredError: If no cookie or no session cookie was set
    """
    header_values = response.headers.get_list("set-cookie")
    if not header_values:
        raise SessionExpiredError("No cookies found in response, session may have expired")

    session_value = response.cookies.get(PortalConstants.SESSION_COOKIE)
    if not session_value:
        raise SessionExpiredError("Session cookie not found, session may have expired")

    return f"{PortalConstants.SESSION_COOKIE}={session_value}"


def extract_csrf_token(html_content: str) -> str:
    """
    Extract CSRF token from the page's meta tag.

    Raises:
        SessionExpiredError: If the page is an expiry page or has no token
    """
    if is_session_expired(html_content):
        raise SessionExpiredError("Page reports an expired session")

    soup = BeautifulSoup(html_content, "html.parser")
    meta = soup.find("meta", {"name": PortalConstants.CSRF_META_NAME})

    if not meta or not meta.get("content"):
        raise SessionExpiredError("Could not extract CSRF token, session may have expired")

    return meta["content"]


def extract_session_tokens(response: httpx.Response) -> SessionTokens:
    """
    Extract session cookie and CSRF token from a page response.

    Pure: calling it twice on the same response gives the same result.

    Raises:
        SessionExpiredError: If either value is missing
    """
    cookie = extract_session_cookie(response)
    csrf_token = extract_csrf_token(response.text)
    logger.debug(f"Extracted CSRF token: {csrf_token[:10]}...")
    return SessionTokens(cookie=cookie, csrf_token=csrf_token)
