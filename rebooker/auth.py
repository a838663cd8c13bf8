from __future__ import annotations

import logging
from dataclasses import replace

import httpx

from rebooker.config import LoginDetails, PortalConstants, PortalDetails
from rebooker.session import (
    AuthenticationError,
    Session,
    extract_session_cookie,
    extract_session_tokens,
)

logger = logging.getLogger(__name__)


def anonymous_headers() -> dict[str, str]:
    """Minimal headers for the unauthenticated sign-in page."""
    return {
        "User-Agent": PortalConstants.USER_AGENT,
        "Accept": PortalConstants.ACCEPT,
        "Accept-Encoding": PortalConstants.ACCEPT_ENCODING,
        "Connection": PortalConstants.CONNECTION,
    }


def create_login_payload(login_details: LoginDetails, portal: PortalDetails) -> dict[str, str]:
    return {
        "utf8": "✓",
        "user[email]": login_details.email,
        "user[password]": login_details.password,
        "policy_confirmed": "1",
        "commit": portal.submit_label,
    }


async def fetch_anonymous_session(
    client: httpx.AsyncClient, portal: PortalDetails
) -> Session:
    """
    Open the sign-in page and read its anonymous cookie and CSRF token.

    Raises:
        SessionExpiredError: If the page lacks the cookie or the token
        httpx.HTTPError: If the request fails
    """
    logger.info("Accessing sign in page...")
    response = await client.get(
        portal.sign_in_url,
        headers=anonymous_headers(),
        timeout=PortalConstants.DEFAULT_TIMEOUT,
    )
    tokens = extract_session_tokens(response)
    return Session.from_tokens(tokens, referer=portal.base_url)


async def login(
    client: httpx.AsyncClient, login_details: LoginDetails, portal: PortalDetails
) -> Session:
    """
    Perform the two-step sign in and return an authenticated session.

    The returned session carries no CSRF token: every state-changing request
    fetches a fresh one from the page it submits to.

    Args:
        client: HTTP client to use for requests
        login_details: Credentials
        portal: Portal location and form settings

    Returns:
        Authenticated session

    Raises:
        AuthenticationError: If the portal rejects the credentials
        SessionExpiredError: If a cookie or token cannot be extracted
        httpx.HTTPError: If a request fails
    """
    logger.info("Logging in")
    client.cookies.clear()

    anonymous = await fetch_anonymous_session(client, portal)

    logger.info("Submitting email and password...")
    login_headers = {
        **anonymous.headers,
        "Content-Type": "application/x-www-form-urlencoded; charset=UTF-8",
    }
    response = await client.post(
        portal.sign_in_url,
        data=create_login_payload(login_details, portal),
        headers=login_headers,
        follow_redirects=False,
        timeout=PortalConstants.DEFAULT_TIMEOUT,
    )

    if not (response.is_success or response.is_redirect):
        raise AuthenticationError(f"Login failed with status: {response.status_code}")

    session = replace(
        anonymous, cookie=extract_session_cookie(response), csrf_token=None
    )
    logger.info("Login successful!")
    return session
