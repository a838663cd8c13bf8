from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from rebooker.availability import AppointmentCandidate
from rebooker.config import PortalConstants, PortalDetails
from rebooker.session import (
    BookingError,
    Session,
    SessionExpiredError,
    extract_session_tokens,
    is_session_expired,
    raise_for_portal_error,
    raise_for_sign_in_redirect,
)

logger = logging.getLogger(__name__)


@dataclass
class BookingResult:
    """Structured booking result."""

    candidate: AppointmentCandidate
    time: str | None
    success: bool
    error: str | None = None


def create_booking_payload(
    csrf_token: str, candidate: AppointmentCandidate, time: str
) -> dict[str, str]:
    """
    Create the appointment form payload.

    Only the consulate appointment is filled in; the ASC group is always sent
    empty.
    """
    return {
        "utf8": "✓",
        "authenticity_token": csrf_token,
        "confirmed_limit_message": "1",
        "use_consulate_appointment_capacity": "true",
        "appointments[consulate_appointment][facility_id]": candidate.facility_id,
        "appointments[consulate_appointment][date]": candidate.date.isoformat(),
        "appointments[consulate_appointment][time]": time,
        "appointments[asc_appointment][facility_id]": "",
        "appointments[asc_appointment][date]": "",
        "appointments[asc_appointment][time]": "",
    }


async def fetch_booking_session(
    client: httpx.AsyncClient, session: Session, portal: PortalDetails
) -> Session:
    """
    Open the appointment page and pick up its page-scoped CSRF token.

    Redirects are followed; a chain that leads back to sign-in means the
    session is gone.

    Returns:
        A new session carrying the page's cookie and token

    Raises:
        SessionExpiredError: If the page shows the session is gone
        PortalError: If the page cannot be loaded
    """
    logger.info("Fetching CSRF token from appointment page...")
    response = await client.get(
        portal.appointment_url,
        headers=session.headers,
        follow_redirects=True,
        timeout=PortalConstants.DEFAULT_TIMEOUT,
    )
    raise_for_sign_in_redirect(response, "Preparing booking request")
    raise_for_portal_error(response, "Preparing booking request")
    return session.with_tokens(extract_session_tokens(response))


async def book_appointment(
    client: httpx.AsyncClient,
    session: Session,
    portal: PortalDetails,
    candidate: AppointmentCandidate,
    time: str,
) -> BookingResult:
    """
    Submit the appointment form for a candidate date and time.

    An accepted 2xx response is taken as a confirmed booking; the portal gives
    no separate confirmation to check.

    Args:
        client: HTTP client
        session: Authenticated session
        portal: Portal settings
        candidate: Date and facility to book
        time: Time slot on that date

    Returns:
        Successful booking result

    Raises:
        SessionExpiredError: If the session expired before or during booking
        BookingError: If the portal rejected the booking
        httpx.HTTPError: If a request fails
    """
    booking_session = await fetch_booking_session(client, session, portal)

    logger.info(
        f"Submitting booking for {candidate.date} {time} at facility {candidate.facility_id}"
    )
    response = await client.post(
        portal.appointment_url,
        data=create_booking_payload(booking_session.csrf_token, candidate, time),
        headers={
            **booking_session.headers,
            "Content-Type": "application/x-www-form-urlencoded",
        },
        follow_redirects=True,
        timeout=PortalConstants.DEFAULT_TIMEOUT,
    )

    if not response.is_success:
        if is_session_expired(response.text):
            raise SessionExpiredError("Booking rejected: session expired")
        raise BookingError(f"Booking failed with status: {response.status_code}")

    if is_session_expired(response.text):
        raise SessionExpiredError("Booking response reports an expired session")

    return BookingResult(candidate=candidate, time=time, success=True)
