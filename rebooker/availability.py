"""
Availability lookups across one or more facilities.

Facilities are queried one after another so the request rate against the
portal stays predictable. A facility that fails is skipped; an expired session
is only surfaced when no facility produced anything bookable.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Iterable

import httpx

from rebooker.config import PortalConstants, PortalDetails
from rebooker.session import (
    PortalError,
    Session,
    SessionExpiredError,
    check_portal_message,
    is_session_expired,
    raise_for_portal_error,
)

logger = logging.getLogger(__name__)

EXPEDITE_PARAMS = {"appointments[expedite]": "false"}


@dataclass(frozen=True)
class AppointmentCandidate:
    """A bookable date at a facility."""

    date: date
    facility_id: str


def json_headers(session: Session) -> dict[str, str]:
    return {
        **session.headers,
        "Accept": PortalConstants.ACCEPT_JSON,
        "X-Requested-With": "XMLHttpRequest",
    }


def minimum_eligible_date(today: date, lead_time_days: int) -> date:
    return today + timedelta(days=lead_time_days)


def eligible_dates(
    dates: Iterable[date], min_date: date, current_booked_date: date
) -> list[date]:
    """Dates on or after ``min_date`` and strictly before the held date, sorted."""
    return sorted({d for d in dates if min_date <= d < current_booked_date})


def rank_candidates(
    dates_by_facility: dict[str, list[date]],
    min_date: date,
    current_booked_date: date,
) -> list[AppointmentCandidate]:
    """
    Rank every eligible date across facilities, earliest first.

    Ties keep the order facilities appear in ``dates_by_facility``.
    """
    candidates = [
        AppointmentCandidate(date=d, facility_id=facility_id)
        for facility_id, dates in dates_by_facility.items()
        for d in eligible_dates(dates, min_date, current_booked_date)
    ]
    return sorted(candidates, key=lambda c: c.date)


def parse_json_response(response: httpx.Response, action: str) -> Any:
    """
    Decode a JSON endpoint response, classifying every failure shape.

    Raises:
        SessionExpiredError: If the response indicates an expired session
        PortalError: For other unsuccessful or malformed responses
    """
    raise_for_portal_error(response, action)

    try:
        data = response.json()
    except ValueError as e:
        if is_session_expired(response.text):
            raise SessionExpiredError(f"{action}: session expired") from e
        raise PortalError(f"{action}: invalid JSON response") from e

    if isinstance(data, dict) and data.get("error"):
        check_portal_message(str(data["error"]), action)

    return data


async def fetch_available_dates(
    client: httpx.AsyncClient,
    session: Session,
    portal: PortalDetails,
    facility_id: str,
) -> list[date]:
    """
    Fetch the dates a facility currently offers.

    Returns:
        Offered dates, sorted ascending

    Raises:
        SessionExpiredError: If the session is no longer valid
        PortalError: If the portal reports an error
        httpx.HTTPError: If the request fails
    """
    response = await client.get(
        portal.days_url(facility_id),
        params=EXPEDITE_PARAMS,
        headers=json_headers(session),
        timeout=PortalConstants.DEFAULT_TIMEOUT,
    )
    data = parse_json_response(response, f"Fetching dates for facility {facility_id}")

    if not isinstance(data, list):
        raise PortalError(f"Unexpected dates payload for facility {facility_id}")

    dates = []
    for item in data:
        try:
            dates.append(date.fromisoformat(item["date"]))
        except (KeyError, TypeError, ValueError):
            logger.warning(f"Skipping malformed date record for facility {facility_id}: {item!r}")

    return sorted(dates)


async def fetch_available_time(
    client: httpx.AsyncClient,
    session: Session,
    portal: PortalDetails,
    candidate: AppointmentCandidate,
) -> str | None:
    """
    Fetch the first free time slot for a candidate date.

    Returns:
        A time such as ``"08:15"``, or None if the date has no free slot
    """
    response = await client.get(
        portal.times_url(candidate.facility_id),
        params={"date": candidate.date.isoformat(), **EXPEDITE_PARAMS},
        headers=json_headers(session),
        timeout=PortalConstants.DEFAULT_TIMEOUT,
    )
    data = parse_json_response(
        response, f"Fetching times for {candidate.date} at facility {candidate.facility_id}"
    )

    if not isinstance(data, dict):
        raise PortalError("Unexpected times payload")

    for key in ("business_times", "available_times"):
        times = data.get(key) or []
        if times:
            return times[0]
    return None


async def find_candidates(
    client: httpx.AsyncClient,
    session: Session,
    portal: PortalDetails,
    current_booked_date: date,
    today: date | None = None,
) -> list[AppointmentCandidate]:
    """
    Query every configured facility and rank the eligible dates.

    Args:
        client: HTTP client
        session: Authenticated session
        portal: Portal settings, including facilities and lead time
        current_booked_date: The date currently held
        today: Reference date for the lead time (defaults to today)

    Returns:
        Eligible candidates, earliest first; empty when nothing improves on
        the held date

    Raises:
        SessionExpiredError: If a facility reported an expired session and
            no facility yielded a candidate
    """
    today = today or date.today()
    min_date = minimum_eligible_date(today, portal.lead_time_days)

    dates_by_facility: dict[str, list[date]] = {}
    session_expired = False

    for facility_id in portal.facility_ids:
        try:
            dates = await asyncio.wait_for(
                fetch_available_dates(client, session, portal, facility_id),
                timeout=PortalConstants.FACILITY_TIMEOUT,
            )
        except SessionExpiredError as e:
            logger.warning(f"Facility {facility_id}: {e}")
            session_expired = True
            continue
        except asyncio.TimeoutError:
            logger.warning(f"Facility {facility_id}: timed out fetching dates")
            continue
        except (PortalError, httpx.HTTPError) as e:
            logger.warning(f"Facility {facility_id}: {e}")
            continue

        logger.info(
            f"Facility {facility_id}: {len(dates)} dates offered"
            + (f", earliest {dates[0]}" if dates else "")
        )
        dates_by_facility[facility_id] = dates

    candidates = rank_candidates(dates_by_facility, min_date, current_booked_date)

    if not candidates and session_expired:
        raise SessionExpiredError("Session expired while fetching available dates")

    return candidates


async def find_best_candidate(
    client: httpx.AsyncClient,
    session: Session,
    portal: PortalDetails,
    current_booked_date: date,
    today: date | None = None,
) -> AppointmentCandidate | None:
    """Return the earliest eligible candidate across facilities, if any."""
    candidates = await find_candidates(
        client, session, portal, current_booked_date, today=today
    )
    return candidates[0] if candidates else None
