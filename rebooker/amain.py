"""
Polling supervisor for rebooking an appointment to an earlier date.

The supervisor owns the authenticated session and the currently held date.
Each cycle it looks for an earlier slot across the configured facilities and
books it; an expired session triggers a fresh login, every other failure is
logged and retried after the refresh delay. Nothing raised inside a cycle
stops the loop.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable

import httpx

from rebooker.auth import login
from rebooker.availability import (
    AppointmentCandidate,
    fetch_available_time,
    find_candidates,
)
from rebooker.booking import BookingResult, book_appointment
from rebooker.config import LoginDetails, PortalConstants, PortalDetails
from rebooker.session import PortalError, Session, SessionExpiredError

logger = logging.getLogger(__name__)


# --- Data Classes ---


class HistoryAction(str, Enum):
    INITIAL = "initial"
    BOOKED = "booked"
    ERROR = "error"


@dataclass(frozen=True)
class BookingHistoryEntry:
    """Diagnostic record of something that happened during the run."""

    action: HistoryAction
    payload: dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def describe(self) -> str:
        if self.action is HistoryAction.INITIAL:
            return f"Started with initial date: {self.payload['appointment_date']}"
        if self.action is HistoryAction.BOOKED:
            return (
                f"Rebooked from {self.payload['old_date']} to {self.payload['new_date']} "
                f"at {self.payload['time']} (facility {self.payload['facility_id']})"
            )
        return f"Error: {self.payload['message']}"


# --- HTTP Client ---


def create_http_client() -> httpx.AsyncClient:
    """
    Create HTTP client with standard headers.

    Returns:
        Configured HTTP client
    """
    client = httpx.AsyncClient()
    client.headers.update(
        {
            "User-Agent": PortalConstants.USER_AGENT,
            "Accept-Language": PortalConstants.ACCEPT_LANGUAGE,
            "Accept-Encoding": PortalConstants.ACCEPT_ENCODING,
            "Connection": PortalConstants.CONNECTION,
            "Accept": PortalConstants.ACCEPT,
        }
    )
    return client


# --- Supervisor ---


class Rebooker:
    """Drives login, availability polling and booking until the process ends."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        login_details: LoginDetails,
        portal: PortalDetails,
        current_booked_date: date,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        today: Callable[[], date] = date.today,
    ):
        self.client = client
        self.login_details = login_details
        self.portal = portal
        self.current_booked_date = current_booked_date
        self.session: Session | None = None

        self._sleep = sleep
        self._today = today
        self._history: list[BookingHistoryEntry] = []
        self._booking_tasks: set[asyncio.Task] = set()

        self._record(HistoryAction.INITIAL, appointment_date=current_booked_date.isoformat())

    @property
    def history(self) -> tuple[BookingHistoryEntry, ...]:
        return tuple(self._history)

    @property
    def pending_bookings(self) -> int:
        return len(self._booking_tasks)

    def _record(self, action: HistoryAction, **payload: Any) -> None:
        self._history.append(BookingHistoryEntry(action=action, payload=payload))

    def log_booking_status(self) -> None:
        logger.info("===== BOOKING STATUS =====")
        logger.info(f"Current appointment date: {self.current_booked_date}")
        logger.info("Booking history:")
        for index, entry in enumerate(self._history, start=1):
            logger.info(f"{index}. [{entry.timestamp.isoformat()}] {entry.describe()}")
        logger.info("==========================")

    # --- Session ---

    async def relogin(self) -> bool:
        """
        Replace the session with a freshly authenticated one.

        Returns:
            True if login succeeded; on failure the session stays unset
        """
        self.session = None
        try:
            self.session = await login(self.client, self.login_details, self.portal)
            return True
        except Exception as e:
            logger.error(f"Login error: {e}")
            self._record(HistoryAction.ERROR, message=f"Login failed: {e}")
            return False

    # --- Booking ---

    def _apply_booking_result(self, result: BookingResult) -> None:
        candidate = result.candidate
        if not result.success:
            logger.warning(
                f"Booking attempt for {candidate.date} at facility {candidate.facility_id} "
                f"was not successful: {result.error}"
            )
            self._record(
                HistoryAction.ERROR,
                message=f"Booking {candidate.date} failed: {result.error}",
            )
            return

        logger.info(f"✅ Successfully booked appointment for {candidate.date} at {result.time}")
        if candidate.date >= self.current_booked_date:
            logger.warning(
                f"Booked {candidate.date} but {self.current_booked_date} is already held, "
                "keeping the earlier date"
            )
            return

        old_date = self.current_booked_date
        self.current_booked_date = candidate.date
        self._record(
            HistoryAction.BOOKED,
            old_date=old_date.isoformat(),
            new_date=candidate.date.isoformat(),
            time=result.time,
            facility_id=candidate.facility_id,
        )
        self.log_booking_status()

    async def _book(
        self, session: Session, candidate: AppointmentCandidate, time: str
    ) -> BookingResult:
        logger.info(
            f"Attempting to book date {candidate.date} at time {time} "
            f"(facility {candidate.facility_id})"
        )
        try:
            result = await book_appointment(
                self.client, session, self.portal, candidate, time
            )
        except (PortalError, httpx.HTTPError) as e:
            result = BookingResult(candidate=candidate, time=time, success=False, error=str(e))

        self._apply_booking_result(result)
        return result

    async def _book_in_background(
        self, session: Session, candidate: AppointmentCandidate, time: str
    ) -> None:
        try:
            await self._book(session, candidate, time)
        except SessionExpiredError as e:
            logger.warning(f"Session expired during booking: {e}")
            self._record(HistoryAction.ERROR, message=f"Booking {candidate.date}: {e}")
            if self.session is session:
                self.session = None
        except Exception as e:
            logger.exception(f"Unexpected error while booking {candidate.date}: {e}")
            self._record(HistoryAction.ERROR, message=f"Booking {candidate.date}: {e}")

    def _spawn_booking(
        self, session: Session, candidate: AppointmentCandidate, time: str
    ) -> asyncio.Task:
        # Not awaited by the poll loop; a later cycle may start another
        # attempt before this one finishes.
        task = asyncio.create_task(
            self._book_in_background(session, candidate, time),
            name=f"book-{candidate.facility_id}-{candidate.date}",
        )
        self._booking_tasks.add(task)
        task.add_done_callback(self._booking_tasks.discard)
        return task

    async def wait_for_bookings(self) -> None:
        """Wait for any background booking attempts still in flight."""
        if self._booking_tasks:
            await asyncio.gather(*self._booking_tasks, return_exceptions=True)

    async def _book_best(
        self, session: Session, candidates: list[AppointmentCandidate]
    ) -> None:
        if self.portal.background_booking:
            best = candidates[0]
            time = await fetch_available_time(self.client, session, self.portal, best)
            if not time:
                logger.info(f"No available time slots for date {best.date}, skipping")
                return
            self._spawn_booking(session, best, time)
            return

        for candidate in candidates:
            if candidate.date >= self.current_booked_date:
                break
            time = await fetch_available_time(self.client, session, self.portal, candidate)
            if not time:
                logger.info(f"No available time slots for date {candidate.date}, skipping")
                continue
            result = await self._book(session, candidate, time)
            if result.success:
                break

    # --- Poll Loop ---

    async def _poll(self, session: Session) -> None:
        candidates = await find_candidates(
            self.client,
            session,
            self.portal,
            self.current_booked_date,
            today=self._today(),
        )

        if not candidates:
            logger.info(
                f"No eligible dates found (must be at least {self.portal.lead_time_days} "
                f"days ahead and before {self.current_booked_date})"
            )
            return

        # Second check on the held date; find_candidates already filters on it
        best = candidates[0]
        if best.date >= self.current_booked_date:
            logger.info(f"Earliest date {best.date} is not earlier than {self.current_booked_date}")
            return

        logger.info(
            f"Found {len(candidates)} eligible dates: "
            + ", ".join(f"{c.date} ({c.facility_id})" for c in candidates)
        )
        await self._book_best(session, candidates)

    async def run_cycle(self) -> float:
        """
        Run one polling cycle.

        Returns:
            Seconds to wait before the next cycle
        """
        if self.session is None and not await self.relogin():
            logger.info(f"Retrying login in {self.portal.relogin_delay}s")
            return self.portal.relogin_delay

        try:
            await self._poll(self.session)
        except SessionExpiredError as e:
            logger.warning(f"Session expired ({e}), logging in again")
            if not await self.relogin():
                logger.info(f"Retrying login in {self.portal.relogin_delay}s")
                return self.portal.relogin_delay
        except (PortalError, httpx.HTTPError) as e:
            logger.warning(f"Error checking available dates: {e}")
        except Exception as e:
            logger.exception(f"Unexpected error in polling cycle: {e}")

        return self.portal.refresh_delay

    async def run(self, max_cycles: int | None = None) -> None:
        """
        Poll until the process is stopped.

        Args:
            max_cycles: Stop after this many cycles (unbounded when None)
        """
        self.log_booking_status()

        cycle = 0
        while max_cycles is None or cycle < max_cycles:
            cycle += 1
            delay = await self.run_cycle()
            await self._sleep(delay)

        await self.wait_for_bookings()


# --- Main Function ---


async def main_async(
    current_booked_date: date,
    login_details: LoginDetails,
    portal: PortalDetails,
    max_cycles: int | None = None,
) -> None:
    """Run the rebooking loop with a fresh HTTP client."""
    logger.info(f"Initializing with current date {current_booked_date}")
    logger.info(f"Facilities: {', '.join(portal.facility_ids)}")

    async with create_http_client() as client:
        rebooker = Rebooker(client, login_details, portal, current_booked_date)
        await rebooker.run(max_cycles=max_cycles)
