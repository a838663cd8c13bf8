"""Tests for environment-driven settings."""

import pytest
from pydantic import ValidationError

from conftest import make_portal
from rebooker.config import LoginDetails, PortalDetails


class TestPortalDetails:
    def test_defaults(self):
        portal = PortalDetails(_env_file=None, SCHEDULE_ID="1", FACILITY_ID="89", LOCALE="en-ca")
        assert portal.refresh_delay == 3
        assert portal.lead_time_days == 2
        assert portal.background_booking is True
        assert portal.relogin_delay == 6

    def test_urls(self):
        portal = make_portal(LOCALE="en-ca", SCHEDULE_ID="777")
        assert portal.base_url == "https://ais.usvisa-info.com/en-ca/niv"
        assert portal.sign_in_url == "https://ais.usvisa-info.com/en-ca/niv/users/sign_in"
        assert portal.appointment_url.endswith("/en-ca/niv/schedule/777/appointment")
        assert portal.days_url("94").endswith("/schedule/777/appointment/days/94.json")
        assert portal.times_url("94").endswith("/schedule/777/appointment/times/94.json")

    def test_comma_separated_facilities(self):
        portal = make_portal(FACILITY_ID=" 89, 94,,89 ,95")
        assert portal.facility_ids == ["89", "94", "95"]

    def test_empty_facility_list_rejected(self):
        with pytest.raises(ValidationError):
            make_portal(FACILITY_ID=" , ")

    def test_refresh_delay_must_be_positive(self):
        with pytest.raises(ValidationError):
            make_portal(REFRESH_DELAY=0)

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("SCHEDULE_ID", "55")
        monkeypatch.setenv("FACILITY_ID", "89,94")
        monkeypatch.setenv("LOCALE", "es-mx")
        monkeypatch.setenv("REFRESH_DELAY", "10")
        monkeypatch.setenv("LEAD_TIME_DAYS", "1")
        monkeypatch.setenv("BACKGROUND_BOOKING", "false")

        portal = PortalDetails(_env_file=None)

        assert portal.schedule_id == "55"
        assert portal.facility_ids == ["89", "94"]
        assert portal.refresh_delay == 10
        assert portal.lead_time_days == 1
        assert portal.background_booking is False


class TestLoginDetails:
    def test_missing_credentials(self, monkeypatch):
        monkeypatch.delenv("EMAIL", raising=False)
        monkeypatch.delenv("PASSWORD", raising=False)
        with pytest.raises(ValidationError):
            LoginDetails(_env_file=None)

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("EMAIL", "someone@example.com")
        monkeypatch.setenv("PASSWORD", "secret")
        details = LoginDetails(_env_file=None)
        assert details.email == "someone@example.com"
        assert details.password == "secret"
