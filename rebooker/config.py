from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LoginDetails(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    email: str = Field(alias="EMAIL")
    password: str = Field(alias="PASSWORD")


class PortalConstants:
    """Centralized constants for portal requests."""

    DEFAULT_TIMEOUT = 15
    FACILITY_TIMEOUT = 30

    SESSION_COOKIE = "_yatri_session"
    CSRF_META_NAME = "csrf-token"
    SESSION_EXPIRED_MARKER = "session expired"

    # HTTP Headers
    USER_AGENT = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/109.0.0.0 Safari/537.36"
    ACCEPT_LANGUAGE = "en-US,en;q=0.9"
    ACCEPT_ENCODING = "gzip, deflate, br"
    CONNECTION = "keep-alive"
    ACCEPT = "*/*"
    ACCEPT_JSON = "application/json"
    CACHE_CONTROL = "no-store"
    REFERRER_POLICY = "strict-origin-when-cross-origin"


class PortalDetails(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    schedule_id: str = Field(alias="SCHEDULE_ID")
    facility_id: str = Field(alias="FACILITY_ID")
    locale: str = Field(alias="LOCALE")
    portal_host: str = Field(default="ais.usvisa-info.com", alias="PORTAL_HOST")

    # Polling policy
    refresh_delay: float = Field(default=3, gt=0, alias="REFRESH_DELAY")
    lead_time_days: int = Field(default=2, ge=0, alias="LEAD_TIME_DAYS")
    background_booking: bool = Field(default=True, alias="BACKGROUND_BOOKING")

    # Value of the sign-in form's submit button, which depends on the locale
    submit_label: str = Field(default="Acessar", alias="SUBMIT_LABEL")

    @field_validator("facility_id")
    @classmethod
    def _require_facility(cls, value: str) -> str:
        if not [part for part in value.split(",") if part.strip()]:
            raise ValueError("FACILITY_ID must name at least one facility")
        return value

    @property
    def facility_ids(self) -> list[str]:
        """Configured facilities, in order, without blanks or repeats."""
        ids: list[str] = []
        for part in self.facility_id.split(","):
            part = part.strip()
            if part and part not in ids:
                ids.append(part)
        return ids

    @property
    def base_url(self) -> str:
        return f"https://{self.portal_host}/{self.locale}/niv"

    @property
    def sign_in_url(self) -> str:
        return f"{self.base_url}/users/sign_in"

    @property
    def appointment_url(self) -> str:
        return f"{self.base_url}/schedule/{self.schedule_id}/appointment"

    @property
    def relogin_delay(self) -> float:
        return self.refresh_delay * 2

    def days_url(self, facility_id: str) -> str:
        return f"{self.appointment_url}/days/{facility_id}.json"

    def times_url(self, facility_id: str) -> str:
        return f"{self.appointment_url}/times/{facility_id}.json"
