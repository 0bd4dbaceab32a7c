"""
Client for the spreadsheet API that holds login credentials and the referral log.

Every call is best-effort: failures are logged and swallowed so the wallet
flow that triggered them still succeeds.
"""
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from .errors import UpstreamUnavailableError
from .logger import get_logger

logger = get_logger(__name__)


class SheetsClient:
    def __init__(
        self,
        credentials_url: Optional[str] = None,
        referral_url: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.credentials_url = credentials_url
        self.referral_url = referral_url.rstrip("/") if referral_url else None
        self.timeout = timeout
        self.transport = transport

    @property
    def validates_credentials(self) -> bool:
        return self.credentials_url is not None

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.request(method, url, **kwargs)
                response.raise_for_status()
                return response
        except httpx.HTTPError as e:
            raise UpstreamUnavailableError(f"{method} {url} failed: {e}") from e

    def validate_credentials(self, username: str, password: str) -> bool:
        if not self.credentials_url:
            return False
        try:
            rows = self._request("GET", self.credentials_url).json()
        except (UpstreamUnavailableError, ValueError) as e:
            logger.warning("sheets_credentials_failed", username=username, error=str(e))
            return False
        return any(
            isinstance(row, dict) and row.get("username") == username and row.get("password") == password
            for row in rows
        )

    def record_referral(
        self,
        username: str,
        referral_code: str,
        referred_by: str = "",
        referral_bonus: str = "NO",
    ) -> None:
        if not self.referral_url:
            return
        row = {
            "username": username,
            "referralCode": referral_code,
            "referredBy": referred_by,
            "referralDate": datetime.now(timezone.utc).isoformat(),
            "referralBonus": referral_bonus,
        }
        try:
            self._request("POST", self.referral_url, json={"data": [row]})
        except UpstreamUnavailableError as e:
            logger.warning("sheets_referral_record_failed", username=username, error=str(e))

    def mark_referral_bonus(self, username: str) -> None:
        if not self.referral_url:
            return
        try:
            self._request(
                "PATCH",
                f"{self.referral_url}/username/{username}",
                json={"data": {"referralBonus": "YES"}},
            )
        except UpstreamUnavailableError as e:
            logger.warning("sheets_referral_bonus_failed", username=username, error=str(e))
