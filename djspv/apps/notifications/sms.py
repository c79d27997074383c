from __future__ import annotations

import os
from typing import Any, Optional

import requests
from django.conf import settings
from requests import Response

DEFAULT_TIMEOUT = (5, 20)  # (connect, read) seconds


class SmsGatewayError(Exception):
    pass


class SmsGateway:
    """Thin client for the HTTP SMS gateway: ``POST {base}/messages`` with a bearer token."""

    def __init__(self, base_url: Optional[str] = None, token: Optional[str] = None) -> None:
        self.base_url = (base_url if base_url is not None else getattr(settings, "SMS_GATEWAY_URL", "")) or ""
        self.token = (token if token is not None else getattr(settings, "SMS_GATEWAY_TOKEN", "")) or ""

    @property
    def configured(self) -> bool:
        return bool(self.base_url.strip())

    def _sim(self) -> bool:
        return str(os.getenv("DJ_SMS_SIMULATE") or "").lower() in ("1", "true", "yes", "on")

    def _headers(self) -> dict[str, str]:
        h = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.token:
            h["Authorization"] = f"Bearer {self.token}"
        return h

    def _base(self) -> str:
        base = self.base_url.rstrip("/")
        if not base:
            raise SmsGatewayError("Missing SMS_GATEWAY_URL")
        return base

    def _handle(self, resp: Response) -> Any:
        try:
            resp.raise_for_status()
        except requests.HTTPError as e:
            try:
                body = resp.json()
            except ValueError:
                body = resp.text[:500]
            raise SmsGatewayError(f"HTTP {resp.status_code}: {body}") from e
        try:
            return resp.json()
        except ValueError:
            return resp.text

    def send(self, phone_number: str, message: str) -> Any:
        if not phone_number:
            raise SmsGatewayError("Missing phone number")
        if self._sim():
            return {"status": "simulated", "to": phone_number}
        url = f"{self._base()}/messages"
        try:
            resp = requests.post(
                url,
                json={"to": phone_number, "message": message[:640]},
                headers=self._headers(),
                timeout=DEFAULT_TIMEOUT,
            )
        except requests.RequestException as e:
            raise SmsGatewayError(f"SMS gateway unreachable: {e}") from e
        return self._handle(resp)
