from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Protocol, Sequence

import httpx
from twilio.base.exceptions import TwilioException
from twilio.rest import Client
from twilio.twiml.voice_response import VoiceResponse

from app.settings import settings

logger = logging.getLogger("medcalls.calls")


class CallProviderError(RuntimeError):
    pass


def join_names(names: Sequence[str]) -> str:
    """Oxford-comma join: X / X and Y / X, Y, and Z."""
    items = list(names)
    if not items:
        return ""
    if len(items) == 1:
        return items[0]
    if len(items) == 2:
        return f"{items[0]} and {items[1]}"
    return ", ".join(items[:-1]) + f", and {items[-1]}"


@dataclass(frozen=True)
class CallMedication:
    id: int
    name: str


@dataclass(frozen=True)
class CallRequest:
    phone: str
    name: str
    medications: list[CallMedication] = field(default_factory=list)

    @property
    def spoken_text(self) -> str:
        return join_names([m.name for m in self.medications])

    def to_payload(self) -> dict:
        return {
            "phoneNumber": self.phone,
            "userName": self.name,
            "medications": [{"id": m.id, "name": m.name} for m in self.medications],
            "medicationName": self.spoken_text,
        }


def build_call_script(name: str, medications: Sequence[str], voice: str | None = None) -> str:
    response = VoiceResponse()
    response.pause(length=1)
    response.say(
        f"Hello {name or 'User'}. "
        f"This is a reminder to take your {join_names(medications) or 'medication'}. "
        "Please take it now.",
        voice=voice or settings.TWILIO_VOICE,
    )
    response.hangup()
    return str(response)


class CallProvider(Protocol):
    async def place_call(self, request: CallRequest) -> str:
        """Start the call and return the provider's call reference."""


class TwilioCallProvider:
    def __init__(self, client: Client | None = None, from_number: str | None = None) -> None:
        if client is None:
            if not settings.TWILIO_ACCOUNT_SID or not settings.TWILIO_AUTH_TOKEN:
                raise RuntimeError("TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN are required.")
            client = Client(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN)
        from_number = from_number or settings.TWILIO_PHONE_NUMBER
        if not from_number:
            raise RuntimeError("TWILIO_PHONE_NUMBER is missing.")
        self._client = client
        self._from = from_number

    def _create(self, request: CallRequest) -> str:
        twiml = build_call_script(request.name, [m.name for m in request.medications])
        call = self._client.calls.create(
            twiml=twiml,
            to=request.phone,
            from_=self._from,
            time_limit=settings.CALL_TIME_LIMIT_SEC,
        )
        return call.sid

    async def place_call(self, request: CallRequest) -> str:
        try:
            sid = await asyncio.to_thread(self._create, request)
        except TwilioException as exc:
            raise CallProviderError(str(exc)) from exc
        logger.info("Call started: %s", sid)
        return sid


class HttpCallProvider:
    """Delegates to a remote make-call endpoint."""

    def __init__(self, url: str | None = None, api_key: str | None = None, transport=None) -> None:
        url = url or settings.CALL_PROVIDER_URL
        if not url:
            raise RuntimeError("CALL_PROVIDER_URL is missing.")
        self.url = url
        self.api_key = api_key or settings.CALL_PROVIDER_KEY
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
            headers["apikey"] = self.api_key
        return headers

    async def place_call(self, request: CallRequest) -> str:
        try:
            async with httpx.AsyncClient(timeout=settings.CALL_TIMEOUT_SEC, transport=self._transport) as client:
                response = await client.post(self.url, json=request.to_payload(), headers=self._headers())
        except httpx.HTTPError as exc:
            raise CallProviderError(f"Call provider unreachable: {exc}") from exc

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}
        if not response.is_success:
            raise CallProviderError(data.get("error") or f"HTTP {response.status_code}")
        sid = data.get("callSid")
        if not sid:
            raise CallProviderError("Call provider response missing callSid")
        return sid


def get_call_provider() -> CallProvider:
    kind = settings.CALL_PROVIDER.strip().lower()
    if kind == "http":
        return HttpCallProvider()
    if kind == "twilio":
        return TwilioCallProvider()
    raise RuntimeError(f"Unsupported CALL_PROVIDER: {settings.CALL_PROVIDER}")
