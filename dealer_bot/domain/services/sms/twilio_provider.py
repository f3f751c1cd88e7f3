"""
Twilio Provider - BaseSmsProvider over the Twilio REST API

Plain httpx against the 2010-04-01 REST API with retry on transient
status codes and a circuit breaker around each logical send.
"""
from __future__ import annotations

import asyncio

import httpx

from dealer_bot.core.circuit_breaker import CircuitBreaker
from dealer_bot.core.config import settings
from dealer_bot.core.exceptions import SmsTransportError
from dealer_bot.core.logging import get_logger
from dealer_bot.core.validation import PhoneNumberValidator
from dealer_bot.domain.services.sms import twiml
from dealer_bot.domain.services.sms.base_provider import BaseSmsProvider

logger = get_logger(__name__)


class TwilioProvider(BaseSmsProvider):
    """
    Endpoints used:
    - POST /Accounts/{sid}/Messages.json (To, From, Body)
    - POST /Accounts/{sid}/Calls.json (To, From, Twiml)
    """

    def __init__(self, circuit_breaker: CircuitBreaker) -> None:
        self.backoff_base_seconds = settings.TWILIO_BACKOFF_BASE_SECONDS
        self._timeout = settings.TWILIO_TIMEOUT_SECONDS
        self._circuit_breaker = circuit_breaker
        self._account_sid = settings.TWILIO_ACCOUNT_SID
        self._auth_token = settings.TWILIO_AUTH_TOKEN
        self._from_number = settings.TWILIO_PHONE_NUMBER
        self._base_url = f"{settings.TWILIO_API_BASE_URL}/Accounts/{self._account_sid}"
        self._max_retries = settings.TWILIO_MAX_RETRIES
        self._transient_status_codes = settings.transient_status_codes

    @property
    def provider_name(self) -> str:
        return "twilio"

    async def _post_with_retry(self, resource: str, data: dict, operation_name: str) -> dict:
        """
        POST form data, retrying transient failures with exponential backoff.

        Raises SmsTransportError once the attempts are exhausted or on a
        non-transient error status.
        """
        phone_masked = PhoneNumberValidator.mask(data.get("To", ""))
        url = f"{self._base_url}/{resource}"

        async with httpx.AsyncClient(
            timeout=self._timeout,
            auth=(self._account_sid, self._auth_token),
        ) as client:
            for attempt in range(self._max_retries):
                last_attempt = attempt == self._max_retries - 1
                backoff = self.backoff_base_seconds * (2 ** attempt)
                try:
                    response = await client.post(url, data=data)
                except httpx.TimeoutException:
                    if last_attempt:
                        raise SmsTransportError(
                            message=f"{resource} timeout after retries",
                            details={"timeout": True, "attempts": self._max_retries},
                        )
                    logger.warning(
                        f"{operation_name} timed out, retrying",
                        extra_data={"phone": phone_masked, "attempt": attempt + 1, "backoff_seconds": backoff},
                    )
                    await asyncio.sleep(backoff)
                    continue
                except httpx.RequestError as exc:
                    if last_attempt:
                        raise SmsTransportError(
                            message=f"{resource} network error: {exc}",
                            details={"network_error": True, "attempts": self._max_retries},
                        )
                    logger.warning(
                        f"{operation_name} network error, retrying",
                        extra_data={
                            "phone": phone_masked,
                            "error": str(exc),
                            "attempt": attempt + 1,
                            "backoff_seconds": backoff,
                        },
                    )
                    await asyncio.sleep(backoff)
                    continue

                if response.status_code in (200, 201):
                    return response.json()

                if response.status_code in self._transient_status_codes and not last_attempt:
                    logger.warning(
                        f"{operation_name} transient error, retrying",
                        extra_data={
                            "phone": phone_masked,
                            "status_code": response.status_code,
                            "attempt": attempt + 1,
                            "max_retries": self._max_retries,
                            "backoff_seconds": backoff,
                        },
                    )
                    await asyncio.sleep(backoff)
                    continue

                raise SmsTransportError.from_response(resource, response)

        raise SmsTransportError(message=f"{resource} failed", details={"attempts": self._max_retries})

    async def send_message(self, to: str, body: str) -> str:
        data = {"To": to, "From": self._from_number, "Body": body}

        async def _send() -> dict:
            return await self._post_with_retry("Messages.json", data, "SMS send")

        result = await self._circuit_breaker.execute(_send)
        message_sid = result.get("sid", "")
        logger.info(
            "SMS sent",
            extra_data={"phone": PhoneNumberValidator.mask(to), "sid": message_sid},
        )
        return message_sid

    async def place_voice_drop(self, to: str, speech_text: str, keypress_callback_url: str) -> str:
        data = {
            "To": to,
            "From": self._from_number,
            "Twiml": twiml.voice_drop(speech_text, keypress_callback_url, settings.TWILIO_VOICE),
        }

        async def _call() -> dict:
            return await self._post_with_retry("Calls.json", data, "Voice drop")

        result = await self._circuit_breaker.execute(_call)
        call_sid = result.get("sid", "")
        logger.info(
            "Voice drop placed",
            extra_data={"phone": PhoneNumberValidator.mask(to), "sid": call_sid},
        )
        return call_sid
