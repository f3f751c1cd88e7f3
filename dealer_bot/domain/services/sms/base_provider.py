"""
Transport interface for outbound SMS and voice drops.

Business logic depends on this interface only; the Twilio implementation
lives in twilio_provider.py.
"""
from __future__ import annotations

from abc import ABC, abstractmethod


class BaseSmsProvider(ABC):
    """
    Each implementation owns the HTTP/SDK call, retry and circuit breaker.
    Phones passed in are already canonical (+1XXXXXXXXXX).
    """

    @abstractmethod
    async def send_message(self, to: str, body: str) -> str:
        """
        Send one SMS.

        Returns:
            Transport delivery id.

        Raises:
            SmsTransportError: the transport rejected or failed the send.
        """

    @abstractmethod
    async def place_voice_drop(self, to: str, speech_text: str, keypress_callback_url: str) -> str:
        """
        Place a call that reads ``speech_text`` and gathers one keypress
        posted to ``keypress_callback_url``.

        Returns:
            Transport call id.
        """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Name used in logs."""
