"""
Provider Factory - process-wide SMS provider instance
"""
from __future__ import annotations

import threading

from dealer_bot.core.circuit_breaker import get_twilio_circuit_breaker
from dealer_bot.core.logging import get_logger
from dealer_bot.domain.services.sms.base_provider import BaseSmsProvider

logger = get_logger(__name__)

_provider: BaseSmsProvider | None = None
_lock = threading.Lock()


def get_sms_provider() -> BaseSmsProvider:
    global _provider
    if _provider is None:
        with _lock:
            if _provider is None:
                from dealer_bot.domain.services.sms.twilio_provider import TwilioProvider

                _provider = TwilioProvider(circuit_breaker=get_twilio_circuit_breaker())
                logger.info("SMS provider initialized", extra_data={"provider": _provider.provider_name})
    return _provider


def reset_providers() -> None:
    """Drop the cached provider (tests)."""
    global _provider
    with _lock:
        _provider = None
