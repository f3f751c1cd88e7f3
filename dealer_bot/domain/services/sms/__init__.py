"""
SMS / voice transport
"""
from dealer_bot.domain.services.sms.base_provider import BaseSmsProvider
from dealer_bot.domain.services.sms.provider_factory import get_sms_provider, reset_providers

__all__ = ["BaseSmsProvider", "get_sms_provider", "reset_providers"]
