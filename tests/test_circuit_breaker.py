"""
Tests for the circuit breaker around outbound Twilio and Telegram calls
"""
import asyncio
from unittest.mock import AsyncMock

import pytest

from dealer_bot.core.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
    get_telegram_circuit_breaker,
    get_twilio_circuit_breaker,
)
from dealer_bot.core.exceptions import CircuitBreakerOpenError


class TestCircuitBreaker:

    @pytest.fixture
    def config(self) -> CircuitBreakerConfig:
        return CircuitBreakerConfig(
            failure_threshold=3,
            success_threshold=2,
            timeout_seconds=0.1,
            half_open_max_calls=2
        )

    @pytest.fixture
    def breaker(self, config: CircuitBreakerConfig) -> CircuitBreaker:
        return CircuitBreaker("test-service", config)

    async def _trip(self, breaker: CircuitBreaker) -> None:
        failing = AsyncMock(side_effect=RuntimeError("down"))
        for _ in range(breaker.config.failure_threshold):
            with pytest.raises(RuntimeError):
                await breaker.execute(failing)

    @pytest.mark.unit
    async def test_initial_state_is_closed(self, breaker: CircuitBreaker):
        assert breaker.state == CircuitState.CLOSED
        assert not breaker.is_open

    @pytest.mark.unit
    async def test_successful_execution_keeps_closed(self, breaker: CircuitBreaker):
        result = await breaker.execute(AsyncMock(return_value="SM1"))

        assert result == "SM1"
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.unit
    async def test_sync_callable_supported(self, breaker: CircuitBreaker):
        assert await breaker.execute(lambda: 7) == 7

    @pytest.mark.unit
    async def test_failures_open_circuit(self, breaker: CircuitBreaker):
        await self._trip(breaker)

        assert breaker.is_open

    @pytest.mark.unit
    async def test_success_resets_failure_count(self, breaker: CircuitBreaker):
        failing = AsyncMock(side_effect=RuntimeError("down"))
        for _ in range(2):
            with pytest.raises(RuntimeError):
                await breaker.execute(failing)
        await breaker.execute(AsyncMock(return_value=None))
        for _ in range(2):
            with pytest.raises(RuntimeError):
                await breaker.execute(failing)

        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.unit
    async def test_open_circuit_blocks_requests(self, breaker: CircuitBreaker):
        await self._trip(breaker)
        call = AsyncMock(return_value="never")

        with pytest.raises(CircuitBreakerOpenError) as exc_info:
            await breaker.execute(call)

        call.assert_not_awaited()
        assert exc_info.value.details["service"] == "test-service"

    @pytest.mark.unit
    async def test_circuit_transitions_to_half_open(self, breaker: CircuitBreaker):
        await self._trip(breaker)
        await asyncio.sleep(0.15)

        assert breaker.can_execute()
        assert breaker.state == CircuitState.HALF_OPEN

    @pytest.mark.unit
    async def test_half_open_success_closes_circuit(self, breaker: CircuitBreaker):
        await self._trip(breaker)
        await asyncio.sleep(0.15)

        for _ in range(2):
            await breaker.execute(AsyncMock(return_value="ok"))

        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.unit
    async def test_half_open_failure_reopens_circuit(self, breaker: CircuitBreaker):
        await self._trip(breaker)
        await asyncio.sleep(0.15)

        with pytest.raises(RuntimeError):
            await breaker.execute(AsyncMock(side_effect=RuntimeError("still down")))

        assert breaker.is_open

    @pytest.mark.unit
    async def test_get_retry_after(self, breaker: CircuitBreaker):
        assert breaker.get_retry_after() == 0.0

        await self._trip(breaker)

        assert 0 < breaker.get_retry_after() <= 0.1

    @pytest.mark.unit
    async def test_singleton_per_service(self):
        assert get_twilio_circuit_breaker() is get_twilio_circuit_breaker()
        assert get_twilio_circuit_breaker() is not get_telegram_circuit_breaker()
        assert get_telegram_circuit_breaker().config.failure_threshold == 3
