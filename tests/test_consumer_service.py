"""Tests for consumer routing and authorization idempotency."""
from unittest.mock import AsyncMock

import pytest

from gateway_publisher.errors import GatewayNotFoundError, UnsupportedOperationError
from gateway_publisher.schemas.consumer import ApiKeyCredential, ConsumerCredential, ConsumerSpec


def _make_credential(**overrides) -> ConsumerCredential:
    data = {"api_key_config": ApiKeyCredential(api_key="k-123")}
    data.update(overrides)
    return ConsumerCredential(**data)


class TestAuthorization:

    @pytest.mark.asyncio
    async def test_authorize_is_idempotent(self, consumer_service, two_gateways):
        first = await consumer_service.authorize("g1", "c1", {"resource_name": "orders"})
        second = await consumer_service.authorize("g1", "c1", {"resource_name": "orders"})

        assert first == second

    @pytest.mark.asyncio
    async def test_revoke_twice(self, consumer_service, fake_capability, two_gateways):
        record = await consumer_service.authorize("g1", "c1", {"resource_name": "orders"})

        await consumer_service.revoke("g1", "c1", record)
        await consumer_service.revoke("g1", "c1", record)

        assert fake_capability.grants == {}

    @pytest.mark.asyncio
    async def test_unknown_gateway(self, consumer_service, two_gateways):
        with pytest.raises(GatewayNotFoundError):
            await consumer_service.authorize("nope", "c1", {})


class TestConsumerCrud:

    @pytest.mark.asyncio
    async def test_calls_are_routed_to_capability(self, consumer_service, fake_capability, two_gateways):
        fake_capability.create_consumer = AsyncMock(return_value="vendor-c1")
        fake_capability.update_consumer = AsyncMock()
        fake_capability.delete_consumer = AsyncMock()
        fake_capability.consumer_exists = AsyncMock(return_value=True)
        spec = ConsumerSpec(consumer_id="c1", name="acme-app")

        consumer_id = await consumer_service.create_consumer("g1", spec, _make_credential())
        await consumer_service.update_consumer("g1", consumer_id, _make_credential())
        exists = await consumer_service.consumer_exists("g1", consumer_id)
        await consumer_service.delete_consumer("g1", consumer_id)

        assert consumer_id == "vendor-c1"
        assert exists is True
        gateway = fake_capability.create_consumer.await_args.args[0]
        assert gateway.id == "g1"
        fake_capability.update_consumer.assert_awaited_once()
        assert fake_capability.delete_consumer.await_args.args[1] == "vendor-c1"

    @pytest.mark.asyncio
    async def test_unsupported_vendor_operation(self, consumer_service, two_gateways):
        with pytest.raises(UnsupportedOperationError):
            await consumer_service.create_consumer("g1", ConsumerSpec(consumer_id="c1", name="x"), _make_credential())
