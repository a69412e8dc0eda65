"""Tests for the publish/unpublish orchestrator.

Covers the deployment state machine, the per-API conflict rules, snapshot
replay on unpublish, deletion guards and the stuck-record sweep.
"""
import asyncio
import json
from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from conftest import _make_definition
from gateway_publisher.errors import (
    APIDefinitionNotFoundError,
    ConflictError,
    DeploymentNotFoundError,
    GatewayNotFoundError,
    PublisherError,
    PublisherErrorCode,
    ValidationError,
)
from gateway_publisher.models import APIDefinition, APIDefinitionStatus, APIType, PublishStatus
from gateway_publisher.models.deployment import DeploymentRecord
from gateway_publisher.models.product_ref import ProductRef
from gateway_publisher.repositories.deployment import DeploymentRepository
from gateway_publisher.schemas.deployment import DeploymentOptions
from gateway_publisher.services.publish_service import STALE_ERROR_MESSAGE, PublishService
from gateway_publisher.services.snapshot import build_snapshot
from gateway_publisher.workers.deployment_worker import DeploymentWorkerPool


async def _get(session_factory, model, key):
    async with session_factory() as session:
        return await session.get(model, key)


@pytest.fixture
def queued_service(session_factory, registry, config_sync):
    """Service whose jobs stay queued (pool never started)."""
    return PublishService(session_factory, registry, DeploymentWorkerPool(queue_size=10), config_sync)


class TestPublishLifecycle:
    """Publish -> conflict -> unpublish walk-through"""

    @pytest.mark.asyncio
    async def test_publish_conflict_unpublish_scenario(
        self, publish_service, config_sync, two_gateways, session_factory
    ):
        d1 = await publish_service.submit_publish("a1", "g1", DeploymentOptions(path="/x"))
        assert d1.status is PublishStatus.PUBLISHING

        d1 = await publish_service.get_deployment_status(d1.id)
        assert d1.status is PublishStatus.ACTIVE
        assert d1.resource_ref == {"resource_name": "orders", "path": "/x"}

        ref = await config_sync.get_resolved_config("a1")
        assert ref.gateway_id == "g1"
        assert ref.stale is False
        assert json.loads(ref.config["spec"]) == {"basePath": "/x"}

        with pytest.raises(ConflictError) as exc_info:
            await publish_service.submit_publish("a1", "g2", DeploymentOptions(path="/x"))
        assert "published on g1" in exc_info.value.message
        assert exc_info.value.code is PublisherErrorCode.DEPLOYMENT_CONFLICT

        d2 = await publish_service.submit_unpublish("a1", d1.id)
        assert d2.status is PublishStatus.UNPUBLISHING
        assert d2.resource_ref == d1.resource_ref

        d2 = await publish_service.get_deployment_status(d2.id)
        assert d2.status is PublishStatus.INACTIVE

        ref = await _get(session_factory, ProductRef, "a1")
        assert ref.stale is True
        assert ref.gateway_id is None
        assert ref.resource_ref is None
        assert ref.config is None

    @pytest.mark.asyncio
    async def test_publish_sets_definition_status(self, publish_service, two_gateways, session_factory):
        d1 = await publish_service.submit_publish("a1", "g1")
        assert (await _get(session_factory, APIDefinition, "a1")).status is APIDefinitionStatus.PUBLISHED

        await publish_service.submit_unpublish("a1", d1.id)
        assert (await _get(session_factory, APIDefinition, "a1")).status is APIDefinitionStatus.DRAFT

    @pytest.mark.asyncio
    async def test_republish_same_gateway_is_idempotent(self, publish_service, fake_capability, two_gateways):
        d1 = await publish_service.submit_publish("a1", "g1", DeploymentOptions(path="/x"))
        again = await publish_service.submit_publish("a1", "g1", DeploymentOptions(path="/y"))

        assert again.id == d1.id
        assert again.status is PublishStatus.ACTIVE
        assert len(fake_capability.published) == 1

    @pytest.mark.asyncio
    async def test_publish_elsewhere_after_unpublish(self, publish_service, two_gateways):
        d1 = await publish_service.submit_publish("a1", "g1")
        await publish_service.submit_unpublish("a1", d1.id)

        d3 = await publish_service.submit_publish("a1", "g2")

        assert (await publish_service.get_deployment_status(d3.id)).status is PublishStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_history_is_newest_first(self, publish_service, two_gateways):
        d1 = await publish_service.submit_publish("a1", "g1")
        d2 = await publish_service.submit_unpublish("a1", d1.id)
        d3 = await publish_service.submit_publish("a1", "g1")

        items, total = await publish_service.list_deployments("a1")

        assert total == 3
        assert [r.id for r in items] == [d3.id, d2.id, d1.id]
        assert items[0].created_at > items[1].created_at > items[2].created_at


class TestPublishValidation:
    """Errors raised synchronously, before any record is written"""

    @pytest.mark.asyncio
    async def test_unknown_api_definition(self, publish_service, two_gateways):
        with pytest.raises(APIDefinitionNotFoundError):
            await publish_service.submit_publish("missing", "g1")

    @pytest.mark.asyncio
    async def test_unknown_gateway(self, publish_service, two_gateways):
        with pytest.raises(GatewayNotFoundError):
            await publish_service.submit_publish("a1", "nope")

    @pytest.mark.asyncio
    async def test_invalid_options_write_nothing(self, publish_service, two_gateways):
        with pytest.raises(ValidationError) as exc_info:
            await publish_service.submit_publish("a1", "g1", DeploymentOptions(base_path="no-slash"))

        assert exc_info.value.code is PublisherErrorCode.INVALID_OPTIONS
        _, total = await publish_service.list_deployments("a1")
        assert total == 0

    @pytest.mark.asyncio
    async def test_unsupported_api_type(self, publish_service, seed, two_gateways):
        await seed(_make_definition(id="agent-1", name="agent", api_type=APIType.AGENT_API))

        with pytest.raises(ValidationError) as exc_info:
            await publish_service.submit_publish("agent-1", "g1")

        assert exc_info.value.code is PublisherErrorCode.UNSUPPORTED_API_TYPE
        assert exc_info.value.details["supported_api_types"] == ["REST_API", "MCP_SERVER"]


class TestInFlightConflicts:
    """At most one processing record per (API, gateway), one gateway per API"""

    @pytest.mark.asyncio
    async def test_second_publish_while_publishing(self, queued_service, two_gateways):
        pending = await queued_service.submit_publish("a1", "g1")

        with pytest.raises(ConflictError) as exc_info:
            await queued_service.submit_publish("a1", "g1")

        assert exc_info.value.code is PublisherErrorCode.DEPLOYMENT_IN_PROGRESS
        assert exc_info.value.details["deployment_id"] == pending.id

    @pytest.mark.asyncio
    async def test_publish_other_gateway_while_publishing(self, queued_service, two_gateways):
        await queued_service.submit_publish("a1", "g1")

        with pytest.raises(ConflictError) as exc_info:
            await queued_service.submit_publish("a1", "g2")

        assert exc_info.value.code is PublisherErrorCode.DEPLOYMENT_CONFLICT

    @pytest.mark.asyncio
    async def test_unpublish_while_publishing(self, queued_service, two_gateways):
        pending = await queued_service.submit_publish("a1", "g1")

        with pytest.raises(ConflictError) as exc_info:
            await queued_service.submit_unpublish("a1", pending.id)

        assert exc_info.value.code is PublisherErrorCode.DEPLOYMENT_IN_PROGRESS

    @pytest.mark.asyncio
    async def test_full_queue_rejects_before_writing(self, session_factory, registry, config_sync, seed, two_gateways):
        await seed(_make_definition(id="a2", name="billing"))
        service = PublishService(session_factory, registry, DeploymentWorkerPool(queue_size=1), config_sync)
        await service.submit_publish("a1", "g1")

        with pytest.raises(PublisherError) as exc_info:
            await service.submit_publish("a2", "g1")

        assert exc_info.value.code is PublisherErrorCode.WORKER_UNAVAILABLE
        assert exc_info.value.http_status == 503
        _, total = await service.list_deployments("a2")
        assert total == 0


class TestJobFailures:
    """Vendor failures land on the record, never on the caller"""

    @pytest.mark.asyncio
    async def test_publish_failure_is_recorded(self, publish_service, fake_capability, vendor_error, two_gateways):
        fake_capability.publish_error = vendor_error

        record = await publish_service.submit_publish("a1", "g1")

        record = await publish_service.get_deployment_status(record.id)
        assert record.status is PublishStatus.PUBLISH_FAILED
        assert record.error_message == "upstream said no"
        assert record.resource_ref is None

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_recorded(self, publish_service, fake_capability, two_gateways):
        fake_capability.publish_error = RuntimeError("boom")

        record = await publish_service.submit_publish("a1", "g1")

        assert (await publish_service.get_deployment_status(record.id)).error_message == "boom"

    @pytest.mark.asyncio
    async def test_failed_publish_can_be_retried(self, publish_service, fake_capability, vendor_error, two_gateways):
        fake_capability.publish_error = vendor_error
        failed = await publish_service.submit_publish("a1", "g1")
        fake_capability.publish_error = None

        retried = await publish_service.submit_publish("a1", "g1")

        assert retried.id != failed.id
        assert (await publish_service.get_deployment_status(retried.id)).status is PublishStatus.ACTIVE
        assert (await publish_service.get_deployment_status(failed.id)).status is PublishStatus.PUBLISH_FAILED

    @pytest.mark.asyncio
    async def test_config_sync_failure_keeps_record_active(
        self, publish_service, fake_capability, vendor_error, two_gateways, session_factory
    ):
        fake_capability.resolve_error = vendor_error

        record = await publish_service.submit_publish("a1", "g1")

        assert (await publish_service.get_deployment_status(record.id)).status is PublishStatus.ACTIVE
        assert await _get(session_factory, ProductRef, "a1") is None

    @pytest.mark.asyncio
    async def test_unpublish_failure_keeps_product_ref(
        self, publish_service, fake_capability, vendor_error, two_gateways, session_factory
    ):
        d1 = await publish_service.submit_publish("a1", "g1")
        fake_capability.unpublish_error = vendor_error

        d2 = await publish_service.submit_unpublish("a1", d1.id)

        assert (await publish_service.get_deployment_status(d2.id)).status is PublishStatus.UNPUBLISH_FAILED
        ref = await _get(session_factory, ProductRef, "a1")
        assert ref.gateway_id == "g1"
        assert ref.stale is False


class TestUnpublish:

    @pytest.mark.asyncio
    async def test_unpublish_replays_original_snapshot(
        self, publish_service, fake_capability, two_gateways, session_factory
    ):
        options = DeploymentOptions.model_validate({"path": "/x", "custom_flag": "keep"})
        d1 = await publish_service.submit_publish("a1", "g1", options)

        async with session_factory() as session:
            definition = await session.get(APIDefinition, "a1")
            definition.name = "orders-v2"
            definition.spec = {"endpoints": [{"name": "new"}]}
            await session.commit()

        await publish_service.submit_unpublish("a1", d1.id)

        name, replayed = fake_capability.unpublished[0]
        assert name == "orders"
        assert replayed["path"] == "/x"
        assert replayed["custom_flag"] == "keep"

    @pytest.mark.asyncio
    async def test_unknown_deployment(self, publish_service, two_gateways):
        with pytest.raises(DeploymentNotFoundError):
            await publish_service.submit_unpublish("a1", "missing")

    @pytest.mark.asyncio
    async def test_deployment_of_another_api(self, publish_service, seed, two_gateways):
        await seed(_make_definition(id="a2", name="billing"))
        d1 = await publish_service.submit_publish("a1", "g1")

        with pytest.raises(ValidationError) as exc_info:
            await publish_service.submit_unpublish("a2", d1.id)

        assert exc_info.value.code is PublisherErrorCode.DEPLOYMENT_MISMATCH

    @pytest.mark.asyncio
    async def test_unreadable_snapshot_is_rejected(self, publish_service, seed, two_gateways):
        await seed(DeploymentRecord(
            id="d-old",
            api_definition_id="a1",
            gateway_id="g1",
            status=PublishStatus.ACTIVE,
            snapshot={"kind": "deployment-snapshot", "version": 99, "definition": {}},
        ))

        with pytest.raises(ValidationError) as exc_info:
            await publish_service.submit_unpublish("a1", "d-old")

        assert exc_info.value.code is PublisherErrorCode.INVALID_SNAPSHOT


class TestDeleteApiDefinition:

    @pytest.mark.asyncio
    async def test_delete_blocked_while_active(self, publish_service, two_gateways):
        await publish_service.submit_publish("a1", "g1")

        with pytest.raises(ConflictError) as exc_info:
            await publish_service.delete_api_definition("a1")

        assert exc_info.value.code is PublisherErrorCode.API_IN_USE

    @pytest.mark.asyncio
    async def test_delete_blocked_while_processing(self, queued_service, two_gateways):
        await queued_service.submit_publish("a1", "g1")

        with pytest.raises(ConflictError):
            await queued_service.delete_api_definition("a1")

    @pytest.mark.asyncio
    async def test_delete_after_unpublish(self, publish_service, two_gateways, session_factory):
        d1 = await publish_service.submit_publish("a1", "g1")
        await publish_service.submit_unpublish("a1", d1.id)

        await publish_service.delete_api_definition("a1")

        assert await _get(session_factory, APIDefinition, "a1") is None

    @pytest.mark.asyncio
    async def test_delete_with_only_failed_history(
        self, publish_service, fake_capability, vendor_error, two_gateways, session_factory
    ):
        fake_capability.publish_error = vendor_error
        await publish_service.submit_publish("a1", "g1")

        await publish_service.delete_api_definition("a1")

        assert await _get(session_factory, APIDefinition, "a1") is None

    @pytest.mark.asyncio
    async def test_delete_unknown(self, publish_service, two_gateways):
        with pytest.raises(APIDefinitionNotFoundError):
            await publish_service.delete_api_definition("missing")

    @pytest.mark.asyncio
    async def test_callers_queued_behind_delete_share_its_lock(self, publish_service, two_gateways):
        lock = publish_service._locks["a1"]
        await lock.acquire()
        deleting = asyncio.create_task(publish_service.delete_api_definition("a1"))
        publishing = asyncio.create_task(publish_service.submit_publish("a1", "g1"))
        await asyncio.sleep(0)
        lock.release()

        await deleting
        with pytest.raises(APIDefinitionNotFoundError):
            await publishing
        assert publish_service._locks["a1"] is lock


class TestReconcileStaleRecords:

    def _pending(self, record_id, status, age_minutes, gateway_id="g1"):
        return DeploymentRecord(
            id=record_id,
            api_definition_id="a1",
            gateway_id=gateway_id,
            status=status,
            snapshot=build_snapshot(_make_definition(), DeploymentOptions()),
            created_at=datetime.utcnow() - timedelta(minutes=age_minutes),
        )

    @pytest.mark.asyncio
    async def test_stuck_records_are_failed(self, publish_service, seed, two_gateways, session_factory):
        await seed(
            self._pending("old-pub", PublishStatus.PUBLISHING, 120),
            self._pending("old-unpub", PublishStatus.UNPUBLISHING, 90, gateway_id="g2"),
            self._pending("fresh", PublishStatus.PUBLISHING, 1, gateway_id="g3"),
        )

        failed = await publish_service.reconcile_stale_records(max_age_minutes=30)

        assert failed == 2
        async with session_factory() as session:
            rows = {
                r.id: r
                for r in (await session.execute(select(DeploymentRecord))).scalars().all()
            }
        assert rows["old-pub"].status is PublishStatus.PUBLISH_FAILED
        assert rows["old-pub"].error_message == STALE_ERROR_MESSAGE
        assert rows["old-unpub"].status is PublishStatus.UNPUBLISH_FAILED
        assert rows["fresh"].status is PublishStatus.PUBLISHING

    @pytest.mark.asyncio
    async def test_nothing_to_reconcile(self, publish_service, two_gateways):
        assert await publish_service.reconcile_stale_records(max_age_minutes=30) == 0

    @pytest.mark.asyncio
    async def test_swept_pair_accepts_new_publish(self, publish_service, seed, two_gateways):
        await seed(self._pending("old-pub", PublishStatus.PUBLISHING, 120))
        await publish_service.reconcile_stale_records(max_age_minutes=30)

        record = await publish_service.submit_publish("a1", "g1")

        assert (await publish_service.get_deployment_status(record.id)).status is PublishStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_swept_record_is_not_overwritten_by_its_job(
        self, publish_service, fake_capability, two_gateways, session_factory
    ):
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow_publish(gateway, definition, options):
            started.set()
            await release.wait()
            return {"resource_name": definition.name}

        fake_capability.publish = slow_publish
        job = asyncio.create_task(publish_service.submit_publish("a1", "g1"))
        await asyncio.wait_for(started.wait(), timeout=5)

        assert await publish_service.reconcile_stale_records(max_age_minutes=-1) == 1

        release.set()
        record = await asyncio.wait_for(job, timeout=5)

        stored = await _get(session_factory, DeploymentRecord, record.id)
        assert stored.status is PublishStatus.PUBLISH_FAILED
        assert stored.error_message == STALE_ERROR_MESSAGE
        assert (await _get(session_factory, APIDefinition, "a1")).status is APIDefinitionStatus.DRAFT

    @pytest.mark.asyncio
    async def test_terminal_write_loses_to_an_earlier_writer(self, seed, two_gateways, session_factory):
        await seed(self._pending("d1", PublishStatus.PUBLISHING, 1))

        async with session_factory() as session:
            job_copy = await DeploymentRepository(session).get_by_id("d1")
            async with session_factory() as other:
                swept = await DeploymentRepository(other).get_by_id("d1")
                assert await DeploymentRepository(other).update_status(swept, PublishStatus.PUBLISH_FAILED, "late")
                await other.commit()

            applied = await DeploymentRepository(session).update_status(job_copy, PublishStatus.ACTIVE)
            await session.commit()

        assert applied is False
        assert job_copy.status is PublishStatus.PUBLISH_FAILED
        assert (await _get(session_factory, DeploymentRecord, "d1")).error_message == "late"
