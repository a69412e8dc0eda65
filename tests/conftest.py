"""
Pytest configuration and fixtures for Gateway Publisher tests.

Orchestrator tests run against in-memory SQLite with the worker pool in
inline mode and a scripted fake capability standing in for a vendor.
"""
import json
from datetime import datetime, timedelta
from typing import Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from gateway_publisher.adapters.gateway_capability import GatewayCapability
from gateway_publisher.adapters.registry import CapabilityRegistry
from gateway_publisher.database import Base
from gateway_publisher.errors import ValidationError, VendorError
from gateway_publisher.models import (
    APIDefinition,
    APIDefinitionStatus,
    APIType,
    GatewayRecord,
    GatewayVendor,
)
from gateway_publisher.schemas.config_document import (
    APIConfigResult,
    ConfigMeta,
    DomainResult,
    MCPConfigResult,
    MCPMeta,
    MCPServerConfig,
)
from gateway_publisher.schemas.consumer import AuthRecord
from gateway_publisher.services.cache_service import SyncMarker, TTLCache
from gateway_publisher.services.config_sync_service import ConfigSyncService
from gateway_publisher.services.consumer_service import ConsumerService
from gateway_publisher.services.publish_service import PublishService
from gateway_publisher.workers.deployment_worker import DeploymentWorkerPool


# ============== Fake vendor ==============

class FakeCapability(GatewayCapability):
    """Scripted vendor: records calls, fails on demand."""

    vendor = GatewayVendor.HIGRESS
    supported_api_types = (APIType.REST_API, APIType.MCP_SERVER)

    def __init__(self):
        self.published: list[tuple[str, dict]] = []
        self.unpublished: list[tuple[str, dict]] = []
        self.resolved: list[dict] = []
        self.publish_error: Optional[Exception] = None
        self.unpublish_error: Optional[Exception] = None
        self.resolve_error: Optional[Exception] = None
        self.tools: Optional[str] = '{"tools": []}'
        self.tools_error: Optional[Exception] = None
        self.grants: dict[tuple[str, str], AuthRecord] = {}

    def validate_publish_options(self, definition, options):
        super().validate_publish_options(definition, options)
        if options.base_path and not options.base_path.startswith("/"):
            raise ValidationError("base_path must start with '/'", code="INVALID_OPTIONS")

    async def publish(self, gateway, definition, options):
        if self.publish_error:
            raise self.publish_error
        self.published.append((gateway.id, options.model_dump(exclude_none=True)))
        return {"resource_name": definition.name, "path": options.effective_base_path}

    async def unpublish(self, gateway, definition, options):
        if self.unpublish_error:
            raise self.unpublish_error
        self.unpublished.append((definition.name, options.model_dump(exclude_none=True)))

    async def resolve_config(self, gateway, resource_ref, api_type):
        if self.resolve_error:
            raise self.resolve_error
        self.resolved.append(dict(resource_ref))
        if APIType(api_type) is APIType.MCP_SERVER:
            return MCPConfigResult(
                mcp_server_name=resource_ref.get("resource_name"),
                mcp_server_config=MCPServerConfig(
                    path=resource_ref.get("path"),
                    domains=[DomainResult(domain="gw.example.com")],
                ),
                meta=MCPMeta(source=self.vendor.value, protocol="HTTP"),
            )
        return APIConfigResult(
            spec=json.dumps({"basePath": resource_ref.get("path")}),
            meta=ConfigMeta(source=self.vendor.value),
        )

    async def fetch_mcp_tools(self, gateway, mcp_config):
        if self.tools_error:
            raise self.tools_error
        return self.tools

    async def authorize_consumer(self, gateway, consumer_id, resource_ref):
        key = (consumer_id, resource_ref.get("resource_name"))
        if key not in self.grants:
            self.grants[key] = AuthRecord(
                vendor=self.vendor.value,
                resource_ref=resource_ref,
                data={"grant": len(self.grants) + 1},
            )
        return self.grants[key]

    async def revoke_authorization(self, gateway, consumer_id, auth_record):
        self.grants.pop((consumer_id, auth_record.resource_ref.get("resource_name")), None)


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


# ============== Builders ==============

def _make_gateway(**overrides) -> GatewayRecord:
    data = {
        "id": "g1",
        "name": "gateway-1",
        "vendor": GatewayVendor.HIGRESS,
        "gateway_ref": None,
        "connection_config": {"address": "console.local", "username": "admin", "password": "pw"},
    }
    data.update(overrides)
    return GatewayRecord(**data)


def _make_definition(**overrides) -> APIDefinition:
    data = {
        "id": "a1",
        "name": "orders",
        "description": "Orders API",
        "api_type": APIType.REST_API,
        "status": APIDefinitionStatus.DRAFT,
        "version": "1.0.0",
        "spec": {"endpoints": [], "metadata": {}, "properties": []},
        "product_id": None,
    }
    data.update(overrides)
    return APIDefinition(**data)


# ============== Database ==============

@pytest_asyncio.fixture
async def session_factory():
    """In-memory SQLite shared by every session of one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def seed(session_factory):
    """Insert gateways and definitions: ``await seed(_make_gateway(), ...)``."""

    async def _seed(*rows):
        async with session_factory() as session:
            session.add_all(rows)
            await session.commit()
        return rows

    return _seed


# ============== Services ==============

@pytest.fixture
def fake_capability() -> FakeCapability:
    return FakeCapability()


@pytest.fixture
def registry(fake_capability) -> CapabilityRegistry:
    return CapabilityRegistry([fake_capability])


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sync_marker(clock) -> SyncMarker:
    return SyncMarker(TTLCache(default_ttl_seconds=300, clock=clock))


@pytest.fixture
def worker_pool() -> DeploymentWorkerPool:
    return DeploymentWorkerPool(inline=True)


@pytest.fixture
def config_sync(session_factory, registry, sync_marker, worker_pool) -> ConfigSyncService:
    return ConfigSyncService(session_factory, registry, sync_marker, worker_pool)


@pytest.fixture
def publish_service(session_factory, registry, worker_pool, config_sync) -> PublishService:
    return PublishService(session_factory, registry, worker_pool, config_sync)


@pytest.fixture
def consumer_service(session_factory, registry) -> ConsumerService:
    return ConsumerService(session_factory, registry)


@pytest_asyncio.fixture
async def two_gateways(seed):
    await seed(
        _make_gateway(id="g1", name="gateway-1"),
        _make_gateway(id="g2", name="gateway-2"),
        _make_definition(),
    )


@pytest.fixture
def vendor_error():
    return VendorError("upstream said no", vendor="HIGRESS", status_code=500)
