# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Gateways router - discovery and consumer management on vendor gateways"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..adapters.registry import CapabilityRegistry
from ..database import get_db
from ..dependencies import get_consumer_service, get_registry
from ..errors import GatewayNotFoundError
from ..models.gateway import GatewayRecord, GatewayVendor
from ..repositories.gateway import GatewayRepository
from ..schemas.consumer import (
    AuthorizeRequest,
    AuthRecord,
    ConsumerCreatedResponse,
    ConsumerExistsResponse,
    CreateConsumerRequest,
    RevokeRequest,
    UpdateConsumerRequest,
)
from ..schemas.gateway import (
    GatewayCapabilitiesResponse,
    GatewayResponse,
    Page,
    ResourceKind,
    ResourceSummary,
)
from ..services.consumer_service import ConsumerService

router = APIRouter(prefix="/v1/gateways", tags=["Gateways"])


async def _get_gateway(db: AsyncSession, gateway_id: str) -> GatewayRecord:
    gateway = await GatewayRepository(db).get_by_id(gateway_id)
    if gateway is None:
        raise GatewayNotFoundError(gateway_id)
    return gateway


@router.get("", response_model=List[GatewayResponse])
async def list_gateways(
    vendor: Optional[GatewayVendor] = None,
    db: AsyncSession = Depends(get_db),
):
    gateways = await GatewayRepository(db).list_all(vendor)
    return [GatewayResponse.model_validate(g) for g in gateways]


@router.get("/{gateway_id}/capabilities", response_model=GatewayCapabilitiesResponse)
async def get_gateway_capabilities(
    gateway_id: str,
    db: AsyncSession = Depends(get_db),
    registry: CapabilityRegistry = Depends(get_registry),
):
    gateway = await _get_gateway(db, gateway_id)
    capability = registry.for_gateway(gateway)
    return GatewayCapabilitiesResponse(
        gateway_id=gateway.id,
        vendor=gateway.vendor,
        supported_api_types=[t.value for t in capability.supported_api_types],
        can_publish=bool(capability.supported_api_types),
    )


@router.get("/{gateway_id}/resources", response_model=Page[ResourceSummary])
async def list_gateway_resources(
    gateway_id: str,
    kind: ResourceKind,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    registry: CapabilityRegistry = Depends(get_registry),
):
    """List resources of one kind living on the gateway"""
    gateway = await _get_gateway(db, gateway_id)
    return await registry.for_gateway(gateway).list_resources(gateway, kind, page, size)


# ============== Consumers ==============

@router.post(
    "/{gateway_id}/consumers",
    response_model=ConsumerCreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_consumer(
    gateway_id: str,
    request: CreateConsumerRequest,
    service: ConsumerService = Depends(get_consumer_service),
):
    consumer_id = await service.create_consumer(gateway_id, request.consumer, request.credential)
    return ConsumerCreatedResponse(gateway_id=gateway_id, consumer_id=consumer_id)


@router.get("/{gateway_id}/consumers/{consumer_id}", response_model=ConsumerExistsResponse)
async def check_consumer(
    gateway_id: str,
    consumer_id: str,
    service: ConsumerService = Depends(get_consumer_service),
):
    exists = await service.consumer_exists(gateway_id, consumer_id)
    return ConsumerExistsResponse(gateway_id=gateway_id, consumer_id=consumer_id, exists=exists)


@router.put("/{gateway_id}/consumers/{consumer_id}", status_code=status.HTTP_204_NO_CONTENT)
async def update_consumer(
    gateway_id: str,
    consumer_id: str,
    request: UpdateConsumerRequest,
    service: ConsumerService = Depends(get_consumer_service),
):
    await service.update_consumer(gateway_id, consumer_id, request.credential)


@router.delete("/{gateway_id}/consumers/{consumer_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_consumer(
    gateway_id: str,
    consumer_id: str,
    service: ConsumerService = Depends(get_consumer_service),
):
    await service.delete_consumer(gateway_id, consumer_id)


@router.post("/{gateway_id}/consumers/{consumer_id}/authorizations", response_model=AuthRecord)
async def authorize_consumer(
    gateway_id: str,
    consumer_id: str,
    request: AuthorizeRequest,
    service: ConsumerService = Depends(get_consumer_service),
):
    """Grant access to a resource; an existing grant is returned as is"""
    return await service.authorize(gateway_id, consumer_id, request.resource_ref)


@router.post(
    "/{gateway_id}/consumers/{consumer_id}/authorizations/revoke",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def revoke_authorization(
    gateway_id: str,
    consumer_id: str,
    request: RevokeRequest,
    service: ConsumerService = Depends(get_consumer_service),
):
    await service.revoke(gateway_id, consumer_id, request.auth_record)
