# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Products router - resolved serving-time configuration"""
from fastapi import APIRouter, Depends

from ..dependencies import get_config_sync_service
from ..schemas.product import ProductConfigResponse
from ..services.config_sync_service import ConfigSyncService

router = APIRouter(prefix="/v1/products", tags=["Products"])


@router.get("/{product_id}/config", response_model=ProductConfigResponse)
async def get_product_config(
    product_id: str,
    service: ConfigSyncService = Depends(get_config_sync_service),
):
    """Stored configuration; a background reload is scheduled when it was not synced recently"""
    ref = await service.get_resolved_config(product_id)
    return ProductConfigResponse.from_ref(ref)


@router.post("/{product_id}/reload", response_model=ProductConfigResponse)
async def reload_product_config(
    product_id: str,
    service: ConfigSyncService = Depends(get_config_sync_service),
):
    ref = await service.reload(product_id)
    return ProductConfigResponse.from_ref(ref)
