# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Deployments router - publish/unpublish API definitions and read their history"""
from fastapi import APIRouter, Depends, Query, status

from ..dependencies import get_publish_service
from ..schemas.deployment import (
    DeploymentDetailResponse,
    DeploymentListResponse,
    DeploymentResponse,
    PublishRequest,
    UnpublishRequest,
)
from ..services.publish_service import PublishService

router = APIRouter(prefix="/v1", tags=["Deployments"])


@router.post(
    "/apis/{api_id}/deployments",
    response_model=DeploymentResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def publish_api(
    api_id: str,
    request: PublishRequest,
    service: PublishService = Depends(get_publish_service),
):
    """
    Publish an API definition to a gateway.

    Returns the PUBLISHING record; poll GET /v1/deployments/{id} for the
    outcome. Publishing to the gateway the API is already ACTIVE on returns
    that deployment.
    """
    record = await service.submit_publish(
        api_id,
        request.gateway_id,
        request.options,
        description=request.description,
    )
    return DeploymentResponse.model_validate(record)


@router.post(
    "/apis/{api_id}/deployments/{deployment_id}/unpublish",
    response_model=DeploymentResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def unpublish_api(
    api_id: str,
    deployment_id: str,
    request: UnpublishRequest | None = None,
    service: PublishService = Depends(get_publish_service),
):
    """Unpublish the resource created by a deployment, replaying its original options"""
    record = await service.submit_unpublish(
        api_id,
        deployment_id,
        description=request.description if request else None,
    )
    return DeploymentResponse.model_validate(record)


@router.get("/apis/{api_id}/deployments", response_model=DeploymentListResponse)
async def list_deployments(
    api_id: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    service: PublishService = Depends(get_publish_service),
):
    """Publish history of an API, newest first"""
    records, total = await service.list_deployments(api_id, page, page_size)
    return DeploymentListResponse(
        items=[DeploymentResponse.model_validate(r) for r in records],
        total=total,
    )


@router.get("/deployments/{deployment_id}", response_model=DeploymentDetailResponse)
async def get_deployment(
    deployment_id: str,
    service: PublishService = Depends(get_publish_service),
):
    record = await service.get_deployment_status(deployment_id)
    return DeploymentDetailResponse.model_validate(record)


@router.delete("/apis/{api_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_api(
    api_id: str,
    service: PublishService = Depends(get_publish_service),
):
    """Delete an API definition; refused while it is deployed or deploying"""
    await service.delete_api_definition(api_id)
