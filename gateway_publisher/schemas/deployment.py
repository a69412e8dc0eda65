# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Pydantic schemas for publish/unpublish requests and deployment records."""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models.deployment import PublishStatus


class DomainOption(BaseModel):
    """Gateway domain the resource should be exposed on."""
    domain: str
    protocol: Optional[str] = None


class ServiceOptions(BaseModel):
    """Backend the gateway routes to.

    Either an existing gateway service (``service_id``) or an address the
    vendor creates a service for.
    """
    service_id: Optional[str] = None
    name: Optional[str] = None
    type: Optional[str] = Field(None, description="e.g. AI, DNS, FixedAddress, Native")
    address: Optional[str] = None
    port: Optional[int] = None
    protocol: Optional[str] = None
    provider: Optional[str] = None
    meta: Dict[str, str] = Field(default_factory=dict)

    @property
    def is_native(self) -> bool:
        return bool(self.service_id) or (self.type or "").lower() == "native"


class DeploymentOptions(BaseModel):
    """Producer-supplied deployment options.

    Free-form: vendors read the known fields and may read any extra key.
    Stored verbatim in the deployment snapshot and replayed on unpublish.
    """
    base_path: Optional[str] = None
    path: Optional[str] = None
    domains: List[DomainOption] = Field(default_factory=list)
    service: Optional[ServiceOptions] = None
    transport: Optional[str] = Field(None, description="MCP transport: SSE or HTTP")
    ai_protocols: Optional[List[str]] = None
    agent_protocols: Optional[List[str]] = None

    model_config = ConfigDict(extra="allow")

    @property
    def domain_names(self) -> List[str]:
        return [d.domain for d in self.domains]

    @property
    def effective_base_path(self) -> str:
        return self.base_path or self.path or "/"


# ============== Requests ==============

class PublishRequest(BaseModel):
    gateway_id: str
    options: DeploymentOptions = Field(default_factory=DeploymentOptions)
    description: Optional[str] = None


class UnpublishRequest(BaseModel):
    description: Optional[str] = None


# ============== Responses ==============

class DeploymentResponse(BaseModel):
    id: str
    api_definition_id: str
    gateway_id: str
    status: PublishStatus
    resource_ref: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DeploymentDetailResponse(DeploymentResponse):
    snapshot: Dict[str, Any]


class DeploymentListResponse(BaseModel):
    items: List[DeploymentResponse]
    total: int
