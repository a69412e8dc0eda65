# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Pydantic schemas for resolved product configuration."""
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict

from ..models.product_ref import ProductRef
from ..schemas.config_document import MCPConfigResult, load_config


class ProductConfigResponse(BaseModel):
    product_id: str
    api_definition_id: str
    gateway_id: Optional[str] = None
    vendor: Optional[str] = None
    api_type: Optional[str] = None
    resource_ref: Optional[Dict[str, Any]] = None
    config: Optional[Dict[str, Any]] = None
    # MCP only: endpoint clients connect to
    transport_url: Optional[str] = None
    stale: bool
    synced_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_ref(cls, ref: ProductRef) -> "ProductConfigResponse":
        response = cls.model_validate(ref)
        document = load_config(ref.config)
        if isinstance(document, MCPConfigResult):
            response.transport_url = document.to_transport_url()
        return response
