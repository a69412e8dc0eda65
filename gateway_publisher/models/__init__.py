# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""SQLAlchemy models"""
from .gateway import GatewayRecord, GatewayVendor
from .api_definition import APIDefinition, APIType, APIDefinitionStatus
from .deployment import DeploymentRecord, PublishStatus
from .product_ref import ProductRef

__all__ = [
    "GatewayRecord",
    "GatewayVendor",
    "APIDefinition",
    "APIType",
    "APIDefinitionStatus",
    "DeploymentRecord",
    "PublishStatus",
    "ProductRef",
]
