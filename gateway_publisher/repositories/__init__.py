# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Repositories for database operations"""
from .gateway import GatewayRepository
from .api_definition import APIDefinitionRepository
from .deployment import DeploymentRepository
from .product_ref import ProductRefRepository

__all__ = [
    "GatewayRepository",
    "APIDefinitionRepository",
    "DeploymentRepository",
    "ProductRefRepository",
]
