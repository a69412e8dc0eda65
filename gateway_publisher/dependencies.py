# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""FastAPI dependencies exposing the services built at startup.

The lifespan stores the services on ``app.state``; tests may set them
there directly.
"""
from fastapi import Request

from .adapters.registry import CapabilityRegistry
from .services.config_sync_service import ConfigSyncService
from .services.consumer_service import ConsumerService
from .services.publish_service import PublishService


def get_publish_service(request: Request) -> PublishService:
    return request.app.state.publish_service


def get_config_sync_service(request: Request) -> ConfigSyncService:
    return request.app.state.config_sync_service


def get_consumer_service(request: Request) -> ConsumerService:
    return request.app.state.consumer_service


def get_registry(request: Request) -> CapabilityRegistry:
    return request.app.state.registry
