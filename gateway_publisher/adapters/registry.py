# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Capability registry: vendor tag -> GatewayCapability instance."""

import logging
from typing import Iterable, Optional

import httpx

from ..errors import PublisherErrorCode, ValidationError
from ..models.gateway import GatewayRecord, GatewayVendor
from .gateway_capability import GatewayCapability

logger = logging.getLogger(__name__)


class CapabilityRegistry:
    """Resolves gateway records to their vendor capability.

    Capabilities are stateless, so one instance per vendor is shared by
    every caller.
    """

    def __init__(self, capabilities: Optional[Iterable[GatewayCapability]] = None):
        self._capabilities: dict[GatewayVendor, GatewayCapability] = {}
        for capability in capabilities or []:
            self.register(capability)

    def register(self, capability: GatewayCapability) -> None:
        if capability.vendor in self._capabilities:
            logger.warning(f"Replacing capability registered for {capability.vendor.value}")
        self._capabilities[capability.vendor] = capability

    def get(self, vendor: GatewayVendor | str) -> GatewayCapability:
        try:
            capability = self._capabilities.get(GatewayVendor(vendor))
        except ValueError:
            capability = None
        if capability is None:
            vendor_name = vendor.value if isinstance(vendor, GatewayVendor) else str(vendor)
            raise ValidationError(
                f"no capability registered for vendor {vendor_name}",
                code=PublisherErrorCode.UNKNOWN_VENDOR,
                details={"vendor": vendor_name},
            )
        return capability

    def for_gateway(self, gateway: GatewayRecord) -> GatewayCapability:
        return self.get(gateway.vendor)

    @property
    def vendors(self) -> list[GatewayVendor]:
        return list(self._capabilities)


def build_default_registry(transport: Optional[httpx.AsyncBaseTransport] = None) -> CapabilityRegistry:
    """Registry with every built-in vendor capability."""
    from .adp import AdpAIGatewayCapability
    from .apig import ApigAiCapability, ApigApiCapability
    from .higress import HigressCapability
    from .nacos import NacosCapability
    from .sofa_higress import SofaHigressCapability

    return CapabilityRegistry([
        ApigApiCapability(transport=transport),
        ApigAiCapability(transport=transport),
        HigressCapability(transport=transport),
        SofaHigressCapability(transport=transport),
        AdpAIGatewayCapability(transport=transport),
        NacosCapability(transport=transport),
    ])
