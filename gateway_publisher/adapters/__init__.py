# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Gateway capability adapters.

This package defines the abstract contract every vendor gateway
implements and one concrete implementation per supported vendor.
"""

from .gateway_capability import GatewayCapability
from .registry import CapabilityRegistry, build_default_registry

__all__ = ["GatewayCapability", "CapabilityRegistry", "build_default_registry"]
