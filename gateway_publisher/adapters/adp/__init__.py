# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""ADP AI gateway adapter"""
from .adapter import AdpAIGatewayCapability

__all__ = ["AdpAIGatewayCapability"]
