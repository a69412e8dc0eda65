# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Cloud API gateway adapters (REST and AI flavours)"""
from .ai_gateway import ApigAiCapability
from .api_gateway import ApigApiCapability

__all__ = ["ApigAiCapability", "ApigApiCapability"]
