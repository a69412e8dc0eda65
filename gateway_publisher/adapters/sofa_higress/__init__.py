# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""SOFA Higress gateway adapter"""
from .adapter import SofaHigressCapability

__all__ = ["SofaHigressCapability"]
