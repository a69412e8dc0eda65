# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Higress gateway adapter"""
from .adapter import HigressCapability

__all__ = ["HigressCapability"]
