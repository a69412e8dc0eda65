# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Nacos AI registry adapter"""
from .adapter import NacosCapability

__all__ = ["NacosCapability"]
