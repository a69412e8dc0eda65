# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""API routers"""
from . import deployments, gateways, products

__all__ = ["deployments", "gateways", "products"]
