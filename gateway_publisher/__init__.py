# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Gateway Publisher - publishes API definitions onto vendor API gateways"""
__version__ = "1.0.0"
