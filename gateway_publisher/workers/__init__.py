# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Background workers"""
from .deployment_worker import DeploymentWorkerPool

__all__ = ["DeploymentWorkerPool"]
