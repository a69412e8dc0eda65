# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Shared HTTP helpers for vendor clients"""
import logging
from typing import Optional

import httpx

from ..config import settings
from ..errors import VendorError

logger = logging.getLogger(__name__)


def default_timeout() -> httpx.Timeout:
    return httpx.Timeout(settings.GATEWAY_HTTP_TIMEOUT_SECONDS)


def vendor_error_from_response(
    vendor: str,
    response: httpx.Response,
    vendor_code: Optional[str] = None,
    message: Optional[str] = None,
) -> VendorError:
    """Translate a failed vendor response into a VendorError."""
    if message is None:
        body = response.text[:500] if response.content else ""
        message = f"{vendor} returned HTTP {response.status_code}: {body}"
    return VendorError(
        message,
        vendor=vendor,
        vendor_code=vendor_code,
        status_code=response.status_code,
        details={"method": response.request.method, "path": response.request.url.path},
    )


def vendor_error_from_transport(vendor: str, exc: httpx.HTTPError) -> VendorError:
    logger.warning(f"{vendor} transport error: {exc}")
    return VendorError(f"{vendor} unreachable: {exc}", vendor=vendor)
