# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Domain resolution for published resources.

Order: the domain the vendor reports for the resource, then the gateway's
default/public ingress address, then a placeholder sentinel. A sentinel
domain is never a usable endpoint; callers surface it as "needs manual
completion".
"""
from typing import Iterable, List, Optional
from urllib.parse import urlparse

from ..schemas.config_document import DomainResult


def placeholder_domain(vendor: str) -> DomainResult:
    return DomainResult(domain=f"<{vendor.lower().replace('_', '-')}-gateway-ip>", protocol="http")


def is_placeholder_domain(domain: Optional[DomainResult | str]) -> bool:
    if domain is None:
        return False
    value = domain.domain if isinstance(domain, DomainResult) else domain
    return value.startswith("<") and value.endswith("-gateway-ip>")


def domain_from_address(address: Optional[str]) -> Optional[DomainResult]:
    """Build a domain from a URL or host[:port] string."""
    if not address:
        return None
    parsed = urlparse(address if "://" in address else f"http://{address}")
    if not parsed.hostname:
        return None
    return DomainResult(
        domain=parsed.hostname,
        protocol=parsed.scheme or "http",
        port=parsed.port,
    )


def resolve_domains(
    vendor: str,
    resource_domains: Optional[Iterable[DomainResult]] = None,
    default_domains: Optional[Iterable[DomainResult]] = None,
) -> List[DomainResult]:
    """Apply the domain fallback order; never returns an empty list."""
    domains = [d for d in (resource_domains or []) if d and d.domain]
    if domains:
        return domains
    domains = [d for d in (default_domains or []) if d and d.domain]
    if domains:
        return domains
    return [placeholder_domain(vendor)]
