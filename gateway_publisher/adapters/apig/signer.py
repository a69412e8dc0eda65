# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""ACS3-HMAC-SHA256 request signing for the cloud gateway OpenAPI (ROA style)."""
import hashlib
import hmac
import uuid
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import quote

ALGORITHM = "ACS3-HMAC-SHA256"


def _percent_encode(value: str) -> str:
    return quote(str(value), safe="-_.~")


def canonical_query(params: Optional[dict]) -> str:
    if not params:
        return ""
    return "&".join(
        f"{_percent_encode(k)}={_percent_encode(v)}"
        for k, v in sorted(params.items())
        if v is not None
    )


def sign_request(
    method: str,
    path: str,
    params: Optional[dict],
    body: bytes,
    host: str,
    action: str,
    version: str,
    access_key: str,
    secret_key: str,
    now: Optional[datetime] = None,
    nonce: Optional[str] = None,
) -> dict:
    """Return the headers (Authorization included) for one signed request."""
    now = now or datetime.now(timezone.utc)
    headers = {
        "host": host,
        "x-acs-action": action,
        "x-acs-version": version,
        "x-acs-date": now.strftime("%Y-%m-%dT%H:%M:%SZ"),
        "x-acs-signature-nonce": nonce or uuid.uuid4().hex,
        "x-acs-content-sha256": hashlib.sha256(body).hexdigest(),
    }
    if body:
        headers["content-type"] = "application/json"

    signed_names = sorted(headers)
    canonical_headers = "".join(f"{name}:{headers[name].strip()}\n" for name in signed_names)
    signed_headers = ";".join(signed_names)

    canonical_request = "\n".join([
        method.upper(),
        quote(path, safe="/-_.~"),
        canonical_query(params),
        canonical_headers,
        signed_headers,
        headers["x-acs-content-sha256"],
    ])
    string_to_sign = f"{ALGORITHM}\n{hashlib.sha256(canonical_request.encode('utf-8')).hexdigest()}"
    signature = hmac.new(
        secret_key.encode("utf-8"),
        string_to_sign.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()

    headers["Authorization"] = (
        f"{ALGORITHM} Credential={access_key},SignedHeaders={signed_headers},Signature={signature}"
    )
    return headers
