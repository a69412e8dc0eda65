# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Pydantic schemas for gateway consumers and their authorizations."""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class CredentialSource(str, Enum):
    """Where the consumer presents its API key."""
    DEFAULT = "Default"          # Authorization: Bearer <key>
    HEADER = "HEADER"
    QUERY_STRING = "QueryString"


class ApiKeyCredential(BaseModel):
    api_key: str
    key: Optional[str] = Field(None, description="Header or query parameter name")
    source: CredentialSource = CredentialSource.DEFAULT


class HmacCredential(BaseModel):
    access_key: str
    secret_key: str


class ConsumerCredential(BaseModel):
    api_key_config: Optional[ApiKeyCredential] = None
    hmac_config: Optional[HmacCredential] = None

    @property
    def api_keys(self) -> List[str]:
        return [self.api_key_config.api_key] if self.api_key_config else []


class ConsumerSpec(BaseModel):
    """Portal-side consumer as seen by a gateway."""
    consumer_id: str
    name: str
    description: Optional[str] = None


class AuthRecord(BaseModel):
    """Vendor authorization handle.

    Returned by authorize and replayed verbatim by revoke. ``vendor`` names
    the gateway product; ``data`` is vendor specific (APIG rule ids, ADP
    grant ids, the route a Higress consumer was allow-listed on...).
    """
    vendor: str
    resource_ref: Dict[str, Any] = Field(default_factory=dict)
    data: Dict[str, Any] = Field(default_factory=dict)


# ============== Requests ==============

class CreateConsumerRequest(BaseModel):
    consumer: ConsumerSpec
    credential: ConsumerCredential


class UpdateConsumerRequest(BaseModel):
    credential: ConsumerCredential


class AuthorizeRequest(BaseModel):
    resource_ref: Dict[str, Any]


class RevokeRequest(BaseModel):
    auth_record: AuthRecord


class ConsumerCreatedResponse(BaseModel):
    gateway_id: str
    consumer_id: str


class ConsumerExistsResponse(BaseModel):
    gateway_id: str
    consumer_id: str
    exists: bool
