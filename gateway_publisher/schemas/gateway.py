# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Pydantic schemas for gateway connection configs and resource discovery."""
from enum import Enum
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..errors import ValidationError
from ..models.gateway import GatewayRecord, GatewayVendor


def _with_scheme(address: Optional[str]) -> Optional[str]:
    if not address:
        return address
    address = address.strip().rstrip("/")
    if not address.startswith(("http://", "https://")):
        address = "http://" + address
    return address


# ============== Connection configs ==============

class HigressConfig(BaseModel):
    """Higress console, basic auth."""
    address: str
    username: str
    password: str
    # Public ingress of the data plane, used when a domain is not reported
    gateway_address: Optional[str] = None

    @field_validator("address", "gateway_address")
    @classmethod
    def normalize_address(cls, v):
        return _with_scheme(v)


class SofaHigressConfig(BaseModel):
    """SOFA Higress console OpenAPI, access key / secret key."""
    address: str
    access_key: str
    secret_key: str
    tenant_id: Optional[str] = None
    workspace_id: Optional[str] = None

    @field_validator("address")
    @classmethod
    def normalize_address(cls, v):
        return _with_scheme(v)


class ApigConfig(BaseModel):
    """Cloud API gateway (REST and AI flavours), signed OpenAPI calls."""
    region: str
    access_key: str
    secret_key: str
    # Defaults to apig.{region}.aliyuncs.com
    endpoint: Optional[str] = None

    @property
    def host(self) -> str:
        if self.endpoint:
            return self.endpoint.replace("https://", "").replace("http://", "").rstrip("/")
        return f"apig.{self.region}.aliyuncs.com"


class AuthHeader(BaseModel):
    key: str
    value: str


class AdpAIGatewayConfig(BaseModel):
    """ADP AI gateway: either an auth seed or a list of static auth headers."""
    base_url: str
    port: int
    auth_seed: Optional[str] = None
    auth_headers: Optional[List[AuthHeader]] = None

    @field_validator("base_url")
    @classmethod
    def normalize_address(cls, v):
        return _with_scheme(v)

    @model_validator(mode="after")
    def check_auth_mode(self):
        has_seed = bool(self.auth_seed)
        has_headers = bool(self.auth_headers)
        if has_seed == has_headers:
            raise ValueError("exactly one of auth_seed or auth_headers is required")
        return self

    @property
    def url(self) -> str:
        return f"{self.base_url}:{self.port}"


class NacosConfig(BaseModel):
    server_url: str
    username: Optional[str] = None
    password: Optional[str] = None
    namespace: str = "public"

    @field_validator("server_url")
    @classmethod
    def normalize_address(cls, v):
        return _with_scheme(v)


VENDOR_CONFIG_TYPES = {
    GatewayVendor.HIGRESS: HigressConfig,
    GatewayVendor.SOFA_HIGRESS: SofaHigressConfig,
    GatewayVendor.APIG_API: ApigConfig,
    GatewayVendor.APIG_AI: ApigConfig,
    GatewayVendor.ADP_AI_GATEWAY: AdpAIGatewayConfig,
    GatewayVendor.NACOS: NacosConfig,
}


def load_connection_config(gateway: GatewayRecord) -> BaseModel:
    """Validate a gateway's stored connection config into its typed model."""
    model = VENDOR_CONFIG_TYPES.get(GatewayVendor(gateway.vendor))
    if model is None:
        raise ValidationError(f"No connection config type for vendor {gateway.vendor}")
    try:
        return model.model_validate(gateway.connection_config or {})
    except ValueError as e:
        raise ValidationError(
            f"Invalid connection config for gateway '{gateway.id}': {e}",
            details={"gateway_id": gateway.id, "vendor": str(gateway.vendor)},
        ) from e


# ============== Discovery ==============

class ResourceKind(str, Enum):
    REST_API = "REST_API"
    MCP_SERVER = "MCP_SERVER"
    AGENT_API = "AGENT_API"
    MODEL_API = "MODEL_API"


class ResourceSummary(BaseModel):
    """One discoverable gateway resource.

    ``resource_ref`` is the vendor-specific reference that resolve_config,
    authorize_consumer and Config Sync accept back.
    """
    kind: ResourceKind
    name: str
    id: Optional[str] = None
    description: Optional[str] = None
    resource_ref: dict = Field(default_factory=dict)
    extra: dict = Field(default_factory=dict)


T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    items: List[T] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    size: int = 20

    @classmethod
    def empty(cls, page: int = 1, size: int = 20) -> "Page":
        return cls(items=[], total=0, page=page, size=size)


class GatewayResponse(BaseModel):
    id: str
    name: str
    vendor: GatewayVendor
    gateway_ref: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class GatewayCapabilitiesResponse(BaseModel):
    gateway_id: str
    vendor: GatewayVendor
    supported_api_types: List[str]
    can_publish: bool
