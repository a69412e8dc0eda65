# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Gateway SQLAlchemy model - one row per registered vendor gateway instance"""
from sqlalchemy import Column, String, DateTime, Enum as SQLEnum, JSON, Index
from datetime import datetime
import uuid
import enum

from ..database import Base


class GatewayVendor(str, enum.Enum):
    """Vendor tag selecting the GatewayCapability implementation"""
    APIG_API = "APIG_API"
    APIG_AI = "APIG_AI"
    HIGRESS = "HIGRESS"
    SOFA_HIGRESS = "SOFA_HIGRESS"
    ADP_AI_GATEWAY = "ADP_AI_GATEWAY"
    NACOS = "NACOS"


class GatewayRecord(Base):
    """A vendor gateway instance and how to reach it.

    ``connection_config`` is vendor specific and validated into one of the
    typed configs from ``schemas.gateway`` on load. Connection info is
    immutable per record: change it by registering a new gateway.
    """
    __tablename__ = "gateways"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    vendor = Column(SQLEnum(GatewayVendor), nullable=False)

    # Vendor-side instance id: APIG gatewayId, ADP gwInstanceId, Nacos namespace
    gateway_ref = Column(String(255), nullable=True)

    connection_config = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_gateways_vendor", "vendor"),
    )

    def __repr__(self) -> str:
        return f"<GatewayRecord {self.id} {self.vendor}>"
