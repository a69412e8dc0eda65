# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""ProductRef SQLAlchemy model - serving-time resolved configuration of a product"""
from sqlalchemy import Column, String, DateTime, Boolean, JSON
from datetime import datetime

from ..database import Base


class ProductRef(Base):
    """Materialized view of a product's published resource.

    Only Config Sync writes this table. ``gateway_id``/``resource_ref``
    always mirror the latest ACTIVE deployment record; after a successful
    unpublish they are cleared and ``stale`` is set.
    """
    __tablename__ = "product_refs"

    product_id = Column(String(64), primary_key=True)
    api_definition_id = Column(String(36), nullable=False, index=True)

    gateway_id = Column(String(36), nullable=True)
    vendor = Column(String(32), nullable=True)
    api_type = Column(String(32), nullable=True)
    resource_ref = Column(JSON, nullable=True)

    # Vendor-neutral ConfigDocument
    config = Column(JSON, nullable=True)

    stale = Column(Boolean, nullable=False, default=False)
    synced_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def clear(self) -> None:
        self.gateway_id = None
        self.vendor = None
        self.resource_ref = None
        self.config = None
        self.stale = True

    def __repr__(self) -> str:
        return f"<ProductRef {self.product_id} gw={self.gateway_id} stale={self.stale}>"
