# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Deployment record SQLAlchemy model - one row per publish/unpublish attempt"""
from sqlalchemy import Column, String, DateTime, Enum as SQLEnum, Text, JSON, Index
from datetime import datetime
import uuid
import enum

from ..database import Base


class PublishStatus(str, enum.Enum):
    """Deployment record status.

    PUBLISHING -> ACTIVE | PUBLISH_FAILED
    UNPUBLISHING -> INACTIVE | UNPUBLISH_FAILED
    """
    PUBLISHING = "PUBLISHING"
    ACTIVE = "ACTIVE"
    PUBLISH_FAILED = "PUBLISH_FAILED"
    UNPUBLISHING = "UNPUBLISHING"
    INACTIVE = "INACTIVE"
    UNPUBLISH_FAILED = "UNPUBLISH_FAILED"

    @property
    def is_processing(self) -> bool:
        return self in (PublishStatus.PUBLISHING, PublishStatus.UNPUBLISHING)

    @property
    def is_active(self) -> bool:
        return self is PublishStatus.ACTIVE

    @property
    def is_active_or_processing(self) -> bool:
        return self.is_active or self.is_processing


# Allowed terminal transitions out of each pending state
TRANSITIONS: dict[PublishStatus, tuple[PublishStatus, ...]] = {
    PublishStatus.PUBLISHING: (PublishStatus.ACTIVE, PublishStatus.PUBLISH_FAILED),
    PublishStatus.UNPUBLISHING: (PublishStatus.INACTIVE, PublishStatus.UNPUBLISH_FAILED),
}


class DeploymentRecord(Base):
    """Audit/state unit for one publish or unpublish attempt.

    Rows are append-mostly: a record is created in PUBLISHING or
    UNPUBLISHING by the submit call and moved once to its terminal state
    by the background job that owns it.
    """
    __tablename__ = "deployment_records"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    api_definition_id = Column(String(36), nullable=False)
    gateway_id = Column(String(36), nullable=False)

    status = Column(SQLEnum(PublishStatus), nullable=False)

    # Versioned {definition, options} captured at submit time
    snapshot = Column(JSON, nullable=False)
    # Vendor resource reference once the gateway created the resource
    resource_ref = Column(JSON, nullable=True)

    error_message = Column(Text, nullable=True)
    description = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index(
            "ix_deployment_records_api_gateway_created",
            "api_definition_id", "gateway_id", "created_at",
        ),
        Index("ix_deployment_records_status", "status"),
    )

    def can_transition_to(self, status: PublishStatus) -> bool:
        return status in TRANSITIONS.get(self.status, ())

    def __repr__(self) -> str:
        return f"<DeploymentRecord {self.id} api={self.api_definition_id} gw={self.gateway_id} {self.status}>"
