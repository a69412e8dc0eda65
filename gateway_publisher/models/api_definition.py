# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""API definition SQLAlchemy model"""
from sqlalchemy import Column, String, DateTime, Enum as SQLEnum, Text, JSON
from datetime import datetime
import uuid
import enum

from ..database import Base


class APIType(str, enum.Enum):
    REST_API = "REST_API"
    MCP_SERVER = "MCP_SERVER"
    AGENT_API = "AGENT_API"
    MODEL_API = "MODEL_API"


class APIDefinitionStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"


class APIDefinition(Base):
    """A producer-owned API definition (REST, MCP, Agent or Model).

    ``spec`` holds the definition content: ``endpoints`` (list of
    ``{name, description, type, config}``), ``metadata`` and ``properties``.
    """
    __tablename__ = "api_definitions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    api_type = Column(SQLEnum(APIType), nullable=False)
    status = Column(
        SQLEnum(APIDefinitionStatus),
        nullable=False,
        default=APIDefinitionStatus.DRAFT,
    )
    version = Column(String(50), nullable=True)
    spec = Column(JSON, nullable=False, default=dict)

    # ProductRef key; falls back to the definition id when unset
    product_id = Column(String(64), nullable=True, index=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def product_key(self) -> str:
        return self.product_id or self.id

    @property
    def endpoints(self) -> list:
        return list((self.spec or {}).get("endpoints") or [])

    @property
    def properties(self) -> list:
        return list((self.spec or {}).get("properties") or [])

    @property
    def metadata_(self) -> dict:
        return dict((self.spec or {}).get("metadata") or {})

    def __repr__(self) -> str:
        return f"<APIDefinition {self.id} {self.name} {self.api_type}>"
